"""
Check-in module.

- service.py - CheckInService (request path: check in, verify, history, summary)
- state_machine.py - payment-field helpers for pending records
- verify_throttle.py - local verify rate limits
"""
