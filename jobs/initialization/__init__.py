"""
Worker Initialization Module.

This module contains all initialization logic split into focused modules:
- logging: Logger configuration
- services: Component construction from settings
- shutdown: Graceful shutdown handler
"""

__all__ = []
