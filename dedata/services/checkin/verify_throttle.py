"""
Local verify throttle.

Keeps verify calls inside the gateway's documented limits so the
gateway never has to answer 429.
"""

import time
from collections import defaultdict, deque
from collections.abc import Callable

from loguru import logger

from dedata.config.constants import (
    VERIFY_MAX_PER_ORDER,
    VERIFY_MAX_PER_USER,
    VERIFY_WINDOW_SECONDS,
)
from dedata.utils.exceptions import RateLimitedError


class VerifyThrottle:
    """Sliding-window limits per order and per user."""

    def __init__(
        self,
        window_seconds: float = VERIFY_WINDOW_SECONDS,
        max_per_order: int = VERIFY_MAX_PER_ORDER,
        max_per_user: int = VERIFY_MAX_PER_USER,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.window_seconds = window_seconds
        self.max_per_order = max_per_order
        self.max_per_user = max_per_user
        self._clock = clock
        self._by_order: dict[str, deque[float]] = defaultdict(deque)
        self._by_user: dict[str, deque[float]] = defaultdict(deque)

    def _prune(self, calls: deque[float], now: float) -> None:
        while calls and now - calls[0] >= self.window_seconds:
            calls.popleft()

    def acquire(self, order_id: str, user_id: str) -> None:
        """
        Record a verify call or refuse it.

        Args:
            order_id: Gateway order id
            user_id: User ID

        Raises:
            RateLimitedError: Call would exceed a limit
        """
        now = self._clock()
        order_calls = self._by_order[order_id]
        user_calls = self._by_user[user_id]
        self._prune(order_calls, now)
        self._prune(user_calls, now)

        if len(order_calls) >= self.max_per_order:
            wait = self.window_seconds - (now - order_calls[0])
            logger.warning(f"Verify throttled for order {order_id}, retry in {wait:.0f}s")
            raise RateLimitedError(
                f"Please wait {wait:.0f} seconds before verifying this order again"
            )
        if len(user_calls) >= self.max_per_user:
            wait = self.window_seconds - (now - user_calls[0])
            logger.warning(f"Verify throttled for user {user_id}, retry in {wait:.0f}s")
            raise RateLimitedError(f"Too many verify requests, retry in {wait:.0f} seconds")

        order_calls.append(now)
        user_calls.append(now)

        # Drop idle keys
        if len(self._by_order) > 10_000:
            self._by_order = defaultdict(
                deque, {k: v for k, v in self._by_order.items() if v and now - v[-1] < self.window_seconds}
            )
            self._by_user = defaultdict(
                deque, {k: v for k, v in self._by_user.items() if v and now - v[-1] < self.window_seconds}
            )
