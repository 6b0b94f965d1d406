import asyncio
import functools
import logging
import re
import threading
from typing import Any, Callable, Optional

from bpfpurge.errors import MaxRetriesExceeded

logger = logging.getLogger("bpfpurge.kube")

_THROTTLE_TOKENS = ("rate limit", "throttl", "too many requests", "429")
_RETRY_AFTER_RE = re.compile(r"retry-after:\s*(\d+(?:\.\d+)?)(?!\.?\d)(ms|s|m)?(?![a-z])", re.IGNORECASE)
_UNIT_SECONDS = {"ms": 0.001, "s": 1.0, "m": 60.0}


def is_rate_limited(exc: Optional[BaseException]) -> bool:
    """Best-effort throttling check: HTTP 429 or a telltale phrase in the message."""
    if exc is None:
        return False
    if getattr(exc, "status", None) == 429:
        return True
    text = str(exc).lower()
    return any(token in text for token in _THROTTLE_TOKENS)


def retry_after(exc: Optional[BaseException]) -> Optional[float]:
    """Server-suggested wait in seconds, from a Retry-After header or a `retry-after: 2s` / `500ms` / `1m` token."""
    if exc is None:
        return None
    headers = getattr(exc, "headers", None) or {}
    try:
        value = headers.get("Retry-After") or headers.get("retry-after")
    except AttributeError:
        value = None
    if value:
        try:
            return float(value)
        except (TypeError, ValueError):
            pass
    m = _RETRY_AFTER_RE.search(str(exc))
    if m:
        # a bare number means seconds
        return float(m.group(1)) * _UNIT_SECONDS[(m.group(2) or "s").lower()]
    return None


class RateController:
    """Shared adaptive delay in front of every cluster API call.

    Throttling observed by any caller raises the delay for all callers;
    each success decays it back towards the floor.
    """

    def __init__(
        self,
        initial_delay: float = 0.1,
        min_delay: float = 0.05,
        max_delay: float = 5.0,
        max_attempts: int = 3,
    ):
        self.min_delay = min_delay
        self.max_delay = max_delay
        self.max_attempts = max_attempts
        self._delay = max(initial_delay, min_delay)
        self._lock = threading.Lock()

    @property
    def current_delay(self) -> float:
        with self._lock:
            return self._delay

    def adjust(self, throttled: bool, hint: Optional[float] = None) -> float:
        with self._lock:
            if throttled:
                if hint and hint > 0:
                    self._delay = min(max(hint, self.min_delay), self.max_delay)
                    logger.debug("Adaptive delay set to %.3fs based on server retry-after %.3fs", self._delay, hint)
                else:
                    self._delay = min(self._delay * 1.5, self.max_delay)
                    logger.debug("Adaptive delay increased to %.3fs due to throttling", self._delay)
            else:
                self._delay = max(self._delay * 0.9, self.min_delay)
            return self._delay

    async def wait(self) -> None:
        await asyncio.sleep(self.current_delay)

    async def execute_with_retry(self, op: Callable[..., Any], *args, **kwargs) -> Any:
        loop = asyncio.get_running_loop()
        call = functools.partial(op, *args, **kwargs)
        last_error: Optional[Exception] = None

        for attempt in range(self.max_attempts):
            await self.wait()
            try:
                result = await loop.run_in_executor(None, call)
            except Exception as e:
                if not is_rate_limited(e):
                    raise
                last_error = e
                delay = self.adjust(True, retry_after(e))
                if attempt < self.max_attempts - 1:
                    logger.debug(
                        "Rate limited, retrying in %.3fs (attempt %d/%d)",
                        delay,
                        attempt + 1,
                        self.max_attempts,
                    )
                continue
            self.adjust(False)
            return result

        raise MaxRetriesExceeded(self.max_attempts, last_error) from last_error
