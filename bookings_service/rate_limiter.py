# bookings_service/rate_limiter.py
import os
import threading
import time
from typing import Dict, List, Any

from fastapi import Depends, HTTPException, status

from .auth import get_current_user_claims

WINDOW_SECONDS = int(os.getenv("BOOKING_RATE_WINDOW_SECONDS", "60"))
MAX_BOOKINGS_PER_WINDOW = int(os.getenv("BOOKING_RATE_LIMIT", "20"))

_user_request_log: Dict[int, List[float]] = {}
# sync routes run in a threadpool
_log_lock = threading.Lock()


def _prune(window_start: float) -> None:
    for user_id in [uid for uid, ts in _user_request_log.items() if not ts or ts[-1] < window_start]:
        del _user_request_log[user_id]


def booking_rate_limiter(claims: Dict[str, Any] = Depends(get_current_user_claims)):
    """
    Rate limit booking creation and cancellation per authenticated user.

    Users with no request inside the window are dropped from the log.
    """
    user_id = claims["user_id"]
    now = time.time()
    window_start = now - WINDOW_SECONDS

    with _log_lock:
        _prune(window_start)
        timestamps = [ts for ts in _user_request_log.get(user_id, []) if ts >= window_start]

        if len(timestamps) >= MAX_BOOKINGS_PER_WINDOW:
            _user_request_log[user_id] = timestamps
            raise HTTPException(
                status_code=status.HTTP_429_TOO_MANY_REQUESTS,
                detail="Too many booking operations in a short time",
            )

        timestamps.append(now)
        _user_request_log[user_id] = timestamps


def reset_rate_limits() -> None:
    with _log_lock:
        _user_request_log.clear()
