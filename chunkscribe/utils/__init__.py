"""Utility package for retry and logging helpers."""

from __future__ import annotations

from .logging_setup import configure_logging
from .retry import RATE_LIMITED_RETRY_POLICY, STANDARD_RETRY_POLICY, RetryPolicy, execute, retry_wrapper
from .time import Timer

__all__ = [
    "configure_logging",
    "RetryPolicy",
    "STANDARD_RETRY_POLICY",
    "RATE_LIMITED_RETRY_POLICY",
    "execute",
    "retry_wrapper",
    "Timer",
]
