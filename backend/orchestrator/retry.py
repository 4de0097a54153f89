"""
Retry policy helpers for the assistant call.

Purpose:
- Centralize retry rules for the barista assistant
- Allow the adapter to make deterministic retry decisions

This module contains NO timers, NO async, NO side effects.

Broadcast sends and stats persistence are never retried; this policy
only covers the remote assistant.
"""
from __future__ import annotations

from dataclasses import dataclass
from enum import Enum

from spec import ASSISTANT_INIT_RETRY_COUNT, ASSISTANT_RETRY_DELAY_MS


# =============================================================================
# Failure Types
# =============================================================================

class FailureType(str, Enum):
    """
    Failure classification used by retry policy.

    INIT_ERROR:
        The request failed before any reply was produced
        (connection failure, request rejected, rate limited).
        Eligible for retry.

    TIMEOUT:
        No reply within ASSISTANT_REQUEST_TIMEOUT_S.
        Treated as an init failure. Eligible for retry.

    EMPTY_REPLY:
        The provider answered with no text.
        Never retried; the caller substitutes a fallback line.
    """

    INIT_ERROR = "init_error"
    TIMEOUT = "timeout"
    EMPTY_REPLY = "empty_reply"


# =============================================================================
# Retry State
# =============================================================================

@dataclass(frozen=True)
class RetryAttempt:
    """
    Immutable retry attempt counter.

    Semantics:
    - attempt == 0 represents the initial attempt (no retry yet).
    - attempt >= 1 represents the Nth retry attempt.
    """
    attempt: int


def next_attempt(current: RetryAttempt) -> RetryAttempt:
    """Return a new RetryAttempt with attempt incremented by 1."""
    return RetryAttempt(attempt=current.attempt + 1)


def reset_attempt() -> RetryAttempt:
    """Returns a fresh retry attempt counter."""
    return RetryAttempt(attempt=0)


# =============================================================================
# Policy
# =============================================================================

def max_attempts(failure: FailureType) -> int:
    """Maximum retry attempts (excluding the initial attempt)."""
    if failure in (FailureType.INIT_ERROR, FailureType.TIMEOUT):
        return ASSISTANT_INIT_RETRY_COUNT
    return 0


def should_retry(*, failure: FailureType, attempt: RetryAttempt) -> bool:
    """
    Returns True if a retry is allowed.

    attempt = number of retries already performed
    """
    return attempt.attempt < max_attempts(failure)


def get_retry_delay_ms() -> int:
    """Fixed delay before every assistant retry."""
    return ASSISTANT_RETRY_DELAY_MS
