"""
distlock - Ownership Tokens and Validation

Token generation and range checks for lock configuration values.
"""

import os
import threading
import uuid
from typing import Optional

from distlock.errors import InvalidLockConfiguration


def generate_owner_token() -> str:
    """
    Generate a globally unique ownership token.

    Format: "<uuid4>:<pid>:<thread-id>".
    """
    return f"{uuid.uuid4()}:{os.getpid()}:{threading.get_ident()}"


def _require_int(field: str, value: object, minimum: int) -> int:
    # bool is an int subclass; reject it explicitly
    if isinstance(value, bool) or not isinstance(value, int):
        raise InvalidLockConfiguration(field, value, "must be an integer")
    if value < minimum:
        comparison = "positive" if minimum == 1 else f">= {minimum}"
        raise InvalidLockConfiguration(field, value, f"must be {comparison}")
    return value


def validate_lease_ms(value: object) -> int:
    """Lease duration must be a positive number of milliseconds."""
    return _require_int("lease_ms", value, 1)


def validate_poll_interval_ms(value: object) -> int:
    return _require_int("poll_interval_ms", value, 1)


def validate_jitter_ms(value: object) -> int:
    return _require_int("jitter_ms", value, 0)


def validate_wait_ms(value: object) -> int:
    """Wait budget must be zero or a positive number of milliseconds."""
    return _require_int("wait_ms", value, 0)


def validate_owner_token(value: Optional[str]) -> str:
    """Use an explicit token if given, otherwise generate one."""
    if value is None:
        return generate_owner_token()
    if not isinstance(value, str) or not value:
        raise InvalidLockConfiguration("owner_token", value, "must be a non-empty string")
    return value


def validate_resource_key(value: object) -> str:
    if not isinstance(value, str) or not value:
        raise InvalidLockConfiguration("resource_key", value, "must be a non-empty string")
    return value
