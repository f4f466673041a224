"""Environment variable lookups with fallbacks."""

from __future__ import annotations

import os
import re

_INT_PATTERN = re.compile(r"[+-]?[0-9]+")
_INT32_MIN, _INT32_MAX = -(2**31), 2**31 - 1
_INT64_MIN, _INT64_MAX = -(2**63), 2**63 - 1


class MissingEnvError(LookupError):
    """Raised when an environment variable is unset or empty."""


def get(env_name: str) -> str:
    """Value of ``env_name``; raises :class:`MissingEnvError` if unset or empty."""
    value = os.environ.get(env_name, "")
    if not value:
        raise MissingEnvError(f"environment variable {env_name} not found")
    return value


def get_or(env_name: str, otherwise: str) -> str:
    """Value of ``env_name``, or ``otherwise`` if unset or empty."""
    try:
        return get(env_name)
    except MissingEnvError:
        return otherwise


def _int_in_range(env_name: str, otherwise: int, low: int, high: int) -> int:
    try:
        text = get(env_name)
    except MissingEnvError:
        return otherwise
    if not _INT_PATTERN.fullmatch(text):
        return otherwise
    value = int(text)
    if not low <= value <= high:
        return otherwise
    return value


def get_int32_or(env_name: str, otherwise: int) -> int:
    """32-bit integer from ``env_name``, or ``otherwise`` if missing or invalid."""
    return _int_in_range(env_name, otherwise, _INT32_MIN, _INT32_MAX)


def get_int_or(env_name: str, otherwise: int) -> int:
    """Integer from ``env_name``, or ``otherwise`` if missing or invalid."""
    return _int_in_range(env_name, otherwise, _INT64_MIN, _INT64_MAX)