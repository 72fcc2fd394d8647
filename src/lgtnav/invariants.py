"""Invariant markers."""

from __future__ import annotations

from typing import NoReturn, TypeVar

from lgtnav.exceptions import NeverThrown

T = TypeVar("T")


def _format_env(env: dict[str, object]) -> str:
    return ", ".join(f"{key}={value!r}" for key, value in sorted(env.items()))


def never(reason: str = "", **env: object) -> NoReturn:
    """Mark a code path as intentionally unreachable.

    The env payload is metadata only; it is rendered into the message and kept
    on the raised exception.
    """
    message = reason or "never() marker reached"
    if env:
        message = f"{message} ({_format_env(env)})"
    raise NeverThrown(message, env=env)


def require_not_none(value: T | None, *, reason: str = "", **env: object) -> T:
    if value is None:
        never(reason or "required value is None", **env)
    return value
