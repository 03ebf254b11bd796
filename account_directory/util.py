"""Helpers for clocks, tokens, and e-mail addresses."""

from datetime import datetime
import uuid

from pytz import UTC


def utcnow() -> datetime:
    """Get the current time as a timezone-aware UTC datetime."""
    return datetime.now(tz=UTC)


def now() -> int:
    """Get the current epoch/unix time."""
    return epoch(utcnow())


def epoch(t: datetime) -> int:
    """Convert a :class:`.datetime` to UNIX time."""
    if t.tzinfo is None:
        t = UTC.localize(t)
    delta = t - datetime.fromtimestamp(0, tz=UTC)
    return int(round(delta.total_seconds()))


def from_epoch(t: int) -> datetime:
    """Get a :class:`datetime` from an UNIX timestamp."""
    return datetime.fromtimestamp(t, tz=UTC)


def generate_token() -> str:
    """
    Generate a fresh single-use token.

    Tokens are version 4 UUIDs rendered in their canonical hyphenated form,
    which is safe to embed in a URL.
    """
    return str(uuid.uuid4())


def normalize_email(email: str) -> str:
    """
    Get the lookup form of an e-mail address.

    Matching is case-insensitive over the whole address, and surrounding
    whitespace is ignored.
    """
    return email.strip().lower()


def token_prefix(token: str) -> str:
    """Get a loggable prefix of a token."""
    return token[:8]
