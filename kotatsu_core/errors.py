"""
Failure taxonomy for command and search handling.

Scope rejections are not errors and never raise; everything else is an
exception the dispatchers catch and turn into a user-visible reply or a log
line. Nothing here propagates past a single message's handler.
"""

from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Mapping, Optional

import discord


WRITE_THROTTLED = "throttled"
WRITE_FORBIDDEN = "forbidden"
WRITE_NOT_FOUND = "not_found"
WRITE_SERVER = "server"
WRITE_UNCLASSIFIED = "unclassified"


class KotatsuError(Exception):
    """Base class for handled failures."""


class LookupFailure(KotatsuError):
    """A remote read (channel, permissions, roles, catalog) failed."""


class PermissionDenied(KotatsuError):
    def __init__(self, user_id: int):
        super().__init__(f"User {user_id} may not run status commands")
        self.user_id = user_id


class TagNotFound(KotatsuError):
    def __init__(self, tag_name: str):
        super().__init__(f"Tag {tag_name} not found in the forum")
        self.tag_name = tag_name


class WriteTimeout(KotatsuError):
    def __init__(self, timeout: float):
        super().__init__(f"Thread update did not finish within {timeout:.0f}s")
        self.timeout = timeout


@dataclass(frozen=True)
class RateLimitInfo:
    limit: Optional[int] = None
    remaining: Optional[int] = None
    reset_after: Optional[float] = None
    reset_at: Optional[datetime] = None
    scope: Optional[str] = None
    is_global: bool = False

    def describe(self) -> str:
        parts = []
        if self.limit is not None:
            parts.append(f"limit={self.limit}")
        if self.remaining is not None:
            parts.append(f"remaining={self.remaining}")
        if self.reset_after is not None:
            parts.append(f"resets in {self.reset_after:.1f}s")
        if self.reset_at is not None:
            parts.append(f"reset at {self.reset_at.strftime('%H:%M:%S')} UTC")
        if self.scope:
            parts.append(f"scope={self.scope}")
        if self.is_global:
            parts.append("global")
        return ", ".join(parts) or "no rate limit details available"


class WriteRejected(KotatsuError):
    def __init__(
        self,
        kind: str,
        status: Optional[int] = None,
        detail: str = "",
        rate_limit: Optional[RateLimitInfo] = None,
    ):
        super().__init__(f"Thread update rejected ({kind}, status={status}): {detail}")
        self.kind = kind
        self.status = status
        self.detail = detail
        self.rate_limit = rate_limit


def _int_or_none(value: Any) -> Optional[int]:
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


def _float_or_none(value: Any) -> Optional[float]:
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


def rate_limit_from_headers(headers: Optional[Mapping[str, Any]]) -> RateLimitInfo:
    if not headers:
        return RateLimitInfo()
    reset_epoch = _float_or_none(headers.get("X-RateLimit-Reset"))
    reset_after = _float_or_none(headers.get("X-RateLimit-Reset-After"))
    if reset_after is None:
        reset_after = _float_or_none(headers.get("Retry-After"))
    return RateLimitInfo(
        limit=_int_or_none(headers.get("X-RateLimit-Limit")),
        remaining=_int_or_none(headers.get("X-RateLimit-Remaining")),
        reset_after=reset_after,
        reset_at=datetime.fromtimestamp(reset_epoch, tz=timezone.utc) if reset_epoch is not None else None,
        scope=headers.get("X-RateLimit-Scope"),
        is_global=str(headers.get("X-RateLimit-Global", "")).lower() == "true",
    )


def classify_write_error(exc: Exception) -> WriteRejected:
    """
    Map a discord.py failure from the thread edit call onto WriteRejected.
    """
    if isinstance(exc, WriteRejected):
        return exc
    if isinstance(exc, discord.RateLimited):
        return WriteRejected(
            WRITE_THROTTLED,
            status=429,
            detail=str(exc),
            rate_limit=RateLimitInfo(reset_after=exc.retry_after),
        )
    if isinstance(exc, discord.HTTPException):
        status = exc.status
        detail = exc.text or str(exc)
        if status == 429:
            headers = getattr(exc.response, "headers", None)
            return WriteRejected(WRITE_THROTTLED, status, detail, rate_limit_from_headers(headers))
        if status == 403:
            return WriteRejected(WRITE_FORBIDDEN, status, detail)
        if status == 404:
            return WriteRejected(WRITE_NOT_FOUND, status, detail)
        if status >= 500:
            return WriteRejected(WRITE_SERVER, status, detail)
        return WriteRejected(WRITE_UNCLASSIFIED, status, detail)
    return WriteRejected(WRITE_UNCLASSIFIED, None, str(exc))


def describe_rejection(exc: WriteRejected) -> str:
    if exc.kind == WRITE_THROTTLED:
        info = exc.rate_limit.describe() if exc.rate_limit else "no rate limit details available"
        return f"Discord is rate limiting thread edits right now ({info}). Try again once the limit resets."
    if exc.kind == WRITE_FORBIDDEN:
        return "I couldn't update this thread. Check that I have Manage Threads in this forum."
    if exc.kind == WRITE_NOT_FOUND:
        return "This thread seems to have been deleted or moved while I was updating it."
    if exc.kind == WRITE_SERVER:
        return "Discord had a server error while updating the thread. Please try again in a bit."
    return "Failed to update the thread title and tags."
