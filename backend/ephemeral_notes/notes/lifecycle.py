import secrets
import string
from datetime import datetime, timedelta, timezone

SHORT_ID_ALPHABET = string.ascii_letters + string.digits
DEFAULT_SHORT_ID_LENGTH = 10
DEFAULT_TTL_DAYS = 30


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def generate_short_id(length: int = DEFAULT_SHORT_ID_LENGTH) -> str:
    """Random URL-safe id used as both document key and public path segment.

    Uniqueness is not checked here; the exclusive write in the store rejects
    the rare collision.
    """
    if length < 1:
        raise ValueError("length must be positive")
    return "".join(secrets.choice(SHORT_ID_ALPHABET) for _ in range(length))


def is_valid_short_id(value: str, max_length: int = 64) -> bool:
    return 0 < len(value) <= max_length and all(ch in SHORT_ID_ALPHABET for ch in value)


def compute_expiry(created_at: datetime, ttl_days: int = DEFAULT_TTL_DAYS) -> datetime:
    return created_at + timedelta(days=ttl_days)


def is_expired(expires_at: datetime, now: datetime | None = None) -> bool:
    # the expiry instant itself counts as expired
    now = now or utc_now()
    return now >= expires_at


def _plural(n: int, unit: str) -> str:
    return f"{n} {unit}" if n == 1 else f"{n} {unit}s"


def format_distance(delta: timedelta) -> str:
    seconds = abs(delta.total_seconds())
    minutes = round(seconds / 60)
    if seconds < 45:
        return "less than a minute"
    if minutes < 45:
        return _plural(max(minutes, 1), "minute")
    hours = round(seconds / 3600)
    if hours < 24:
        return "about " + _plural(hours, "hour")
    days = round(seconds / 86400)
    if days < 30:
        return _plural(days, "day")
    return "about " + _plural(round(days / 30), "month")


def expiry_label(expires_at: datetime, now: datetime | None = None) -> str:
    now = now or utc_now()
    if is_expired(expires_at, now):
        return "Expired"
    return f"Expires in {format_distance(expires_at - now)}"
