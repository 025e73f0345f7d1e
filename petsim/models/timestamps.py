from datetime import datetime, timezone


def utc_now_iso() -> str:
    """Current UTC time as ISO-8601 with millisecond precision and a Z suffix."""
    return datetime.now(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


def parse_iso(value: str) -> datetime:
    """Parse timestamps written by utc_now_iso (or any ISO-8601 string with a Z suffix)."""
    return datetime.fromisoformat(value.replace("Z", "+00:00"))
