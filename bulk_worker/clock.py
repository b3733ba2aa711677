from datetime import datetime, timezone


def utcnow() -> datetime:
    """Timezone-aware current time; injected wherever tests need a fixed clock."""
    return datetime.now(timezone.utc)
