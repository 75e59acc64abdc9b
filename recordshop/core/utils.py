"""
Utility functions for the application.
"""
from datetime import datetime, timezone
from typing import Optional


def utc_now() -> datetime:
    """Timezone-aware current UTC time, used for model defaults."""
    return datetime.now(timezone.utc)


def to_minor_units(amount: Optional[float]) -> int:
    """Convert a major-unit price (e.g. 12.5 dollars) to integer cents."""
    if amount is None:
        return 0
    return int(round(float(amount) * 100))
