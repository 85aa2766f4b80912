"""Shared model utilities used across all models."""

import uuid
from datetime import UTC, datetime


def generate_id() -> str:
    """Generate a new opaque document id."""
    return str(uuid.uuid4())


def utc_now() -> datetime:
    """Get current UTC datetime."""
    return datetime.now(UTC)
