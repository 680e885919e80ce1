"""ULID primary keys."""

import ulid


def generate_ulid() -> str:
    """New 26-character, time-sortable ULID string."""
    return str(ulid.ULID())
