"""ID generation and validation for primary keys.

INVARIANT: IDs are permanent. A generated ID is resolved once per
instance and never changes (see :mod:`functional_models.domain.lazy`).
"""

from __future__ import annotations

import re
import uuid

UUID_PATTERN: re.Pattern[str] = re.compile(
    r"^[0-9a-f]{8}-[0-9a-f]{4}-[0-5][0-9a-f]{3}-[089ab][0-9a-f]{3}-[0-9a-f]{12}$",
    re.IGNORECASE,
)


def generate_unique_id() -> str:
    """Generate a random (version 4) UUID string."""
    return str(uuid.uuid4())


def validate_uuid(value: str) -> bool:
    """Check whether *value* is a canonically formatted UUID."""
    return UUID_PATTERN.match(value) is not None
