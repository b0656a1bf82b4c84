"""Exceptions raised across the model and ORM layers.

Construction problems (bad configuration, malformed queries) use the
builtin ``ValueError``/``TypeError``. Only a failed save has its own type,
because callers need the per-property error map it carries.
"""

from __future__ import annotations

from collections.abc import Mapping


class ValidationError(Exception):
    """Raised when an instance that does not pass validation is saved.

    Attributes:
        model_name: Name of the model whose instance failed.
        keys_to_errors: Property name (or ``"overall"``) to error messages.
    """

    def __init__(self, model_name: str, keys_to_errors: Mapping[str, list[str]]) -> None:
        super().__init__(f"{model_name} did not pass validation")
        self.model_name = model_name
        self.keys_to_errors = dict(keys_to_errors)
