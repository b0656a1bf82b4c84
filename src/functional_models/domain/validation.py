"""Validator primitives and property/model validator composition.

Primitives are pure ``value -> str | None`` checks. Every primitive (and
every closure returned by a primitive factory) accepts and ignores
trailing positional arguments, so it can sit directly in a property's
``validators`` list, where components are called as
``component(value, instance, instance_data, context)``.

Components may return a message, a list of messages, or None, and may be
sync or async.
"""

from __future__ import annotations

import asyncio
import math
import re
from collections.abc import Callable, Mapping, Sequence, Sized
from datetime import date
from typing import TYPE_CHECKING, Any, Protocol, runtime_checkable

from pydantic import BaseModel, ConfigDict

from functional_models.domain.ids import UUID_PATTERN
from functional_models.domain.lazy import resolve

if TYPE_CHECKING:
    from functional_models.domain.properties import PropertyConfig

ValueValidator = Callable[..., str | None]
PropertyValidatorComponent = Callable[..., Any]
ModelValidatorComponent = Callable[..., Any]
ModelErrors = dict[str, list[str]]

OVERALL_KEY = "overall"


class ValidatorContext(BaseModel):
    """Options passed through ``validate()`` to every validator."""

    model_config = ConfigDict(frozen=True, extra="allow")


@runtime_checkable
class ModelInstanceLike(Protocol):
    """Anything that reports the model that produced it and its primary key."""

    def get_model(self) -> Any: ...

    async def get_primary_key(self) -> Any: ...


# ---------------------------------------------------------------------------
# Primitives
# ---------------------------------------------------------------------------


def _is_number_value(value: Any) -> bool:
    return isinstance(value, int | float) and not isinstance(value, bool)


def empty_validator(*_: Any) -> None:
    """A validator that never fails."""
    return None


def is_number(value: Any, *_: Any) -> str | None:
    if not _is_number_value(value):
        return "Must be a number"
    return None


def is_integer(value: Any, *_: Any) -> str | None:
    if isinstance(value, bool):
        return "Must be an integer"
    if isinstance(value, int):
        return None
    if isinstance(value, float) and math.isfinite(value) and value.is_integer():
        return None
    return "Must be an integer"


def is_string(value: Any, *_: Any) -> str | None:
    if not isinstance(value, str):
        return "Must be a string"
    return None


def is_boolean(value: Any, *_: Any) -> str | None:
    if not isinstance(value, bool):
        return "Must be a boolean"
    return None


def is_array(value: Any, *_: Any) -> str | None:
    if not isinstance(value, list | tuple):
        return "Value is not an array"
    return None


def is_object(value: Any, *_: Any) -> str | None:
    if isinstance(value, list | tuple):
        return "Must be an object, but got an array"
    if not isinstance(value, Mapping):
        return "Must be an object"
    return None


def is_date(value: Any, *_: Any) -> str | None:
    if not value:
        return "Date value is empty"
    if not isinstance(value, date):
        return "Value is not a date"
    return None


def is_required(value: Any, *_: Any) -> str | None:
    """Fail on None and on empty strings/collections; numbers and bools pass."""
    if isinstance(value, bool) or _is_number_value(value):
        return None
    if value is None:
        return "A value is required"
    if isinstance(value, Sized) and len(value) == 0:
        return "A value is required"
    return None


def max_number(maximum: float) -> ValueValidator:
    def _max_number(value: Any, *_: Any) -> str | None:
        number_error = is_number(value)
        if number_error:
            return number_error
        if value > maximum:
            return f"The maximum is {maximum}"
        return None

    return _max_number


def min_number(minimum: float) -> ValueValidator:
    def _min_number(value: Any, *_: Any) -> str | None:
        number_error = is_number(value)
        if number_error:
            return number_error
        if value < minimum:
            return f"The minimum is {minimum}"
        return None

    return _min_number


def max_text_length(maximum: int) -> ValueValidator:
    def _max_text_length(value: Any, *_: Any) -> str | None:
        string_error = is_string(value)
        if string_error:
            return string_error
        if len(value) > maximum:
            return f"The maximum length is {maximum}"
        return None

    return _max_text_length


def min_text_length(minimum: int) -> ValueValidator:
    def _min_text_length(value: Any, *_: Any) -> str | None:
        string_error = is_string(value)
        if string_error:
            return string_error
        if len(value) < minimum:
            return f"The minimum length is {minimum}"
        return None

    return _min_text_length


def meets_regex(
    regex: str | re.Pattern[str],
    flags: int = 0,
    error_message: str = "Format was invalid",
) -> ValueValidator:
    pattern = regex if isinstance(regex, re.Pattern) else re.compile(regex, flags)

    def _meets_regex(value: Any, *_: Any) -> str | None:
        if pattern.search(str(value)) is None:
            return error_message
        return None

    return _meets_regex


def choices(choice_list: Sequence[Any]) -> ValueValidator:
    """Every value (or every element of a list value) must be a choice."""
    allowed = list(choice_list)

    def _choices(value: Any, *_: Any) -> str | None:
        if isinstance(value, list | tuple):
            for v in value:
                if v not in allowed:
                    return f"{v} is not a valid choice"
            return None
        if value not in allowed:
            return f"{value} is not a valid choice"
        return None

    return _choices


def multi_validator(validators: Sequence[ValueValidator]) -> ValueValidator:
    """Run sync value validators in order; return the first error."""

    def _multi(value: Any, *_: Any) -> str | None:
        for validator in validators:
            error = validator(value)
            if error:
                return error
        return None

    return _multi


_PRIMITIVE_TYPE_VALIDATORS: dict[str, ValueValidator] = {
    "boolean": is_boolean,
    "string": is_string,
    "integer": is_integer,
    "number": is_number,
    "object": is_object,
}


def array_type(value_type: str) -> ValueValidator:
    """The value must be a list whose elements all have *value_type*."""
    try:
        element_validator = _PRIMITIVE_TYPE_VALIDATORS[str(value_type)]
    except KeyError:
        msg = f"Unknown array element type {value_type!r}"
        raise ValueError(msg) from None

    def _array_type(value: Any, *_: Any) -> str | None:
        array_error = is_array(value)
        if array_error:
            return array_error
        for element in value:
            error = element_validator(element)
            if error:
                return error
        return None

    return _array_type


def object_validator(
    key_to_validators: Mapping[str, ValueValidator | Sequence[ValueValidator]],
    *,
    required: bool = False,
) -> ValueValidator:
    """Validate selected keys of a mapping value, joining their errors."""

    def _object_validator(value: Any, *_: Any) -> str | None:
        if not value:
            if required:
                return "Must include a value"
            return None
        not_object = is_object(value)
        if not_object:
            return not_object
        errors: list[str] = []
        for key, item in value.items():
            validators = key_to_validators.get(key)
            if validators is None:
                continue
            validator = (
                multi_validator(validators)
                if isinstance(validators, Sequence)
                else validators
            )
            error = validator(item)
            if error:
                errors.append(f"{key}: {error}")
        return ", ".join(errors) or None

    return _object_validator


def optional_validator(validator: ValueValidator) -> ValueValidator:
    """Skip *validator* when the value is None."""

    def _optional(value: Any, *_: Any) -> str | None:
        if value is None:
            return None
        return validator(value)

    return _optional


def is_valid_uuid(value: Any, *_: Any) -> str | None:
    string_error = is_string(value)
    if string_error:
        return string_error
    return meets_regex(UUID_PATTERN, error_message="Invalid UUID format")(value)


def reference_type_match(referenced_model: Any) -> ValueValidator:
    """The resolved reference must come from *referenced_model*.

    *referenced_model* may be a zero-argument callable, resolved at
    validation time so that self-referencing models work. Raw ids (a
    reference that was never fetched) are not checked.
    """

    def _reference_type_match(value: Any, *_: Any) -> str | None:
        if not value:
            return "Must include a value"
        if not isinstance(value, ModelInstanceLike):
            return None
        model = referenced_model() if callable(referenced_model) else referenced_model
        expected = model.name
        actual = value.get_model().name
        if expected != actual:
            return f"Model should be {expected} instead, received {actual}"
        return None

    return _reference_type_match


# ---------------------------------------------------------------------------
# Composition
# ---------------------------------------------------------------------------


def _flatten_errors(results: Sequence[Any]) -> list[str]:
    errors: list[str] = []
    for result in results:
        if not result:
            continue
        if isinstance(result, str):
            errors.append(result)
        else:
            errors.extend(e for e in result if e)
    # dedupe, first occurrence wins
    return list(dict.fromkeys(errors))


def aggregate_validator(
    value: Any,
    validators: PropertyValidatorComponent | Sequence[PropertyValidatorComponent],
) -> Callable[..., Any]:
    """Run every component against *value* concurrently; collect errors."""
    to_do = list(validators) if isinstance(validators, Sequence) else [validators]

    async def _aggregate(
        instance: Any, instance_data: Mapping[str, Any], context: ValidatorContext
    ) -> list[str]:
        results = await asyncio.gather(
            *(resolve(v(value, instance, instance_data, context)) for v in to_do)
        )
        return _flatten_errors(results)

    return _aggregate


def _config_validators(config: PropertyConfig) -> list[PropertyValidatorComponent]:
    """Synthesize validators from the configuration shorthands."""
    validators: list[PropertyValidatorComponent] = []
    if config.required:
        validators.append(is_required)
    if config.is_integer:
        validators.append(is_integer)
    if config.is_number:
        validators.append(is_number)
    if config.is_string:
        validators.append(is_string)
    if config.is_array:
        validators.append(is_array)
    if config.is_boolean:
        validators.append(is_boolean)
    if config.choices:
        validators.append(choices(config.choices))
    if config.max_length is not None:
        validators.append(max_text_length(config.max_length))
    if config.min_length is not None:
        validators.append(min_text_length(config.min_length))
    if config.max_value is not None:
        validators.append(max_number(config.max_value))
    if config.min_value is not None:
        validators.append(min_number(config.min_value))
    return validators


def create_property_validator(config: PropertyConfig) -> Callable[..., Any]:
    """Build ``validator(value, instance, instance_data, context) -> list[str]``."""
    validators = [*_config_validators(config), *config.validators]
    required = config.required or is_required in validators

    async def _property_validator(
        value: Any,
        instance: Any,
        instance_data: Mapping[str, Any],
        context: ValidatorContext,
    ) -> list[str]:
        if not value and not required:
            return []
        return await aggregate_validator(value, validators)(instance, instance_data, context)

    return _property_validator


def create_model_validator(
    property_validators: Mapping[str, Callable[..., Any]],
    model_validators: Sequence[ModelValidatorComponent] = (),
) -> Callable[..., Any]:
    """Build ``validator(instance, context) -> ModelErrors``.

    Only failing keys appear in the result; an empty dict means valid.
    """

    async def _model_validator(instance: Any, context: ValidatorContext) -> ModelErrors:
        if instance is None:
            msg = "Instance cannot be empty"
            raise ValueError(msg)
        instance_data = await instance.to_obj()
        keys = list(property_validators)
        property_results, model_results = await asyncio.gather(
            asyncio.gather(
                *(property_validators[k](instance, instance_data, context) for k in keys)
            ),
            asyncio.gather(
                *(resolve(v(instance, instance_data, context)) for v in model_validators)
            ),
        )
        errors: ModelErrors = {
            key: list(result) for key, result in zip(keys, property_results, strict=True) if result
        }
        overall = [message for message in model_results if message]
        if overall:
            errors[OVERALL_KEY] = overall
        return errors

    return _model_validator


def is_valid(errors: Mapping[str, Sequence[str]]) -> bool:
    return len(errors) < 1
