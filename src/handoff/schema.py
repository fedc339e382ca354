"""Schema validation adapter over pydantic.

Anything pydantic's TypeAdapter accepts can be used as a guard schema:
BaseModel subclasses, dataclasses, TypedDicts, ``list[int]``,
``Literal[...]`` and so on. Validation failures are reduced to FieldError
records; the guard only ever looks at the first one.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

from pydantic import TypeAdapter, ValidationError
from pydantic_core import PydanticSerializationError, to_json

from handoff.config import RECEIVED_PREVIEW_CHARS

_TOO_SMALL = frozenset({
    "too_short",
    "string_too_short",
    "greater_than",
    "greater_than_equal",
    "bytes_too_short",
})

_TOO_BIG = frozenset({
    "too_long",
    "string_too_long",
    "less_than",
    "less_than_equal",
    "bytes_too_long",
})

_ONE_OF = frozenset({"enum", "literal_error"})


@dataclass(frozen=True)
class FieldError:
    """A single field-level schema error.

    Attributes:
        path: Dotted location of the error, "" for the root value.
        message: pydantic's error message.
        code: pydantic's error type (e.g. "string_too_short").
        input: The offending input value.
        ctx: Extra error context from pydantic (limits, expected values).

    ``expected`` and ``received_type`` are derived from ``code``/``ctx``
    and ``input``.
    """

    path: str
    message: str
    code: str
    input: Any = None
    ctx: dict[str, Any] = field(default_factory=dict)

    @property
    def field_path(self) -> str:
        return self.path or "root"

    @property
    def expected_type(self) -> str | None:
        """Type name the schema wanted, for type-mismatch errors."""
        if self.code in ("model_type", "model_attributes_type", "dataclass_type"):
            return self.ctx.get("class_name", "object")
        for suffix in ("_type", "_parsing"):
            if self.code.endswith(suffix):
                return self.code[: -len(suffix)]
        return None

    @property
    def expected(self) -> str:
        """What the schema wanted: the type name if known, else the message."""
        return self.expected_type or self.message

    @property
    def received_type(self) -> str:
        return type(self.input).__name__


@dataclass(frozen=True)
class ValidationOutcome:
    """Result of validating one value against a schema."""

    ok: bool
    value: Any = None
    errors: tuple[FieldError, ...] = ()

    @property
    def first_error(self) -> FieldError | None:
        return self.errors[0] if self.errors else None


def compile_schema(schema: Any) -> TypeAdapter:
    """Build (or reuse) the TypeAdapter for a schema."""
    if isinstance(schema, TypeAdapter):
        return schema
    return TypeAdapter(schema)


def validate(adapter: TypeAdapter, value: Any) -> ValidationOutcome:
    """Validate ``value``; never raises for schema failures."""
    try:
        validated = adapter.validate_python(value)
    except ValidationError as exc:
        return ValidationOutcome(
            ok=False,
            errors=tuple(_to_field_error(err) for err in exc.errors(include_url=False)),
        )
    return ValidationOutcome(ok=True, value=validated)


def _to_field_error(err: dict[str, Any]) -> FieldError:
    return FieldError(
        path=".".join(str(part) for part in err.get("loc", ())),
        message=err.get("msg", "Invalid value"),
        code=err.get("type", "value_error"),
        input=err.get("input"),
        ctx=dict(err.get("ctx") or {}),
    )


def suggest_fix(error: FieldError) -> str:
    """Derive a short, actionable hint from the shape of a field error."""
    name = error.path or "value"

    if error.code in _TOO_SMALL:
        return f"Increase the length/value of '{name}'"
    if error.code in _TOO_BIG:
        return f"Decrease the length/value of '{name}'"
    if error.code in _ONE_OF:
        return f"'{name}' must be one of: {error.ctx.get('expected', '')}"

    expected = error.expected_type
    if expected is not None:
        return f"'{name}' should be {expected}, got {error.received_type}"

    return f"Fix '{name}': {error.message}"


def preview(value: Any, limit: int = RECEIVED_PREVIEW_CHARS) -> str:
    """JSON-ish preview of ``value``, cut to ``limit`` characters."""
    try:
        text = to_json(value, serialize_unknown=True).decode("utf-8", errors="replace")
    except (PydanticSerializationError, ValueError, TypeError):
        text = repr(value)
    return text[:limit]
