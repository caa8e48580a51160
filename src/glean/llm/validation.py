"""Validate raw LLM output against a pydantic schema.

The validator never raises on bad input. It returns either ``Validated``
(carrying the parsed model) or ``Invalid`` (carrying field-level errors), so
callers decide whether a mismatch is worth another attempt.
"""

from __future__ import annotations

import json
import re
from dataclasses import dataclass, field
from typing import Any, Generic, TypeVar, Union

from pydantic import BaseModel, ValidationError

ModelT = TypeVar("ModelT", bound=BaseModel)

_FENCE_RE = re.compile(r"^```(?:json)?\s*(.*?)\s*```$", re.DOTALL)
_OPENING_RE = re.compile(r"[{[]")
_decoder = json.JSONDecoder()


@dataclass(frozen=True)
class FieldError:
    """One schema violation: where, what, and what was expected vs received."""

    path: str
    message: str
    expected: str | None = None
    received: str | None = None

    def __str__(self) -> str:
        text = f"{self.path}: {self.message}"
        if self.expected or self.received:
            text += f" (expected {self.expected or 'valid'}, received {self.received or 'invalid'})"
        return text


@dataclass(frozen=True)
class Validated(Generic[ModelT]):
    value: ModelT
    ok: bool = True


@dataclass(frozen=True)
class Invalid:
    errors: list[FieldError] = field(default_factory=list)
    ok: bool = False

    def describe(self) -> str:
        return "; ".join(str(e) for e in self.errors)


ValidationResult = Union[Validated[ModelT], Invalid]


def extract_json(text: str) -> str:
    """Strip markdown code fences and surrounding prose from a JSON reply.

    The first complete JSON value is kept and anything after it is dropped,
    so a reply that opens or ends with a remark still parses.
    """
    text = text.strip()
    match = _FENCE_RE.match(text)
    if match:
        return match.group(1)
    for opening in _OPENING_RE.finditer(text):
        try:
            _, end = _decoder.raw_decode(text, opening.start())
        except json.JSONDecodeError:
            continue
        return text[opening.start() : end]
    return text


def _type_name(value: Any) -> str:
    if value is None:
        return "null"
    if isinstance(value, bool):
        return "boolean"
    if isinstance(value, (int, float)):
        return "number"
    if isinstance(value, str):
        return "string"
    if isinstance(value, list):
        return "array"
    if isinstance(value, dict):
        return "object"
    return type(value).__name__


class SchemaValidator:
    """Parse JSON text and check it against a pydantic model."""

    def validate(self, raw: str, schema: type[ModelT]) -> ValidationResult[ModelT]:
        try:
            data = json.loads(extract_json(raw))
        except json.JSONDecodeError as exc:
            return Invalid([FieldError(path="$", message=f"response is not valid JSON ({exc.msg})")])
        return self.validate_data(data, schema)

    def validate_data(self, data: Any, schema: type[ModelT]) -> ValidationResult[ModelT]:
        try:
            return Validated(schema.model_validate(data))
        except ValidationError as exc:
            return Invalid([self._to_field_error(err) for err in exc.errors()])

    @staticmethod
    def _to_field_error(err: dict) -> FieldError:
        path = ".".join(str(part) for part in err.get("loc", ())) or "$"
        kind = err.get("type", "")
        expected = kind.split("_")[0] if kind.endswith("_type") else None
        received = "missing" if kind == "missing" else _type_name(err.get("input"))
        return FieldError(
            path=path,
            message=err.get("msg", "invalid value"),
            expected=expected,
            received=received,
        )
