"""
Validation pipeline — turns a request payload plus a set of field rules
into either the cleaned values or a single ``ValidationFailed`` that lists
every violated field.

Rules are evaluated independently and all violations are accumulated
before raising, so a login request with neither email nor password
reports both fields.  Values that are present but ``None`` are treated
exactly like absent ones.
"""
import re
from dataclasses import dataclass
from typing import Any, Iterable, Mapping

from pydantic import BaseModel

from app.errors import ValidationFailed

BLANK = "can't be blank"
NOT_A_STRING = "must be a string"
NOT_A_STRING_LIST = "must be a list of strings"
INVALID = "is invalid"

EMAIL_PATTERN = re.compile(r"^[^@\s]+@[^@\s]+$")


@dataclass(frozen=True)
class FieldRule:
    """
    Constraints for one input field.

    ``kind`` is ``str`` or ``list`` (a list of strings).  ``allow_blank``
    only applies to strings: when False an empty or whitespace-only value
    is reported as blank.  For lists ``max_length`` bounds every entry.
    """

    name: str
    required: bool = True
    kind: type = str
    allow_blank: bool = False
    max_length: int | None = None
    pattern: re.Pattern | None = None


def _as_mapping(payload: Mapping | BaseModel | None) -> dict[str, Any]:
    if payload is None:
        return {}
    if isinstance(payload, BaseModel):
        return payload.model_dump(exclude_unset=True, by_alias=True)
    return dict(payload)


def _too_long(max_length: int) -> str:
    return f"is too long (maximum is {max_length} characters)"


def _check(rule: FieldRule, value: Any) -> list[str]:
    if rule.kind is list:
        if not isinstance(value, list) or not all(isinstance(v, str) for v in value):
            return [NOT_A_STRING_LIST]
        if rule.max_length is not None and any(len(v.strip()) > rule.max_length for v in value):
            return [_too_long(rule.max_length)]
        return []

    if not isinstance(value, str):
        return [NOT_A_STRING]
    if not rule.allow_blank and not value.strip():
        return [BLANK]

    problems = []
    if rule.max_length is not None and len(value) > rule.max_length:
        problems.append(_too_long(rule.max_length))
    if rule.pattern is not None and value and not rule.pattern.match(value):
        problems.append(INVALID)
    return problems


def validate(payload: Mapping | BaseModel | None, rules: Iterable[FieldRule]) -> dict[str, Any]:
    """
    Apply *rules* to *payload* and return the values for the fields that
    were supplied.

    Raises ``ValidationFailed`` carrying ``{field: [messages]}`` for every
    rule that failed.  Fields with no rule pass through untouched.
    """
    data = {k: v for k, v in _as_mapping(payload).items() if v is not None}
    errors: dict[str, list[str]] = {}

    for rule in rules:
        if rule.name not in data:
            if rule.required:
                errors[rule.name] = [BLANK]
            continue
        problems = _check(rule, data[rule.name])
        if problems:
            errors[rule.name] = problems

    if errors:
        raise ValidationFailed(errors)
    return data


def clean_tags(tags: list[str] | None) -> list[str]:
    """Strip tag names, drop blanks and duplicates, keep first-seen order."""
    seen: dict[str, None] = {}
    for tag in tags or []:
        name = tag.strip()
        if name:
            seen.setdefault(name, None)
    return list(seen)
