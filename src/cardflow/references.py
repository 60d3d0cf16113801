"""Namespaced ID format checks for people referenced by cards."""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any

from cardflow.errors import InvalidReferenceFormatError, Violation

REFERENCE_PREFIXES: dict[str, str] = {
    "developer": "dev_",
    "codeveloper": "dev_",
    "validator": "stk_",
    "stakeholder": "stk_",
}


def reference_violation(role: str, value: Any) -> Violation | None:
    """Return a violation if *value* is set but lacks the prefix for *role*."""
    try:
        prefix = REFERENCE_PREFIXES[role]
    except KeyError:
        msg = f"Unknown reference role {role!r}; expected one of {sorted(REFERENCE_PREFIXES)}"
        raise ValueError(msg) from None
    if value is None or value == "":
        return None
    if isinstance(value, str) and value.startswith(prefix):
        return None
    label = role.capitalize()
    return Violation(
        kind=InvalidReferenceFormatError.code,
        message=f'Invalid {role} ID "{value}". {label} IDs must start with "{prefix}".',
        field=role,
        details={"expected_prefix": prefix, "actual_value": value},
    )


def validate_reference(role: str, value: Any) -> None:
    """Raise InvalidReferenceFormatError when *value* is malformed for *role*."""
    violation = reference_violation(role, value)
    if violation is not None:
        raise violation.as_error()


def collect_reference_violations(fields: Mapping[str, Any], roles: tuple[str, ...] | None = None) -> list[Violation]:
    """Check every reference role present in *fields*; never raises."""
    violations: list[Violation] = []
    for role in roles or tuple(REFERENCE_PREFIXES):
        if role not in fields:
            continue
        violation = reference_violation(role, fields[role])
        if violation is not None:
            violations.append(violation)
    return violations
