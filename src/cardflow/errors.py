"""Error taxonomy and the uniform violation type shared by every rule.

Every rule in the engine returns a list of :class:`Violation` values (an
empty list means the rule passed).  :class:`ViolationCollector` decides what
to do with them: in apply mode the first violation is raised as its matching
:class:`CardflowError` subclass, in validate-only mode all of them are kept
for the report.
"""

from __future__ import annotations

from collections.abc import Iterable
import dataclasses
from dataclasses import dataclass
from typing import Any, ClassVar


class CardflowError(ValueError):
    """Base class for every rejected mutation or lookup-service failure."""

    code: ClassVar[str] = "validation_error"

    def __init__(self, message: str, *, details: dict[str, Any] | None = None) -> None:
        self.details: dict[str, Any] = dict(details or {})
        super().__init__(message)

    @property
    def message(self) -> str:
        return str(self)

    def to_dict(self) -> dict[str, Any]:
        """Structured envelope used by the MCP and HTTP surfaces."""
        return {"error": self.message, "code": self.code, **self.details}


class UnknownListKindError(CardflowError):
    code = "unknown_list_kind"


class EmptyVocabularySourceError(CardflowError):
    code = "empty_vocabulary_source"


class InvalidVocabularyValueError(CardflowError):
    code = "invalid_vocabulary_value"


class InvalidReferenceFormatError(CardflowError):
    code = "invalid_reference_format"


class ProtectedFieldViolationError(CardflowError):
    code = "protected_field_violation"


class MissingRequiredFieldsError(CardflowError):
    code = "missing_required_fields"

    @property
    def missing_fields(self) -> list[str]:
        return list(self.details.get("missing_fields", []))


class TransitionNotAllowedError(CardflowError):
    code = "transition_not_allowed"


class ValidatorOnlyTransitionError(CardflowError):
    code = "validator_only_transition"


class SprintNotFoundError(CardflowError):
    code = "sprint_not_found"


class NoSprintsInProjectError(CardflowError):
    code = "no_sprints_in_project"


class NoValidatorAssignableError(CardflowError):
    code = "no_validator_assignable"


class NoStakeholdersInProjectError(CardflowError):
    code = "no_stakeholders_in_project"


class DirectPriorityNotAllowedError(CardflowError):
    code = "direct_priority_not_allowed"


class InvalidSubdocumentError(CardflowError):
    code = "invalid_subdocument"


class EpicRequiredError(CardflowError):
    code = "epic_required"


class EpicNotFoundError(CardflowError):
    code = "epic_not_found"


class DirectCloseWithoutDocumentationError(MissingRequiredFieldsError):
    code = "direct_close_without_documentation"


class InvalidFieldValueError(CardflowError):
    code = "invalid_field_value"


class InvalidCardTypeError(CardflowError):
    code = "invalid_card_type"


class StaleWriteError(CardflowError):
    code = "stale_write"


_ERRORS_BY_CODE: dict[str, type[CardflowError]] = {
    cls.code: cls
    for cls in (
        UnknownListKindError,
        EmptyVocabularySourceError,
        InvalidVocabularyValueError,
        InvalidReferenceFormatError,
        ProtectedFieldViolationError,
        MissingRequiredFieldsError,
        TransitionNotAllowedError,
        ValidatorOnlyTransitionError,
        SprintNotFoundError,
        NoSprintsInProjectError,
        NoValidatorAssignableError,
        NoStakeholdersInProjectError,
        DirectPriorityNotAllowedError,
        InvalidSubdocumentError,
        EpicRequiredError,
        EpicNotFoundError,
        DirectCloseWithoutDocumentationError,
        InvalidFieldValueError,
        InvalidCardTypeError,
        StaleWriteError,
    )
}


def error_class_for(kind: str) -> type[CardflowError]:
    return _ERRORS_BY_CODE.get(kind, CardflowError)


@dataclass(frozen=True)
class Violation:
    """One failed rule: its kind (an error code), a message, and structured detail."""

    kind: str
    message: str
    field: str | None = None
    details: dict[str, Any] = dataclasses.field(default_factory=dict)

    @classmethod
    def from_error(cls, exc: CardflowError, field_name: str | None = None) -> Violation:
        return cls(kind=exc.code, message=exc.message, field=field_name, details=dict(exc.details))

    def as_error(self) -> CardflowError:
        details = dict(self.details)
        if self.field is not None:
            details.setdefault("field", self.field)
        return error_class_for(self.kind)(self.message, details=details)

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {"kind": self.kind, "message": self.message}
        if self.field is not None:
            data["field"] = self.field
        data.update(self.details)
        return data


class ViolationCollector:
    """Apply (fail-fast) or validate-only (collect-all) strategy over rule results."""

    def __init__(self, *, fail_fast: bool) -> None:
        self.fail_fast = fail_fast
        self.violations: list[Violation] = []

    def add(self, violations: Iterable[Violation]) -> None:
        for violation in violations:
            if self.fail_fast:
                raise violation.as_error()
            self.violations.append(violation)

    @property
    def ok(self) -> bool:
        return not self.violations

    def of_kind(self, *kinds: str) -> list[Violation]:
        return [v for v in self.violations if v.kind in kinds]
