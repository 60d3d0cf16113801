"""Card type templates -- status tables, gates, and field requirements.

Provides TemplateRegistry for the per-type state machines.  Task cards have a
restricted transition table; bug cards move freely except into their closing
state; the remaining types carry metadata only and accept any status.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any, Literal

from cardflow.errors import (
    DirectCloseWithoutDocumentationError,
    InvalidCardTypeError,
    MissingRequiredFieldsError,
    TransitionNotAllowedError,
    ValidatorOnlyTransitionError,
    Violation,
)
from cardflow.subdocs import has_acceptance_content

logger = logging.getLogger(__name__)

StateCategory = Literal["open", "wip", "done"]
FieldType = Literal["text", "reference", "points", "date", "list", "boolean"]

_VALID_CATEGORIES: frozenset[str] = frozenset({"open", "wip", "done"})
_VALID_FIELD_TYPES: frozenset[str] = frozenset({"text", "reference", "points", "date", "list", "boolean"})
_VALID_GATES: frozenset[str] = frozenset({"blocked"})

POINT_FIELDS: frozenset[str] = frozenset({"devPoints", "businessPoints"})
BLOCKED_EITHER = "blockedByBusiness or blockedByDevelopment"


def status_key(status: Any) -> str:
    """Comparison key for statuses: lowercase with all whitespace removed."""
    if not isinstance(status, str):
        return ""
    return "".join(status.split()).lower()


# ---------------------------------------------------------------------------
# Frozen dataclasses
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class StateDefinition:
    """A named status within a type's workflow, mapped to a coarse category."""

    name: str
    category: StateCategory

    def __post_init__(self) -> None:
        if not self.name.strip():
            msg = "State name must not be empty"
            raise ValueError(msg)
        if self.category not in _VALID_CATEGORIES:
            allowed = sorted(_VALID_CATEGORIES)
            msg = f"Invalid category '{self.category}' for state '{self.name}': must be one of {allowed}"
            raise ValueError(msg)


@dataclass(frozen=True)
class TransitionDefinition:
    from_state: str
    to_state: str
    requires_fields: tuple[str, ...] = ()


@dataclass(frozen=True)
class FieldSchema:
    """A card field and the statuses at which it must be populated."""

    name: str
    type: FieldType
    description: str = ""
    required_at: tuple[str, ...] = ()

    def __post_init__(self) -> None:
        if self.type not in _VALID_FIELD_TYPES:
            allowed = sorted(_VALID_FIELD_TYPES)
            msg = f"Invalid field type '{self.type}' for field '{self.name}': must be one of {allowed}"
            raise ValueError(msg)


@dataclass(frozen=True)
class TypeTemplate:
    """Workflow and storage metadata for one card type."""

    type: str
    display_name: str
    card_type: str
    group: str
    section: str
    abbreviation: str
    states: tuple[StateDefinition, ...]
    initial_state: str
    transitions: tuple[TransitionDefinition, ...]
    fields_schema: tuple[FieldSchema, ...]
    restricted: bool = False
    status_list: str | None = None
    priority_list: str | None = None
    default_priority: str | None = None
    leave_initial_requires: tuple[str, ...] = ()
    validator_only_states: tuple[str, ...] = ()
    validator_only_hint: str = ""
    closing_states: tuple[str, ...] = ()
    state_gates: tuple[tuple[str, str], ...] = ()


@dataclass(frozen=True)
class TransitionResult:
    """Outcome of checking one status change against a type's rules."""

    allowed: bool
    kind: str | None = None
    reason: str | None = None
    missing_fields: tuple[str, ...] = ()
    allowed_targets: tuple[str, ...] = ()

    def to_violation(self) -> Violation | None:
        if self.allowed:
            return None
        details: dict[str, Any] = {}
        if self.missing_fields:
            details["missing_fields"] = list(self.missing_fields)
        if self.allowed_targets:
            details["allowed_transitions"] = list(self.allowed_targets)
        return Violation(kind=self.kind or TransitionNotAllowedError.code, message=self.reason or "", field="status", details=details)


@dataclass(frozen=True)
class TransitionOption:
    """Readiness of one possible target status."""

    to: str
    allowed: bool
    missing_fields: tuple[str, ...]
    reason: str | None

    def to_dict(self) -> dict[str, Any]:
        return {"allowed": self.allowed, "missingFields": list(self.missing_fields), "reason": self.reason}


_ALLOWED = TransitionResult(allowed=True)


# ---------------------------------------------------------------------------
# TemplateRegistry
# ---------------------------------------------------------------------------


class TemplateRegistry:
    """Holds the card type templates and answers transition questions."""

    def __init__(self) -> None:
        self._types: dict[str, TypeTemplate] = {}
        self._aliases: dict[str, str] = {}
        self._transition_cache: dict[str, dict[tuple[str, str], TransitionDefinition]] = {}

    @classmethod
    def with_builtins(cls) -> TemplateRegistry:
        from cardflow.templates_data import BUILT_IN_TYPES

        registry = cls()
        for raw in BUILT_IN_TYPES:
            registry._register_type(cls.parse_type_template(raw))
        return registry

    @staticmethod
    def parse_type_template(raw: dict[str, Any]) -> TypeTemplate:
        """Parse a type template from a JSON-compatible dict.

        Raises:
            ValueError: If a state, field, or gate definition is invalid.
            KeyError: If required keys are missing from the dict.
        """
        type_name = raw["type"]
        states = tuple(StateDefinition(name=s["name"], category=s["category"]) for s in raw.get("states", []))
        transitions = tuple(
            TransitionDefinition(from_state=t["from"], to_state=t["to"], requires_fields=tuple(t.get("requires_fields", ())))
            for t in raw.get("transitions", [])
        )
        fields = tuple(
            FieldSchema(
                name=f["name"],
                type=f["type"],
                description=f.get("description", ""),
                required_at=tuple(f.get("required_at", ())),
            )
            for f in raw.get("fields_schema", [])
        )
        gates = tuple(raw.get("state_gates", {}).items())
        for state, gate in gates:
            if gate not in _VALID_GATES:
                msg = f"Type '{type_name}': unknown gate '{gate}' on state '{state}'"
                raise ValueError(msg)

        known = {status_key(s.name) for s in states}
        for t in transitions:
            for name in (t.from_state, t.to_state):
                if status_key(name) not in known:
                    msg = f"Type '{type_name}': transition references unknown state '{name}'"
                    raise ValueError(msg)

        logger.debug("Parsed template for type: %s", type_name)
        return TypeTemplate(
            type=type_name,
            display_name=raw["display_name"],
            card_type=raw["card_type"],
            group=raw["group"],
            section=raw["section"],
            abbreviation=raw["abbreviation"],
            states=states,
            initial_state=raw["initial_state"],
            transitions=transitions,
            fields_schema=fields,
            restricted=bool(raw.get("restricted", False)),
            status_list=raw.get("status_list"),
            priority_list=raw.get("priority_list"),
            default_priority=raw.get("default_priority"),
            leave_initial_requires=tuple(raw.get("leave_initial_requires", ())),
            validator_only_states=tuple(raw.get("validator_only_states", ())),
            validator_only_hint=raw.get("validator_only_hint", ""),
            closing_states=tuple(raw.get("closing_states", ())),
            state_gates=gates,
        )

    def _register_type(self, tpl: TypeTemplate) -> None:
        logger.debug("Registering type: %s (%d states)", tpl.type, len(tpl.states))
        self._types[tpl.type] = tpl
        for alias in (tpl.type, tpl.card_type, tpl.group, tpl.section.lower(), tpl.abbreviation.lower()):
            self._aliases[alias.lower()] = tpl.type
        self._transition_cache[tpl.type] = {(status_key(t.from_state), status_key(t.to_state)): t for t in tpl.transitions}

    # -- Queries ------------------------------------------------------------

    def get_type(self, type_name: str) -> TypeTemplate | None:
        """Look up a type by name, card type (``task-card``), group or abbreviation."""
        if not isinstance(type_name, str):
            return None
        canonical = self._aliases.get(type_name.strip().lower())
        return self._types.get(canonical) if canonical else None

    def require_type(self, type_name: str) -> TypeTemplate:
        tpl = self.get_type(type_name)
        if tpl is None:
            valid = ", ".join(self._types)
            msg = f'Invalid card type "{type_name}". Valid types: {valid}'
            raise InvalidCardTypeError(msg, details={"value": type_name, "valid_values": list(self._types)})
        return tpl

    def type_for_abbreviation(self, abbreviation: str) -> TypeTemplate | None:
        for tpl in self._types.values():
            if tpl.abbreviation == abbreviation:
                return tpl
        return None

    def list_types(self) -> list[TypeTemplate]:
        return list(self._types.values())

    def canonical_state(self, tpl: TypeTemplate, status: str) -> str:
        """Template spelling of *status* when the template knows it."""
        key = status_key(status)
        for state in tpl.states:
            if status_key(state.name) == key:
                return state.name
        return status

    def is_initial(self, tpl: TypeTemplate, status: Any) -> bool:
        return status_key(status) == status_key(tpl.initial_state)

    # -- Field checks -------------------------------------------------------

    @staticmethod
    def is_field_populated(name: str, fields: Mapping[str, Any]) -> bool:
        """Whether *name* counts as filled in for gate purposes.

        Blank strings, empty lists and ``None`` are unpopulated.  Point fields
        must be positive numbers.  ``acceptanceCriteria`` is satisfied by
        free text or by a structured scenario with content.
        """
        if name == "acceptanceCriteria":
            return has_acceptance_content(fields)
        value = fields.get(name)
        if name in POINT_FIELDS:
            return isinstance(value, int | float) and not isinstance(value, bool) and value > 0
        if value is None or value is False:
            return False
        if isinstance(value, str):
            return value.strip() != ""
        if isinstance(value, list | dict):
            return len(value) > 0
        return True

    def _gate_missing(self, gate: str, fields: Mapping[str, Any]) -> list[str]:
        if gate == "blocked":
            business = fields.get("blockedByBusiness") is True
            development = fields.get("blockedByDevelopment") is True
            if not (business or development):
                return [BLOCKED_EITHER]
            required = (["bbbWhy", "bbbWho"] if business else []) + (["bbdWhy", "bbdWho"] if development else [])
            return [f for f in required if not self.is_field_populated(f, fields)]
        return []

    def validate_fields_for_state(self, type_name: str, state: str, fields: Mapping[str, Any]) -> list[str]:
        """Fields required at *state* (including its gate) that are not yet populated."""
        tpl = self.get_type(type_name)
        if tpl is None:
            return []
        key = status_key(state)
        missing = [
            f.name
            for f in tpl.fields_schema
            if any(status_key(s) == key for s in f.required_at) and not self.is_field_populated(f.name, fields)
        ]
        for gated_state, gate in tpl.state_gates:
            if status_key(gated_state) == key:
                missing.extend(self._gate_missing(gate, fields))
        return missing

    def allowed_targets(self, tpl: TypeTemplate, from_state: str) -> list[str]:
        key = status_key(from_state)
        return [t.to_state for t in tpl.transitions if status_key(t.from_state) == key]

    # -- Transition validation ---------------------------------------------

    @staticmethod
    def _leave_initial_reason(noun: str, from_state: str, target: str, missing: list[str]) -> str:
        return f'Cannot move {noun} from "{from_state}" to "{target}": missing required fields: {", ".join(missing)}'

    def validate_transition(
        self,
        type_name: str,
        from_state: str,
        to_state: str,
        fields: Mapping[str, Any],
    ) -> TransitionResult:
        """Check a status change against the type's rules using the merged record *fields*.

        Check order: approval-only targets, the leave-initial field set,
        the transition table, then fields required at the target status.
        """
        tpl = self.get_type(type_name)
        if tpl is None or status_key(from_state) == status_key(to_state):
            return _ALLOWED

        target = self.canonical_state(tpl, to_state)
        noun = tpl.display_name.lower()

        if status_key(target) in {status_key(s) for s in tpl.validator_only_states}:
            return TransitionResult(
                allowed=False,
                kind=ValidatorOnlyTransitionError.code,
                reason=f'Cannot set {noun} status to "{target}": only validators can set this status. {tpl.validator_only_hint}'.strip(),
            )

        missing: list[str] = []
        leave_missing: list[str] = []
        if tpl.restricted:
            if self.is_initial(tpl, from_state) and tpl.leave_initial_requires:
                leave_missing = [f for f in tpl.leave_initial_requires if not self.is_field_populated(f, fields)]
            known_states = {status_key(s.name) for s in tpl.states}
            if status_key(from_state) in known_states:
                transition = self._transition_cache[tpl.type].get((status_key(from_state), status_key(target)))
                if transition is None and leave_missing:
                    return TransitionResult(
                        allowed=False,
                        kind=MissingRequiredFieldsError.code,
                        reason=self._leave_initial_reason(noun, from_state, target, leave_missing),
                        missing_fields=tuple(leave_missing),
                    )
                if transition is None:
                    targets = self.allowed_targets(tpl, from_state)
                    return TransitionResult(
                        allowed=False,
                        kind=TransitionNotAllowedError.code,
                        reason=(
                            f'Cannot transition {noun} from "{from_state}" to "{target}". '
                            f'Allowed transitions from "{from_state}": {", ".join(targets) or "none"}'
                        ),
                        allowed_targets=tuple(targets),
                    )
                missing = [f for f in transition.requires_fields if not self.is_field_populated(f, fields)]
            else:
                logger.debug("Status %r is not in the %s table; checking target requirements only", from_state, tpl.type)

        all_missing = tuple(dict.fromkeys(leave_missing + missing + self.validate_fields_for_state(tpl.type, target, fields)))
        if not all_missing:
            return _ALLOWED
        if leave_missing:
            return TransitionResult(
                allowed=False,
                kind=MissingRequiredFieldsError.code,
                reason=self._leave_initial_reason(noun, from_state, target, list(all_missing)),
                missing_fields=all_missing,
            )
        closing = status_key(target) in {status_key(s) for s in tpl.closing_states}
        kind = DirectCloseWithoutDocumentationError.code if closing else MissingRequiredFieldsError.code
        return TransitionResult(
            allowed=False,
            kind=kind,
            reason=f'Cannot set {noun} status to "{target}": missing required fields: {", ".join(all_missing)}',
            missing_fields=all_missing,
        )

    def evaluate_targets(
        self,
        type_name: str,
        current: str,
        targets: list[str],
        fields: Mapping[str, Any],
    ) -> list[TransitionOption]:
        """Readiness of every status in *targets* other than *current*."""
        options: list[TransitionOption] = []
        for target in targets:
            if status_key(target) == status_key(current):
                continue
            result = self.validate_transition(type_name, current, target, fields)
            options.append(
                TransitionOption(to=target, allowed=result.allowed, missing_fields=result.missing_fields, reason=result.reason)
            )
        return options

    def transition_rules(self, type_name: str) -> dict[str, Any]:
        """Static description of a type's rules, mirroring the checks above."""
        tpl = self.require_type(type_name)
        transitions: dict[str, list[str]] = {}
        per_transition: dict[str, list[str]] = {}
        for t in tpl.transitions:
            transitions.setdefault(t.from_state, []).append(t.to_state)
            required = list(tpl.leave_initial_requires) if self.is_initial(tpl, t.from_state) else []
            required += list(t.requires_fields)
            required += [f.name for f in tpl.fields_schema if t.to_state in f.required_at]
            per_transition[f"{t.from_state} -> {t.to_state}"] = list(dict.fromkeys(required))
        for closing in tpl.closing_states:
            per_transition[f"* -> {closing}"] = [f.name for f in tpl.fields_schema if closing in f.required_at]
        for s in tpl.states:
            if s.name not in transitions and tpl.restricted:
                transitions[s.name] = []
        gates = {
            state: {
                "requires": BLOCKED_EITHER,
                "blockedByBusiness": ["bbbWhy", "bbbWho"],
                "blockedByDevelopment": ["bbdWhy", "bbdWho"],
            }
            for state, gate in tpl.state_gates
            if gate == "blocked"
        }
        return {
            "type": tpl.type,
            "cardType": tpl.card_type,
            "restricted": tpl.restricted,
            "initialStatus": tpl.initial_state,
            "states": [{"name": s.name, "category": s.category} for s in tpl.states],
            "transitions": transitions if tpl.restricted else None,
            "requiredToLeaveInitial": list(tpl.leave_initial_requires),
            "requiredFieldsPerTransition": per_transition,
            "statusGates": gates,
            "validatorOnlyStatuses": list(tpl.validator_only_states),
        }
