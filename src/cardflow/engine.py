"""Card lifecycle engine: decides whether a create or update is admissible.

Every mutation goes through the same rule stages, in this order:

1. protected fields (immutable identity and audit attributes)
2. vocabulary and type rules (statuses, bug priorities, point scale,
   direct task priority, dates)
3. status transition (approval-only targets, required field gates)
4. sub-document shape (commits, plan, acceptance scenarios, user stories)
5. reference formats (``dev_`` / ``stk_`` namespaces)
6. cross-entity existence (epic, sprint)

In apply mode the first violation raises its :class:`CardflowError`; in
validate-only mode every violation is gathered into one report.  The store
is written only after every stage has passed.
"""

from __future__ import annotations

import logging
import re
from collections.abc import Callable
from datetime import date
from typing import Any

from cardflow.assignment import Directory, StoreDirectory, resolve_validator
from cardflow.core import card_collection_path, card_path
from cardflow.db_base import StoreProtocol, _now_iso, _today_iso
from cardflow.errors import (
    CardflowError,
    DirectPriorityNotAllowedError,
    EpicNotFoundError,
    EpicRequiredError,
    InvalidFieldValueError,
    InvalidVocabularyValueError,
    MissingRequiredFieldsError,
    ProtectedFieldViolationError,
    Violation,
    ViolationCollector,
)
from cardflow.lists import ListService, TtlCache
from cardflow.priority import DEFAULT_SCALE, calculate_priority, scale_values
from cardflow.projects import get_project
from cardflow.references import collect_reference_violations
from cardflow.sprints import find_active_sprint, load_sprints, sprint_violations
from cardflow.subdocs import (
    merge_commits,
    normalize_plan,
    render_description,
    validate_acceptance_scenarios,
    validate_commits,
    validate_description_structured,
    validate_plan,
    well_formed_commits,
)
from cardflow.templates import TemplateRegistry, TypeTemplate, status_key
from cardflow.types.core import ProjectConfig

logger = logging.getLogger(__name__)

PROTECTED_FIELDS: tuple[str, ...] = ("cardId", "recordKey", "cardType", "group", "projectId", "createdAt", "createdBy")
REFERENCE_ROLES: tuple[str, ...] = ("developer", "codeveloper", "validator")
POINT_FIELDS: tuple[str, ...] = ("devPoints", "businessPoints")
DATE_FIELDS: tuple[str, ...] = ("startDate", "endDate")
PLAN_FIELD = "implementationPlan"
RELATIONS_FIELD = "relatedTasks"
RELATION_TYPES: dict[str, tuple[str, str]] = {"related": ("related", "related"), "blocks": ("blocks", "blockedBy")}
RELATION_ACTIONS: tuple[str, ...] = ("add", "remove")

IN_PROGRESS = "In Progress"
AWAITING_VALIDATION = "To Validate"
BUG_FIXED = "Fixed"
PLAN_EFFORT_THRESHOLD = 3

_DATE_PATTERN = re.compile(r"^\d{4}-\d{2}-\d{2}$")


def projected_state(current: dict[str, Any], proposed: dict[str, Any]) -> dict[str, Any]:
    """The record as it would be after applying *proposed* (shallow merge)."""
    return {**current, **proposed}


def _warning(code: str, message: str) -> dict[str, str]:
    return {"code": code, "message": message}


def _is_iso_date(value: Any) -> bool:
    if not isinstance(value, str) or not _DATE_PATTERN.match(value):
        return False
    try:
        date.fromisoformat(value)
    except ValueError:
        return False
    return True


def _with_relation(
    relations: Any, other_id: str, project_id: str, other_title: str, relation: str, action: str
) -> list[dict[str, Any]]:
    """*relations* with one link to *other_id* of kind *relation* added or removed."""
    links = [dict(r) for r in relations if isinstance(r, dict)] if isinstance(relations, list) else []
    if action == "remove":
        return [r for r in links if not (r.get("id") == other_id and r.get("type") == relation)]
    for link in links:
        if link.get("id") == other_id and link.get("type") == relation:
            link["title"] = other_title
            return links
    links.append({"id": other_id, "projectId": project_id, "title": other_title, "type": relation})
    return links


def _summary(card: dict[str, Any]) -> dict[str, Any]:
    keys = ("cardId", "title", "status", "developer", "validator", "sprint", "devPoints", "businessPoints", "priority")
    return {k: card.get(k) for k in keys}


class CardEngine:
    """Admissibility decisions and derived values for card mutations.

    Collaborators are injected: the document store, the vocabulary service
    (sharing one process-wide cache), the people directory, and a ``today``
    clock returning ``YYYY-MM-DD``.
    """

    def __init__(
        self,
        store: StoreProtocol,
        *,
        lists: ListService | None = None,
        directory: Directory | None = None,
        registry: TemplateRegistry | None = None,
        today: Callable[[], str] = _today_iso,
        ai_developer: str | None = None,
        operator_developer: str | None = None,
    ) -> None:
        self.store = store
        self.lists = lists if lists is not None else ListService(store)
        self.directory = directory if directory is not None else StoreDirectory(store)
        self.registry = registry if registry is not None else TemplateRegistry.with_builtins()
        self.today = today
        self.ai_developer = ai_developer
        self.operator_developer = operator_developer

    @classmethod
    def from_config(cls, store: StoreProtocol, config: ProjectConfig, *, cache: TtlCache | None = None) -> CardEngine:
        if cache is None:
            cache = TtlCache(float(config.get("list_cache_ttl", 300)))
        return cls(
            store,
            lists=ListService(store, cache),
            ai_developer=config.get("ai_developer"),
            operator_developer=config.get("developer_id"),
        )

    # -- lookups -------------------------------------------------------------

    def _scale(self, project: dict[str, Any]) -> str:
        scale = project.get("scoringSystem") or DEFAULT_SCALE
        scale_values(scale)
        return str(scale)

    def _records(self, project_id: str, tpl: TypeTemplate) -> dict[str, dict[str, Any]]:
        records = self.store.children(card_collection_path(project_id, tpl.section))
        return {key: {**value, "recordKey": key} for key, value in records.items() if isinstance(value, dict)}

    def _find_card(self, project_id: str, card_id: str) -> tuple[TypeTemplate, dict[str, Any]]:
        parts = card_id.split("-") if isinstance(card_id, str) else []
        guessed = self.registry.type_for_abbreviation(parts[-2]) if len(parts) >= 3 else None
        candidates = [guessed] if guessed else []
        candidates += [t for t in self.registry.list_types() if t is not guessed]
        for tpl in candidates:
            for record in self._records(project_id, tpl).values():
                if record.get("cardId") == card_id:
                    return tpl, record
        msg = f"Card not found: {card_id}"
        raise KeyError(msg)

    def get_card(self, project_id: str, card_id: str) -> dict[str, Any]:
        """Find a card by its external ID.  Tasks include ``availableTransitions``."""
        get_project(self.store, project_id)
        tpl, record = self._find_card(project_id, card_id)
        if tpl.restricted:
            record["availableTransitions"] = self.calculate_available_transitions(record, tpl.type)
        return record

    def list_cards(
        self,
        project_id: str,
        card_type: str,
        *,
        status: str | None = None,
        sprint: str | None = None,
        developer: str | None = None,
        year: int | str | None = None,
    ) -> list[dict[str, Any]]:
        tpl = self.registry.require_type(card_type)
        get_project(self.store, project_id)
        cards = list(self._records(project_id, tpl).values())
        if status is not None:
            cards = [c for c in cards if status_key(c.get("status")) == status_key(status)]
        if sprint is not None:
            cards = [c for c in cards if c.get("sprint") == sprint]
        if developer is not None:
            cards = [c for c in cards if developer in (c.get("developer"), c.get("codeveloper"))]
        if year is not None:
            cards = [c for c in cards if str(c.get("year")) == str(year)]
        return cards

    def list_sprints(self, project_id: str, *, year: int | str | None = None) -> list[dict[str, Any]]:
        return self.list_cards(project_id, "sprint", year=year)

    def get_active_sprint(self, project_id: str) -> dict[str, Any] | None:
        get_project(self.store, project_id)
        return find_active_sprint(self.store, project_id, today=self.today)

    # -- introspection -------------------------------------------------------

    def get_transition_rules(self, card_type: str) -> dict[str, Any]:
        """Status tables and field gates for a type, plus its current vocabulary."""
        tpl = self.registry.require_type(card_type)
        rules = self.registry.transition_rules(tpl.type)
        rules["validStatuses"] = self.lists.texts(tpl.status_list) if tpl.status_list else None
        if tpl.priority_list:
            rules["validPriorities"] = self.lists.texts(tpl.priority_list)
        return rules

    def calculate_available_transitions(self, card: dict[str, Any], card_type: str | None = None) -> dict[str, Any]:
        """Per target status: whether *card* could move there now, and what is missing."""
        tpl = self.registry.require_type(card_type or card.get("cardType", ""))
        current = card.get("status") or tpl.initial_state
        fields = dict(card)
        project_id = card.get("projectId")
        if tpl.type == "task" and project_id and self.registry.is_initial(tpl, current):
            if not self.registry.is_field_populated("sprint", fields):
                active = find_active_sprint(self.store, project_id, today=self.today)
                if active is not None:
                    fields["sprint"] = active.get("cardId") or active["recordKey"]
        targets = self.lists.texts(tpl.status_list) if tpl.status_list else [s.name for s in tpl.states]
        options = self.registry.evaluate_targets(tpl.type, current, targets, fields)
        return {"currentStatus": current, "perTargetStatus": {o.to: o.to_dict() for o in options}}

    # -- rule stages ---------------------------------------------------------

    def _protected_violations(self, current: dict[str, Any] | None, updates: dict[str, Any]) -> list[Violation]:
        violations: list[Violation] = []
        for name in PROTECTED_FIELDS:
            if name not in updates:
                continue
            if current is not None and updates[name] == current.get(name):
                continue
            violations.append(
                Violation(
                    kind=ProtectedFieldViolationError.code,
                    message=f'Field "{name}" is protected and cannot be modified.',
                    field=name,
                    details={"attempted": updates[name], "current": current.get(name) if current else None},
                )
            )
        return violations

    def _vocabulary_violations(
        self,
        tpl: TypeTemplate,
        updates: dict[str, Any],
        proposed: dict[str, Any],
        scale: str,
    ) -> list[Violation]:
        """Canonicalise vocabulary values into *proposed* and report bad ones."""
        violations: list[Violation] = []
        if "status" in updates:
            status = updates["status"]
            if tpl.status_list:
                try:
                    proposed["status"] = self.lists.resolve(tpl.status_list, status)
                except InvalidVocabularyValueError as exc:
                    violations.append(Violation.from_error(exc, "status"))
            elif not isinstance(status, str) or not status.strip():
                violations.append(Violation(kind=InvalidFieldValueError.code, message="status must be a non-empty string", field="status"))

        if "priority" in updates:
            if tpl.type == "task":
                violations.append(
                    Violation(
                        kind=DirectPriorityNotAllowedError.code,
                        message="Task priority cannot be set directly: it is calculated from businessPoints and devPoints.",
                        field="priority",
                        details={"attempted": updates["priority"]},
                    )
                )
            elif tpl.priority_list:
                try:
                    proposed["priority"] = self.lists.resolve(tpl.priority_list, updates["priority"])
                except InvalidVocabularyValueError as exc:
                    violations.append(Violation.from_error(exc, "priority"))

        allowed_points = scale_values(scale)
        for name in POINT_FIELDS:
            value = updates.get(name)
            if value is None:
                continue
            if isinstance(value, bool) or not isinstance(value, int) or value not in allowed_points:
                violations.append(
                    Violation(
                        kind=InvalidVocabularyValueError.code,
                        message=f'Invalid {name} {value!r}. Valid values on the "{scale}" scale: {", ".join(map(str, allowed_points))}',
                        field=name,
                        details={"value": value, "valid_values": list(allowed_points)},
                    )
                )

        for name in DATE_FIELDS:
            value = updates.get(name)
            if value not in (None, "") and not _is_iso_date(value):
                violations.append(
                    Violation(kind=InvalidFieldValueError.code, message=f'{name} must be a YYYY-MM-DD date, got "{value}"', field=name)
                )
        return violations

    def _date_range_violations(self, tpl: TypeTemplate, merged: dict[str, Any]) -> list[Violation]:
        if tpl.type != "sprint":
            return []
        start, end = merged.get("startDate"), merged.get("endDate")
        if _is_iso_date(start) and _is_iso_date(end) and start > end:
            return [
                Violation(
                    kind=InvalidFieldValueError.code,
                    message=f"Sprint startDate {start} is after endDate {end}",
                    field="endDate",
                    details={"startDate": start, "endDate": end},
                )
            ]
        return []

    def _prepare_subdocuments(self, current: dict[str, Any], proposed: dict[str, Any]) -> list[Violation]:
        """Validate nested documents, union commits and upgrade plans in place."""
        violations: list[Violation] = []
        if "commits" in proposed:
            incoming = proposed["commits"]
            if incoming is None:
                del proposed["commits"]
            else:
                violations.extend(validate_commits(incoming))
                proposed["commits"] = merge_commits(current.get("commits"), well_formed_commits(incoming))

        if PLAN_FIELD in proposed:
            if proposed[PLAN_FIELD] is not None:
                plan = normalize_plan(proposed[PLAN_FIELD])
                violations.extend(validate_plan(plan))
                proposed[PLAN_FIELD] = plan
        elif isinstance(current.get(PLAN_FIELD), str):
            proposed[PLAN_FIELD] = normalize_plan(current[PLAN_FIELD])

        if proposed.get("acceptanceCriteriaStructured") is not None:
            violations.extend(validate_acceptance_scenarios(proposed["acceptanceCriteriaStructured"]))
        if "descriptionStructured" in proposed:
            violations.extend(validate_description_structured(proposed["descriptionStructured"]))
        return violations

    def _derive(self, tpl: TypeTemplate, project_id: str, current: dict[str, Any], proposed: dict[str, Any]) -> dict[str, Any]:
        """Fill the active sprint and start date for a task changing status."""
        derived: dict[str, Any] = {}
        if tpl.type != "task":
            return derived
        current_status = current.get("status") or tpl.initial_state
        target = proposed.get("status", current_status)
        if status_key(target) == status_key(current_status):
            return derived
        merged = projected_state(current, proposed)
        if self.registry.is_initial(tpl, current_status) and not self.registry.is_field_populated("sprint", merged):
            active = find_active_sprint(self.store, project_id, today=self.today)
            if active is not None:
                proposed["sprint"] = derived["sprint"] = active.get("cardId") or active["recordKey"]
                logger.debug("Injected active sprint %s for project %s", proposed["sprint"], project_id)
        if status_key(target) == status_key(IN_PROGRESS) and not self.registry.is_field_populated("startDate", merged):
            proposed["startDate"] = derived["startDate"] = self.today()
        return derived

    def _transition_violations(self, tpl: TypeTemplate, current_status: str, merged: dict[str, Any]) -> list[Violation]:
        target = merged.get("status")
        if status_key(target) == status_key(current_status):
            return []
        violation = self.registry.validate_transition(tpl.type, current_status, target, merged).to_violation()
        return [violation] if violation else []

    def _epic_violations(self, project_id: str, epic_ref: Any) -> list[Violation]:
        epics = self._records(project_id, self.registry.require_type("epic"))
        if epic_ref not in (None, "") and any(epic_ref in (key, e.get("cardId")) for key, e in epics.items()):
            return []
        available = [{"id": e.get("cardId") or k, "title": e.get("title", ""), "status": e.get("status", "")} for k, e in epics.items()]
        listing = "\n".join(f'- {a["id"]}: "{a["title"]}" ({a["status"]})' for a in available) or "(no epics in project)"
        if epic_ref in (None, ""):
            return [
                Violation(
                    kind=EpicRequiredError.code,
                    message=f"Tasks must belong to an epic. Set epic to one of:\n{listing}",
                    field="epic",
                    details={"available_epics": available},
                )
            ]
        return [
            Violation(
                kind=EpicNotFoundError.code,
                message=f'Epic "{epic_ref}" not found in project {project_id}. Available epics:\n{listing}',
                field="epic",
                details={"value": epic_ref, "available_epics": available},
            )
        ]

    def _existence_violations(self, tpl: TypeTemplate, project_id: str, updates: dict[str, Any]) -> list[Violation]:
        violations: list[Violation] = []
        if tpl.type == "task" and "epic" in updates:
            violations.extend(self._epic_violations(project_id, updates["epic"]))
        if updates.get("sprint") not in (None, ""):
            violations.extend(sprint_violations(load_sprints(self.store, project_id), project_id, updates["sprint"]))
        return violations

    def _apply_side_effects(
        self,
        tpl: TypeTemplate,
        current_status: str,
        proposed: dict[str, Any],
        merged: dict[str, Any],
        scale: str,
    ) -> tuple[dict[str, Any], list[dict[str, str]]]:
        """Derived priority, plan status progression and reminders."""
        derived: dict[str, Any] = {}
        warnings: list[dict[str, str]] = []
        target = merged.get("status")
        entering = status_key(target) != status_key(current_status)

        if tpl.type == "task":
            if any(name in proposed for name in POINT_FIELDS):
                priority = calculate_priority(merged.get("businessPoints"), merged.get("devPoints"), scale)
                proposed["priority"] = derived["priority"] = priority
            plan = merged.get(PLAN_FIELD)
            has_plan = isinstance(plan, dict) and bool(plan)
            if entering and status_key(target) == status_key(IN_PROGRESS):
                if has_plan and plan.get("planStatus") == "validated":
                    proposed[PLAN_FIELD] = {**plan, "planStatus": "in_progress"}
                    derived["planStatus"] = "in_progress"
                elif has_plan and plan.get("planStatus") == "proposed":
                    warnings.append(
                        _warning(
                            "PLAN_NOT_VALIDATED",
                            "The implementation plan is still proposed: ask a stakeholder to validate it before coding.",
                        )
                    )
                elif not has_plan and (merged.get("devPoints") or 0) >= PLAN_EFFORT_THRESHOLD:
                    warnings.append(
                        _warning(
                            "MISSING_IMPLEMENTATION_PLAN",
                            f"Tasks with devPoints >= {PLAN_EFFORT_THRESHOLD} should have an implementationPlan before work starts.",
                        )
                    )
            if entering and status_key(target) == status_key(AWAITING_VALIDATION):
                if has_plan:
                    proposed[PLAN_FIELD] = {**plan, "planStatus": "completed"}
                    derived["planStatus"] = "completed"
                warnings.append(_warning("VERSION_REMINDER", "Remember to bump the application version before validation."))

        if tpl.type == "bug" and entering and status_key(target) == status_key(BUG_FIXED):
            warnings.append(_warning("VERSION_REMINDER", "Remember to bump the application version for this fix."))
        return derived, warnings

    # -- create --------------------------------------------------------------

    def _task_creation_violations(self, project_id: str, proposed: dict[str, Any]) -> list[Violation]:
        violations = validate_description_structured(proposed.get("descriptionStructured"))
        if not self.registry.is_field_populated("acceptanceCriteria", proposed):
            violations.append(
                Violation(
                    kind=MissingRequiredFieldsError.code,
                    message="Tasks require acceptanceCriteria or acceptanceCriteriaStructured with at least one scenario",
                    field="acceptanceCriteria",
                    details={"missing_fields": ["acceptanceCriteria"]},
                )
            )
        violations.extend(self._epic_violations(project_id, proposed.get("epic")))
        return violations

    def create_card(self, project_id: str, card_type: str, fields: dict[str, Any], *, actor: str = "cardflow") -> dict[str, Any]:
        """Validate and store a new card, minting its ``{PRJ}-{TYP}-{nnnn}`` ID."""
        tpl = self.registry.require_type(card_type)
        if not isinstance(fields, dict):
            msg = "fields must be an object"
            raise InvalidFieldValueError(msg)
        project = get_project(self.store, project_id)
        abbreviation = project.get("abbreviation")
        if not abbreviation:
            msg = f"Project {project_id} has no abbreviation; card IDs cannot be minted"
            raise InvalidFieldValueError(msg, details={"project_id": project_id})
        scale = self._scale(project)
        try:
            return self._create(tpl, project_id, str(abbreviation), scale, fields, actor)
        except CardflowError as exc:
            logger.debug(
                "Rejected %s creation in %s: %s", tpl.type, project_id, exc, extra={"project_id": project_id, "violation_code": exc.code}
            )
            raise

    def _create(
        self,
        tpl: TypeTemplate,
        project_id: str,
        abbreviation: str,
        scale: str,
        fields: dict[str, Any],
        actor: str,
    ) -> dict[str, Any]:
        collector = ViolationCollector(fail_fast=True)
        collector.add(self._protected_violations(None, fields))
        proposed = {k: v for k, v in fields.items() if k not in PROTECTED_FIELDS}
        if tpl.priority_list and proposed.get("priority") in (None, ""):
            proposed.pop("priority", None)

        if not isinstance(proposed.get("title"), str) or not proposed["title"].strip():
            collector.add(
                [
                    Violation(
                        kind=MissingRequiredFieldsError.code,
                        message=f"{tpl.display_name} title is required",
                        field="title",
                        details={"missing_fields": ["title"]},
                    )
                ]
            )
        collector.add(self._vocabulary_violations(tpl, proposed, proposed, scale))
        if not proposed.get("status"):
            proposed["status"] = tpl.initial_state
        if not proposed.get("priority") and tpl.default_priority:
            if not tpl.priority_list:
                proposed["priority"] = tpl.default_priority
            else:
                try:
                    proposed["priority"] = self.lists.resolve(tpl.priority_list, tpl.default_priority)
                except InvalidVocabularyValueError:
                    logger.debug("Default priority %r is not in list %s; leaving unset", tpl.default_priority, tpl.priority_list)

        side_effects: dict[str, Any] = {}
        if tpl.type == "task":
            collector.add(self._task_creation_violations(project_id, proposed))
            developer = proposed.get("developer")
            if (
                not proposed.get("codeveloper")
                and self.ai_developer
                and developer == self.ai_developer
                and self.operator_developer
                and self.operator_developer != self.ai_developer
            ):
                proposed["codeveloper"] = side_effects["codeveloper"] = self.operator_developer
            if not proposed.get("validator"):
                try:
                    proposed["validator"] = side_effects["validator"] = resolve_validator(
                        self.directory, project_id, None, developer
                    )
                except CardflowError as exc:
                    collector.add([Violation.from_error(exc, "validator")])
            if isinstance(proposed.get(PLAN_FIELD), dict):
                proposed[PLAN_FIELD] = {"steps": [], "planStatus": "pending", **proposed[PLAN_FIELD]}

        initial = {"status": tpl.initial_state}
        subdoc_violations = self._prepare_subdocuments({}, proposed)
        side_effects.update(self._derive(tpl, project_id, initial, proposed))
        merged = dict(proposed)
        collector.add(self._date_range_violations(tpl, merged))
        collector.add(self._transition_violations(tpl, tpl.initial_state, merged))
        collector.add(subdoc_violations)
        collector.add(collect_reference_violations(proposed, REFERENCE_ROLES))
        explicit = {k: v for k, v in fields.items() if k == "sprint"}
        collector.add(self._existence_violations(tpl, project_id, explicit))
        derived, warnings = self._apply_side_effects(tpl, tpl.initial_state, proposed, merged, scale)
        side_effects.update(derived)

        # Every rule passed: mint the ID and write.
        number = self.store.increment_counter(f"{abbreviation}-{tpl.abbreviation}")
        card_id = f"{abbreviation}-{tpl.abbreviation}-{number:04d}"
        now = _now_iso()
        record: dict[str, Any] = {
            **proposed,
            "cardId": card_id,
            "cardType": tpl.card_type,
            "group": tpl.group,
            "projectId": project_id,
            "createdAt": now,
            "createdBy": actor,
            "updatedAt": now,
            "updatedBy": actor,
        }
        if tpl.type == "task":
            record["description"] = render_description(proposed["descriptionStructured"], str(proposed.get("description") or ""))
            record.setdefault("priority", None)
        if tpl.type == "bug":
            record.setdefault("registerDate", self.today())
        if "year" not in record:
            start = record.get("startDate")
            record["year"] = int(start[:4]) if tpl.type == "sprint" and _is_iso_date(start) else int(self.today()[:4])

        key = self.store.push(card_collection_path(project_id, tpl.section), record)
        logger.info("Created %s %s in project %s", tpl.type, card_id, project_id, extra={"card_id": card_id, "project_id": project_id})
        result: dict[str, Any] = {
            "cardId": card_id,
            "recordKey": key,
            "cardType": tpl.type,
            "card": {**record, "recordKey": key},
            "sideEffects": side_effects,
            "warnings": warnings,
        }
        if tpl.type == "task":
            result["planAction"] = "SHOW_PLAN_FOR_VALIDATION" if proposed.get(PLAN_FIELD) else "CREATE_PLAN"
        return result

    # -- update --------------------------------------------------------------

    def update_card(
        self,
        project_id: str,
        card_type: str,
        record_key: str,
        updates: dict[str, Any],
        *,
        validate_only: bool = False,
        actor: str = "cardflow",
        expected_updated_at: str | None = None,
    ) -> dict[str, Any]:
        """Apply a partial update, or with *validate_only* report every violation without writing.

        *expected_updated_at* turns on an optimistic check: the write is
        refused with StaleWriteError if the stored ``updatedAt`` differs.
        """
        tpl = self.registry.require_type(card_type)
        if not isinstance(updates, dict):
            msg = "updates must be an object"
            raise InvalidFieldValueError(msg)
        project = get_project(self.store, project_id)
        path = card_path(project_id, tpl.section, record_key)
        stored = self.store.get(path)
        if not isinstance(stored, dict) or "cardId" not in stored:
            msg = f"Card not found: {tpl.type} {record_key} in project {project_id}"
            raise KeyError(msg)
        current = {**stored, "recordKey": record_key}
        try:
            return self._update(tpl, project_id, project, path, current, updates, validate_only, actor, expected_updated_at)
        except CardflowError as exc:
            logger.debug(
                "Rejected update of %s: %s",
                current.get("cardId"),
                exc,
                extra={"card_id": current.get("cardId"), "project_id": project_id, "violation_code": exc.code},
            )
            raise

    def _update(
        self,
        tpl: TypeTemplate,
        project_id: str,
        project: dict[str, Any],
        path: str,
        current: dict[str, Any],
        updates: dict[str, Any],
        validate_only: bool,
        actor: str,
        expected_updated_at: str | None,
    ) -> dict[str, Any]:
        collector = ViolationCollector(fail_fast=not validate_only)
        scale = self._scale(project)
        current_status = current.get("status") or tpl.initial_state

        collector.add(self._protected_violations(current, updates))
        proposed = {k: v for k, v in updates.items() if k not in PROTECTED_FIELDS}

        vocabulary = self._vocabulary_violations(tpl, updates, proposed, scale)
        collector.add(vocabulary)
        status_ok = not any(v.field == "status" for v in vocabulary)
        if not status_ok:
            proposed.pop("status", None)

        subdoc_violations = self._prepare_subdocuments(current, proposed)
        side_effects = self._derive(tpl, project_id, current, proposed)
        merged = projected_state(current, proposed)
        collector.add(self._date_range_violations(tpl, merged))
        if "status" in proposed:
            collector.add(self._transition_violations(tpl, current_status, merged))
        collector.add(subdoc_violations)
        collector.add(collect_reference_violations(proposed, REFERENCE_ROLES))
        collector.add(self._existence_violations(tpl, project_id, updates))
        derived, warnings = self._apply_side_effects(tpl, current_status, proposed, merged, scale)
        side_effects.update(derived)

        if validate_only:
            missing: list[str] = []
            for v in collector.violations:
                missing.extend(v.details.get("missing_fields", []))
            return {
                "valid": collector.ok,
                "cardId": current.get("cardId"),
                "recordKey": current["recordKey"],
                "currentStatus": current_status,
                "targetStatus": merged.get("status", current_status),
                "violations": [v.to_dict() for v in collector.violations],
                "missingFields": list(dict.fromkeys(missing)),
                "sideEffects": side_effects,
                "warnings": warnings,
                "currentCard": _summary(current),
            }

        proposed["updatedAt"] = _now_iso()
        proposed["updatedBy"] = actor
        expect = ("updatedAt", expected_updated_at) if expected_updated_at is not None else None
        written = self.store.update(path, proposed, expect=expect)
        logger.info(
            "Updated %s %s (%s)",
            tpl.type,
            current.get("cardId"),
            ", ".join(sorted(proposed)),
            extra={"card_id": current.get("cardId"), "project_id": project_id},
        )
        return {
            "cardId": current.get("cardId"),
            "recordKey": current["recordKey"],
            "updatedFields": sorted(proposed),
            "card": {**written, "recordKey": current["recordKey"]},
            "sideEffects": side_effects,
            "warnings": warnings,
        }

    # -- relations -----------------------------------------------------------

    def relate_cards(
        self,
        project_id: str,
        source_card_id: str,
        target_card_id: str,
        relation_type: str = "related",
        *,
        action: str = "add",
        actor: str = "cardflow",
    ) -> dict[str, Any]:
        """Add or remove a link between two cards, recorded on both of them.

        ``related`` is stored as ``related`` on both cards; ``blocks`` is
        stored as ``blocks`` on the source and ``blockedBy`` on the target.
        Adding an existing link only refreshes its title.
        """
        if relation_type not in RELATION_TYPES:
            msg = f'Invalid relation type "{relation_type}". Valid values: {", ".join(RELATION_TYPES)}'
            raise InvalidFieldValueError(msg, details={"field": "relationType", "valid_values": list(RELATION_TYPES)})
        if action not in RELATION_ACTIONS:
            msg = f'Invalid action "{action}". Valid values: {", ".join(RELATION_ACTIONS)}'
            raise InvalidFieldValueError(msg, details={"field": "action", "valid_values": list(RELATION_ACTIONS)})
        if source_card_id == target_card_id:
            msg = "Cannot relate a card to itself."
            raise InvalidFieldValueError(msg, details={"field": "targetCardId", "value": target_card_id})
        get_project(self.store, project_id)
        source_tpl, source = self._find_card(project_id, source_card_id)
        target_tpl, target = self._find_card(project_id, target_card_id)

        source_kind, target_kind = RELATION_TYPES[relation_type]
        source_links = _with_relation(
            source.get(RELATIONS_FIELD), target_card_id, project_id, str(target.get("title", "")), source_kind, action
        )
        target_links = _with_relation(
            target.get(RELATIONS_FIELD), source_card_id, project_id, str(source.get("title", "")), target_kind, action
        )
        now = _now_iso()
        self.store.update(
            card_path(project_id, source_tpl.section, source["recordKey"]),
            {RELATIONS_FIELD: source_links, "updatedAt": now, "updatedBy": actor},
        )
        self.store.update(
            card_path(project_id, target_tpl.section, target["recordKey"]),
            {RELATIONS_FIELD: target_links, "updatedAt": now, "updatedBy": actor},
        )
        verb = "created" if action == "add" else "removed"
        if relation_type == "blocks":
            description = f"{source_card_id} blocks {target_card_id}"
        else:
            description = f"{source_card_id} <-> {target_card_id} (related)"
        logger.info("Relation %s: %s", verb, description, extra={"card_id": source_card_id, "project_id": project_id})
        return {
            "message": f"Relation {verb}",
            "relation": description,
            "sourceCard": {"cardId": source_card_id, RELATIONS_FIELD: source_links},
            "targetCard": {"cardId": target_card_id, RELATIONS_FIELD: target_links},
        }
