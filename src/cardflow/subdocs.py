"""Shape checks for nested card documents.

Commits, implementation plans, acceptance scenarios and user stories.
Validators never stop at the first bad element: each returns every
violation it finds, indexed, so a caller can fix everything in one pass.
"""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any

from cardflow.errors import InvalidSubdocumentError, Violation

COMMIT_FIELDS: tuple[str, ...] = ("hash", "message", "date", "author")
SCENARIO_FIELDS: tuple[str, ...] = ("given", "when", "then", "raw")
STORY_FIELDS: tuple[str, ...] = ("role", "goal", "benefit")

VALID_STEP_STATUSES: tuple[str, ...] = ("pending", "in_progress", "done")
VALID_PLAN_STATUSES: tuple[str, ...] = ("pending", "proposed", "validated", "in_progress", "completed")


def _blank(value: Any) -> bool:
    return not isinstance(value, str) or not value.strip()


def _violation(field: str, message: str, **details: Any) -> Violation:
    return Violation(kind=InvalidSubdocumentError.code, message=message, field=field, details=details)


# ---------------------------------------------------------------------------
# Commits
# ---------------------------------------------------------------------------


def validate_commits(commits: Any, field: str = "commits") -> list[Violation]:
    if not isinstance(commits, list):
        return [_violation(field, f"{field} must be an array of commit objects")]
    violations: list[Violation] = []
    for i, commit in enumerate(commits):
        if not isinstance(commit, dict):
            violations.append(_violation(field, f"{field}[{i}] must be an object with {', '.join(COMMIT_FIELDS)}", index=i))
            continue
        for name in COMMIT_FIELDS:
            if _blank(commit.get(name)):
                violations.append(
                    _violation(field, f"{field}[{i}].{name} is required and must be a non-empty string", index=i, subfield=name)
                )
    return violations


def well_formed_commits(commits: Any) -> list[dict[str, Any]]:
    """Entries of *commits* that pass :func:`validate_commits`."""
    if not isinstance(commits, list):
        return []
    return [c for c in commits if isinstance(c, dict) and not any(_blank(c.get(name)) for name in COMMIT_FIELDS)]


def merge_commits(existing: Any, incoming: list[dict[str, Any]]) -> list[dict[str, Any]]:
    """Union by hash.  Existing entries keep their place; the first occurrence of a hash wins."""
    merged: list[dict[str, Any]] = list(existing) if isinstance(existing, list) else []
    seen = {c.get("hash") for c in merged if isinstance(c, dict)}
    for commit in incoming:
        if commit["hash"] in seen:
            continue
        seen.add(commit["hash"])
        merged.append(commit)
    return merged


# ---------------------------------------------------------------------------
# Implementation plan
# ---------------------------------------------------------------------------


def normalize_plan(raw: Any) -> Any:
    """Upgrade a legacy free-text plan to the structured shape.

    Structured plans are shallow-copied, anything else is returned unchanged
    for :func:`validate_plan` to reject.
    """
    if isinstance(raw, str):
        return {
            "approach": raw,
            "steps": [],
            "dataModelChanges": "",
            "apiChanges": "",
            "risks": "",
            "outOfScope": "",
            "planStatus": "proposed",
        }
    if isinstance(raw, dict):
        return dict(raw)
    return raw


def validate_plan(plan: Any, field: str = "implementationPlan") -> list[Violation]:
    if not isinstance(plan, dict):
        return [_violation(field, f"{field} must be an object (or legacy text)")]
    violations: list[Violation] = []
    if _blank(plan.get("approach")):
        violations.append(_violation(field, f"{field}.approach is required and must be a non-empty string", subfield="approach"))
    status = plan.get("planStatus")
    if status is not None and status not in VALID_PLAN_STATUSES:
        violations.append(
            _violation(
                field,
                f'{field}.planStatus "{status}" is invalid. Valid values: {", ".join(VALID_PLAN_STATUSES)}',
                subfield="planStatus",
                valid_values=list(VALID_PLAN_STATUSES),
            )
        )
    steps = plan.get("steps")
    if steps is None:
        return violations
    if not isinstance(steps, list):
        violations.append(_violation(field, f"{field}.steps must be an array", subfield="steps"))
        return violations
    for i, step in enumerate(steps):
        if not isinstance(step, dict):
            violations.append(_violation(field, f"{field}.steps[{i}] must be an object", index=i))
            continue
        if _blank(step.get("description")):
            violations.append(_violation(field, f"{field}.steps[{i}].description is required", index=i, subfield="description"))
        step_status = step.get("status")
        if step_status is not None and step_status not in VALID_STEP_STATUSES:
            violations.append(
                _violation(
                    field,
                    f'{field}.steps[{i}].status "{step_status}" is invalid. Valid values: {", ".join(VALID_STEP_STATUSES)}',
                    index=i,
                    subfield="status",
                    valid_values=list(VALID_STEP_STATUSES),
                )
            )
    return violations


# ---------------------------------------------------------------------------
# Acceptance criteria / user stories
# ---------------------------------------------------------------------------


def validate_acceptance_scenarios(scenarios: Any, field: str = "acceptanceCriteriaStructured") -> list[Violation]:
    if not isinstance(scenarios, list):
        return [_violation(field, f"{field} must be an array of scenarios")]
    violations: list[Violation] = []
    for i, scenario in enumerate(scenarios):
        if not isinstance(scenario, dict) or all(_blank(scenario.get(k)) for k in SCENARIO_FIELDS):
            violations.append(
                _violation(field, f"{field}[{i}] must have at least one non-empty field among {', '.join(SCENARIO_FIELDS)}", index=i)
            )
    return violations


def has_acceptance_content(card: Mapping[str, Any]) -> bool:
    """True when the free-text criteria or any structured scenario has content."""
    if not _blank(card.get("acceptanceCriteria")):
        return True
    scenarios = card.get("acceptanceCriteriaStructured")
    if not isinstance(scenarios, list):
        return False
    return any(isinstance(s, dict) and any(not _blank(s.get(k)) for k in SCENARIO_FIELDS) for s in scenarios)


def validate_description_structured(stories: Any, field: str = "descriptionStructured") -> list[Violation]:
    if not isinstance(stories, list) or not stories:
        return [_violation(field, f"{field} is required: provide at least one {{role, goal, benefit}} user story")]
    violations: list[Violation] = []
    for i, story in enumerate(stories):
        if not isinstance(story, dict):
            violations.append(_violation(field, f"{field}[{i}] must be an object with role, goal, benefit", index=i))
            continue
        missing = [k for k in STORY_FIELDS if _blank(story.get(k))]
        if missing:
            violations.append(_violation(field, f"{field}[{i}] is missing {', '.join(missing)}", index=i, missing=missing))
    return violations


def render_description(stories: list[dict[str, Any]], notes: str = "") -> str:
    """Markdown description generated from user stories, followed by free-text notes."""
    blocks = [f"**As a** {s['role']}\n**I want** {s['goal']}\n**So that** {s['benefit']}" for s in stories]
    if notes and notes.strip():
        blocks.append(notes.strip())
    return "\n\n".join(blocks)
