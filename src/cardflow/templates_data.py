"""Built-in card type definitions.

Logic lives in templates.py; this file is pure data.  Each entry is a
JSON-compatible dict parsed by ``TemplateRegistry.parse_type_template``.

State names are the canonical vocabulary spellings.  Transition lookups
compare them case- and whitespace-insensitively.
"""

from __future__ import annotations

from typing import Any

# Fields a task needs before it may leave "To Do".
TASK_BASE_FIELDS: tuple[str, ...] = (
    "title",
    "developer",
    "validator",
    "epic",
    "sprint",
    "devPoints",
    "businessPoints",
    "acceptanceCriteria",
)

_WORKING_STATES = ["In Progress", "To Validate", "Blocked"]

_TASK: dict[str, Any] = {
    "type": "task",
    "display_name": "Task",
    "card_type": "task-card",
    "group": "tasks",
    "section": "TASKS",
    "abbreviation": "TSK",
    "status_list": "task_status",
    "restricted": True,
    "states": [
        {"name": "To Do", "category": "open"},
        {"name": "In Progress", "category": "wip"},
        {"name": "To Validate", "category": "wip"},
        {"name": "Done&Validated", "category": "done"},
        {"name": "Blocked", "category": "wip"},
        {"name": "Reopened", "category": "open"},
    ],
    "initial_state": "To Do",
    "leave_initial_requires": list(TASK_BASE_FIELDS),
    "validator_only_states": ["Done&Validated"],
    "validator_only_hint": 'Use "To Validate" instead; the validator approves the task from there.',
    "state_gates": {"Blocked": "blocked"},
    "transitions": [
        {"from": "To Do", "to": "In Progress"},
        {"from": "To Do", "to": "Blocked"},
        {"from": "In Progress", "to": "To Validate"},
        {"from": "In Progress", "to": "Blocked"},
        {"from": "In Progress", "to": "To Do"},
        {"from": "To Validate", "to": "Reopened"},
        {"from": "Blocked", "to": "In Progress"},
        {"from": "Blocked", "to": "To Do"},
        {"from": "Reopened", "to": "In Progress"},
        {"from": "Reopened", "to": "To Validate"},
    ],
    "fields_schema": [
        {"name": "title", "type": "text", "required_at": _WORKING_STATES},
        {"name": "developer", "type": "reference", "description": "Developer ID (dev_...)", "required_at": _WORKING_STATES},
        {"name": "validator", "type": "reference", "description": "Stakeholder ID (stk_...)", "required_at": _WORKING_STATES},
        {"name": "epic", "type": "reference", "description": "Epic card ID", "required_at": _WORKING_STATES},
        {"name": "sprint", "type": "reference", "description": "Sprint card ID", "required_at": _WORKING_STATES},
        {"name": "devPoints", "type": "points", "description": "Effort on the project scale", "required_at": _WORKING_STATES},
        {"name": "businessPoints", "type": "points", "description": "Business value on the project scale", "required_at": _WORKING_STATES},
        {
            "name": "acceptanceCriteria",
            "type": "text",
            "description": "Free text, or acceptanceCriteriaStructured with at least one scenario",
            "required_at": _WORKING_STATES,
        },
        {"name": "startDate", "type": "date", "description": "Set automatically on entering In Progress", "required_at": ["To Validate"]},
        {"name": "commits", "type": "list", "description": "Commit records {hash, message, date, author}", "required_at": ["To Validate"]},
    ],
}

_BUG: dict[str, Any] = {
    "type": "bug",
    "display_name": "Bug",
    "card_type": "bug-card",
    "group": "bugs",
    "section": "BUGS",
    "abbreviation": "BUG",
    "status_list": "bug_status",
    "priority_list": "bug_priority",
    "default_priority": "User Experience Issue",
    "restricted": False,
    "states": [
        {"name": "Created", "category": "open"},
        {"name": "Assigned", "category": "open"},
        {"name": "Fixed", "category": "wip"},
        {"name": "Verified", "category": "wip"},
        {"name": "Closed", "category": "done"},
    ],
    "initial_state": "Created",
    "closing_states": ["Closed"],
    "transitions": [],
    "fields_schema": [
        {"name": "commits", "type": "list", "description": "Commits containing the fix", "required_at": ["Closed"]},
        {"name": "rootCause", "type": "text", "description": "Why the defect happened", "required_at": ["Closed"]},
        {"name": "resolution", "type": "text", "description": "How the defect was resolved", "required_at": ["Closed"]},
    ],
}


def _simple(
    type_name: str,
    display_name: str,
    abbreviation: str,
    section: str,
    group: str,
    initial: str,
    default_priority: str | None = None,
) -> dict[str, Any]:
    return {
        "type": type_name,
        "display_name": display_name,
        "card_type": f"{type_name}-card",
        "group": group,
        "section": section,
        "abbreviation": abbreviation,
        "restricted": False,
        "states": [],
        "initial_state": initial,
        "default_priority": default_priority,
        "transitions": [],
        "fields_schema": [],
    }


BUILT_IN_TYPES: list[dict[str, Any]] = [
    _TASK,
    _BUG,
    _simple("epic", "Epic", "EPC", "EPICS", "epics", "To Do", "Medium"),
    _simple("sprint", "Sprint", "SPR", "SPRINTS", "sprints", "Planning"),
    _simple("proposal", "Proposal", "PRP", "PROPOSALS", "proposals", "To Do", "Medium"),
    _simple("qa", "QA", "_QA", "QA", "qa", "To Do", "Medium"),
]
