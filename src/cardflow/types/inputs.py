# IMPORT CONSTRAINT: types/ modules must only import from typing, stdlib, and each other.
# NEVER import from core.py, db_base.py, or the engine modules: this prevents circular imports.
"""TypedDict contracts for MCP tool handler input arguments.

Each TypedDict mirrors the JSON Schema ``inputSchema`` on the corresponding
``mcp.types.Tool`` definition.  ``TOOL_ARGS_MAP`` maps tool names to their
TypedDict class so a contract test can check that both agree.

The MCP SDK validates arguments against the JSON Schema before a handler
runs and the engine validates authoritatively, so ``cast()`` to these types
is for static analysis only.
"""

# NOTE: Do NOT add ``from __future__ import annotations`` to this module.
# It breaks TypedDict.__required_keys__ / __optional_keys__ introspection
# on Python <3.14, which the contract test relies on.

from typing import Any, NotRequired, TypedDict

# ---------------------------------------------------------------------------
# cards.py handlers
# ---------------------------------------------------------------------------


class CreateCardArgs(TypedDict):
    type: str
    fields: dict[str, Any]
    project: NotRequired[str]
    actor: NotRequired[str]


class UpdateCardArgs(TypedDict):
    type: str
    record_key: str
    updates: dict[str, Any]
    project: NotRequired[str]
    validate_only: NotRequired[bool]
    expected_updated_at: NotRequired[str]
    actor: NotRequired[str]


class GetCardArgs(TypedDict):
    card_id: str
    project: NotRequired[str]


class ListCardsArgs(TypedDict):
    type: str
    project: NotRequired[str]
    status: NotRequired[str]
    sprint: NotRequired[str]
    developer: NotRequired[str]
    year: NotRequired[int]


class RelateCardsArgs(TypedDict):
    source_card_id: str
    target_card_id: str
    relation_type: str
    project: NotRequired[str]
    action: NotRequired[str]
    actor: NotRequired[str]


# ---------------------------------------------------------------------------
# workflow.py handlers
# ---------------------------------------------------------------------------


class GetTransitionRulesArgs(TypedDict):
    type: str


class GetAvailableTransitionsArgs(TypedDict):
    card_id: str
    project: NotRequired[str]


class ListSprintsArgs(TypedDict):
    project: NotRequired[str]
    year: NotRequired[int]


class GetActiveSprintArgs(TypedDict):
    project: NotRequired[str]


class GetListValuesArgs(TypedDict):
    kind: str


class InvalidateListCacheArgs(TypedDict):
    kind: NotRequired[str]


# ---------------------------------------------------------------------------
# directory.py handlers
# ---------------------------------------------------------------------------


class ListPeopleArgs(TypedDict):
    project: NotRequired[str]


class GetProjectArgs(TypedDict):
    project: NotRequired[str]


class UpdateProjectArgs(TypedDict):
    updates: dict[str, Any]
    project: NotRequired[str]
    actor: NotRequired[str]


# ---------------------------------------------------------------------------
# Registry
# ---------------------------------------------------------------------------

TOOL_ARGS_MAP: dict[str, type] = {
    # cards.py
    "create_card": CreateCardArgs,
    "update_card": UpdateCardArgs,
    "get_card": GetCardArgs,
    "list_cards": ListCardsArgs,
    "relate_cards": RelateCardsArgs,
    # workflow.py
    "get_transition_rules": GetTransitionRulesArgs,
    "get_available_transitions": GetAvailableTransitionsArgs,
    "list_sprints": ListSprintsArgs,
    "get_active_sprint": GetActiveSprintArgs,
    "get_list_values": GetListValuesArgs,
    "invalidate_list_cache": InvalidateListCacheArgs,
    # directory.py
    "list_developers": ListPeopleArgs,
    "list_stakeholders": ListPeopleArgs,
    "get_project": GetProjectArgs,
    "update_project": UpdateProjectArgs,
}
