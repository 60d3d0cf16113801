# IMPORT CONSTRAINT: types/ modules must only import from typing, stdlib, and each other.
# NEVER import from core.py, db_base.py, or the engine modules: this prevents circular imports.
"""Typed return-value contracts for cardflow core and API layers."""

from __future__ import annotations

from cardflow.types.core import (
    CardRecord,
    CommitRecord,
    ImplementationPlan,
    ISODate,
    ISOTimestamp,
    PersonRecord,
    ProjectConfig,
    ProjectRecord,
)

__all__ = [
    "CardRecord",
    "CommitRecord",
    "ISODate",
    "ISOTimestamp",
    "ImplementationPlan",
    "PersonRecord",
    "ProjectConfig",
    "ProjectRecord",
]
