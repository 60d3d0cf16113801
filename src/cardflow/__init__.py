"""Cardflow: card lifecycle and validation engine for sprint planning boards."""

from importlib.metadata import PackageNotFoundError, version

try:
    __version__ = version("cardflow")
except PackageNotFoundError:
    __version__ = "0.0.0-dev"

from cardflow.core import DocumentStore
from cardflow.engine import CardEngine

__all__ = ["CardEngine", "DocumentStore", "__version__"]
