"""Pydantic models for tables, changes, intents, responses, and workflows."""

from sheetcore.contracts.common import (
    ErrorDetail,
    IntentError,
    Metrics,
    RefError,
    ResponseEnvelope,
    SheetcoreError,
    TableFormatError,
    Target,
    TransformError,
    WarningDetail,
)
from sheetcore.contracts.intents import (
    INTENT_TYPES,
    Intent,
    IntentTarget,
    PatternSpec,
    parse_intent,
)
from sheetcore.contracts.responses import (
    ApplyResult,
    DryRunSummary,
    HistoryStatus,
    TableSummary,
    ValidationResult,
)
from sheetcore.contracts.table import CellValue, Change, ChangeType, Table

__all__ = [
    "ApplyResult",
    "CellValue",
    "Change",
    "ChangeType",
    "DryRunSummary",
    "ErrorDetail",
    "HistoryStatus",
    "INTENT_TYPES",
    "Intent",
    "IntentError",
    "IntentTarget",
    "Metrics",
    "PatternSpec",
    "RefError",
    "ResponseEnvelope",
    "SheetcoreError",
    "Table",
    "TableFormatError",
    "TableSummary",
    "Target",
    "TransformError",
    "ValidationResult",
    "WarningDetail",
    "parse_intent",
]
