"""Edit intent models: one tagged variant per intent kind.

An intent is the JSON envelope ``{type, target?, params?, description}``
produced by a command source (a chat assistant, a workflow file, the CLI).
Most kinds also accept ``target`` inside ``params``; ``resolved_target()``
returns whichever is present.
"""

from __future__ import annotations

from typing import Annotated, Any, Literal, Union

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    TypeAdapter,
    ValidationError,
    field_validator,
    model_validator,
)

from sheetcore.contracts.common import IntentError
from sheetcore.contracts.table import CellValue


class IntentTarget(BaseModel):
    """Cell, row, column or range addressed by A1 ``ref`` or explicit indices."""

    type: str | None = None  # cell / range / column / row
    ref: str | None = None
    row: int | None = None
    col: int | None = None

    @field_validator("ref", mode="before")
    @classmethod
    def coerce_ref(cls, v: Any) -> Any:
        if isinstance(v, int) and not isinstance(v, bool):
            return str(v)
        return v


class IntentParams(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="allow")

    target: IntentTarget | None = None


_ENVELOPE_KEYS = frozenset({"type", "target", "params", "description"})


class _IntentBase(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    target: IntentTarget | None = None
    description: str = ""

    @model_validator(mode="before")
    @classmethod
    def _collect_params(cls, data: Any) -> Any:
        """Fold flat top-level keys (``formula``, ``patterns``, ...) into ``params``."""
        if not isinstance(data, dict):
            return data
        envelope = {k: v for k, v in data.items() if k in _ENVELOPE_KEYS}
        params = data.get("params") or {}
        if isinstance(params, dict):
            flat = {k: v for k, v in data.items() if k not in _ENVELOPE_KEYS}
            params = {**flat, **params}
        envelope["params"] = params
        return envelope

    def resolved_target(self) -> IntentTarget | None:
        if self.target is not None:
            return self.target
        return getattr(self.params, "target", None)


# ---------------------------------------------------------------------------
# Cell-level intents
# ---------------------------------------------------------------------------
class EditCellParams(IntentParams):
    value: CellValue = None


class EditCellIntent(_IntentBase):
    type: Literal["EDIT_CELL"] = "EDIT_CELL"
    params: EditCellParams = Field(default_factory=EditCellParams)


class EditRowParams(IntentParams):
    row_data: dict[str, CellValue] | None = Field(default=None, alias="rowData")


class EditRowIntent(_IntentBase):
    type: Literal["EDIT_ROW"] = "EDIT_ROW"
    params: EditRowParams = Field(default_factory=EditRowParams)


class EditColumnParams(IntentParams):
    values: list[CellValue] | None = None


class EditColumnIntent(_IntentBase):
    type: Literal["EDIT_COLUMN"] = "EDIT_COLUMN"
    params: EditColumnParams = Field(default_factory=EditColumnParams)


class InsertFormulaParams(IntentParams):
    formula: str | None = None


class InsertFormulaIntent(_IntentBase):
    type: Literal["INSERT_FORMULA"] = "INSERT_FORMULA"
    params: InsertFormulaParams = Field(default_factory=InsertFormulaParams)


class RemoveFormulaParams(IntentParams):
    keep_value: CellValue = Field(default=None, alias="keepValue")


class RemoveFormulaIntent(_IntentBase):
    type: Literal["REMOVE_FORMULA"] = "REMOVE_FORMULA"
    params: RemoveFormulaParams = Field(default_factory=RemoveFormulaParams)


class FillDownParams(IntentParams):
    fill_type: Literal["value", "formula"] = Field(default="value", alias="fillType")


class FillDownIntent(_IntentBase):
    type: Literal["FILL_DOWN"] = "FILL_DOWN"
    params: FillDownParams = Field(default_factory=FillDownParams)


class StatisticsParams(IntentParams):
    stat_type: str = Field(default="sum", alias="statType")
    columns: list[int | str] | None = None


class StatisticsIntent(_IntentBase):
    type: Literal["STATISTICS"] = "STATISTICS"
    params: StatisticsParams = Field(default_factory=StatisticsParams)


class DataTransformParams(IntentParams):
    transform_type: str | None = Field(default=None, alias="transformType")


class DataTransformIntent(_IntentBase):
    type: Literal["DATA_TRANSFORM"] = "DATA_TRANSFORM"
    params: DataTransformParams = Field(default_factory=DataTransformParams)


class PatternSpec(BaseModel):
    """Per-column generator for synthetic data."""

    model_config = ConfigDict(extra="allow")

    type: str
    start: int | float = 1
    increment: int | float = 1
    style: str = "indonesian"
    values: list[CellValue] | None = None
    min: int | float | None = None
    max: int | float | None = None


class GenerateDataParams(IntentParams):
    patterns: dict[str, PatternSpec] | None = None


class GenerateDataIntent(_IntentBase):
    type: Literal["GENERATE_DATA"] = "GENERATE_DATA"
    params: GenerateDataParams = Field(default_factory=GenerateDataParams)


class FindReplaceParams(IntentParams):
    find: str | None = Field(default=None, alias="findValue")
    replace: str = Field(default="", alias="replaceValue")
    match_case: bool = Field(default=False, alias="matchCase")
    match_whole_cell: bool = Field(default=False, alias="matchWholeCell")
    use_regex: bool = Field(default=False, alias="useRegex")
    columns: list[int | str] | None = None


class FindReplaceIntent(_IntentBase):
    type: Literal["FIND_REPLACE"] = "FIND_REPLACE"
    params: FindReplaceParams = Field(default_factory=FindReplaceParams)


class ConcatenateParams(IntentParams):
    columns: list[int | str] | None = None
    separator: str = " "
    new_column_name: str | None = Field(default=None, alias="newColumnName")


class ConcatenateIntent(_IntentBase):
    type: Literal["CONCATENATE"] = "CONCATENATE"
    params: ConcatenateParams = Field(default_factory=ConcatenateParams)


class GenerateIdParams(IntentParams):
    prefix: str = Field(default="ID", alias="idPrefix")
    start: int = Field(default=1, alias="idStartFrom")
    width: int = 3
    new_column_name: str | None = Field(default=None, alias="newColumnName")


class GenerateIdIntent(_IntentBase):
    type: Literal["GENERATE_ID"] = "GENERATE_ID"
    params: GenerateIdParams = Field(default_factory=GenerateIdParams)


# ---------------------------------------------------------------------------
# Structural intents
# ---------------------------------------------------------------------------
class AddColumnParams(IntentParams):
    new_column_name: str | None = Field(default=None, alias="newColumnName")
    values: list[CellValue] | None = None
    default_value: CellValue = Field(default=None, alias="defaultValue")


class AddColumnIntent(_IntentBase):
    type: Literal["ADD_COLUMN"] = "ADD_COLUMN"
    params: AddColumnParams = Field(default_factory=AddColumnParams)


class DeleteColumnParams(IntentParams):
    column_name: str | None = Field(default=None, alias="columnName")
    columns: list[int | str] | None = None


class DeleteColumnIntent(_IntentBase):
    type: Literal["DELETE_COLUMN"] = "DELETE_COLUMN"
    params: DeleteColumnParams = Field(default_factory=DeleteColumnParams)


class RenameColumnParams(IntentParams):
    rename_to: str | None = Field(default=None, alias="renameTo")
    new_name: str | None = Field(default=None, alias="newName")
    rename_from: str | None = Field(default=None, alias="renameFrom")


class RenameColumnIntent(_IntentBase):
    type: Literal["RENAME_COLUMN"] = "RENAME_COLUMN"
    params: RenameColumnParams = Field(default_factory=RenameColumnParams)


class DeleteRowParams(IntentParams):
    rows: list[int] | None = None


class DeleteRowIntent(_IntentBase):
    type: Literal["DELETE_ROW"] = "DELETE_ROW"
    params: DeleteRowParams = Field(default_factory=DeleteRowParams)


class CopyColumnParams(IntentParams):
    source: str | int | None = None
    new_column_name: str | None = Field(default=None, alias="newColumnName")


class CopyColumnIntent(_IntentBase):
    type: Literal["COPY_COLUMN"] = "COPY_COLUMN"
    params: CopyColumnParams = Field(default_factory=CopyColumnParams)


# ---------------------------------------------------------------------------
# Table-level intents (resolved through sheetcore.transforms)
# ---------------------------------------------------------------------------
class SortDataParams(IntentParams):
    column: str | int | None = Field(default=None, alias="sortColumn")
    direction: Literal["asc", "desc"] = Field(default="asc", alias="sortDirection")


class SortDataIntent(_IntentBase):
    type: Literal["SORT_DATA"] = "SORT_DATA"
    params: SortDataParams = Field(default_factory=SortDataParams)


class FilterDataParams(IntentParams):
    column: str | int | None = None
    operator: str = Field(default="=", alias="filterOperator")
    value: CellValue = Field(default=None, alias="filterValue")


class FilterDataIntent(_IntentBase):
    type: Literal["FILTER_DATA"] = "FILTER_DATA"
    params: FilterDataParams = Field(default_factory=FilterDataParams)


class RemoveDuplicatesParams(IntentParams):
    columns: list[int | str] | None = None


class RemoveDuplicatesIntent(_IntentBase):
    type: Literal["REMOVE_DUPLICATES"] = "REMOVE_DUPLICATES"
    params: RemoveDuplicatesParams = Field(default_factory=RemoveDuplicatesParams)


class RemoveEmptyRowsIntent(_IntentBase):
    type: Literal["REMOVE_EMPTY_ROWS"] = "REMOVE_EMPTY_ROWS"
    params: IntentParams = Field(default_factory=IntentParams)


class DataCleansingIntent(_IntentBase):
    type: Literal["DATA_CLEANSING"] = "DATA_CLEANSING"
    params: IntentParams = Field(default_factory=IntentParams)


class SplitColumnParams(IntentParams):
    column: str | int | None = None
    delimiter: str = ","
    new_column_names: list[str] | None = Field(default=None, alias="newColumnNames")
    max_parts: int | None = Field(default=None, alias="maxParts")


class SplitColumnIntent(_IntentBase):
    type: Literal["SPLIT_COLUMN"] = "SPLIT_COLUMN"
    params: SplitColumnParams = Field(default_factory=SplitColumnParams)


class MergeColumnsParams(IntentParams):
    columns: list[int | str] | None = Field(default=None, alias="mergeColumns")
    separator: str = " "
    new_column_name: str | None = Field(default=None, alias="newColumnName")


class MergeColumnsIntent(_IntentBase):
    type: Literal["MERGE_COLUMNS"] = "MERGE_COLUMNS"
    params: MergeColumnsParams = Field(default_factory=MergeColumnsParams)


# ---------------------------------------------------------------------------
# Informational intents
# ---------------------------------------------------------------------------
class InfoIntent(_IntentBase):
    type: Literal["INFO"] = "INFO"
    params: IntentParams = Field(default_factory=IntentParams)


class ClarifyIntent(_IntentBase):
    type: Literal["CLARIFY"] = "CLARIFY"
    params: IntentParams = Field(default_factory=IntentParams)


INTENT_VARIANTS: tuple[type[_IntentBase], ...] = (
    EditCellIntent,
    EditRowIntent,
    EditColumnIntent,
    InsertFormulaIntent,
    RemoveFormulaIntent,
    FillDownIntent,
    StatisticsIntent,
    DataTransformIntent,
    GenerateDataIntent,
    FindReplaceIntent,
    ConcatenateIntent,
    GenerateIdIntent,
    AddColumnIntent,
    DeleteColumnIntent,
    RenameColumnIntent,
    DeleteRowIntent,
    CopyColumnIntent,
    SortDataIntent,
    FilterDataIntent,
    RemoveDuplicatesIntent,
    RemoveEmptyRowsIntent,
    DataCleansingIntent,
    SplitColumnIntent,
    MergeColumnsIntent,
    InfoIntent,
    ClarifyIntent,
)

Intent = Annotated[Union[INTENT_VARIANTS], Field(discriminator="type")]

INTENT_TYPES: frozenset[str] = frozenset(
    cls.model_fields["type"].default for cls in INTENT_VARIANTS
)

_INTENT_ADAPTER: TypeAdapter[Any] = TypeAdapter(Intent)


def parse_intent(data: Any) -> Any:
    """Validate a raw intent dict into its tagged variant.

    Raises IntentError for unknown kinds or malformed params.
    """
    if isinstance(data, _IntentBase):
        return data
    if not isinstance(data, dict):
        raise IntentError("Intent must be a JSON object.")
    kind = data.get("type")
    if not isinstance(kind, str) or kind not in INTENT_TYPES:
        raise IntentError(
            f"Unknown intent type: {kind!r}. Supported: {', '.join(sorted(INTENT_TYPES))}"
        )
    try:
        return _INTENT_ADAPTER.validate_python(data)
    except ValidationError as e:
        raise IntentError(f"Invalid {kind} intent: {e.errors(include_url=False)}") from e
