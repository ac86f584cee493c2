"""
Pydantic request/response models for the NoteDB API.

Usage:
    from api.response_models import BlockRequest, BlockResponse

    @app.post("/blocks/render", response_model=BlockResponse)
    def render(body: BlockRequest): ...
"""

from typing import Any, Literal

from pydantic import BaseModel, Field

from notedb.periods import Period

# ==== Data Access protocol ====
# Shape shared with RemoteBackend: {sql, params}


class StatementRequest(BaseModel):
    """One parameterized statement."""

    sql: str = Field(description="SQL text with ? placeholders")
    params: list[Any] = Field(default_factory=list, description="Positional parameters")


# ==== Blocks ====


class BlockRequest(BaseModel):
    kind: Literal["sql", "chart"] = Field(description="Block kind")
    source: str = Field(description="Raw block text; placeholders are substituted server-side")


class BlockErrorModel(BaseModel):
    message: str
    detail: str | None = None
    available_columns: list[str] = Field(default_factory=list)
    query: str | None = None
    params: list[Any] | None = None
    usage: str | None = None


class ChartModel(BaseModel):
    type: str
    labels: list[Any]
    datasets: list[dict[str, Any]]
    options: dict[str, Any] = Field(default_factory=dict)


class BlockResponse(BaseModel):
    kind: str
    ok: bool
    display_format: str = "list"
    columns: list[str] = Field(default_factory=list)
    rows: list[list[Any]] = Field(default_factory=list)
    chart: ChartModel | None = None
    error: BlockErrorModel | None = None
    notice: str | None = None
    text: str = Field(description="Plain-text rendering")


# ==== Tables ====


class TableListResponse(BaseModel):
    items: list[str] = Field(default_factory=list)
    total: int


class TableInspectionResponse(BaseModel):
    table: str
    columns: list[str]
    first_row: dict[str, Any] | None = None
    text: str


# ==== Selection ====


class SelectionResponse(BaseModel):
    selected_date: str
    current_period: Period
    period_start_date: str
    period_end_date: str
    period_id: str
    display: str = Field(description="Human-readable period label")


class SelectionUpdate(BaseModel):
    """Apply either a direct change or a navigation step, not both."""

    selected_date: str | None = Field(default=None, description="YYYY-MM-DD")
    period: Period | None = None
    navigate: Literal["next", "prev", "today"] | None = None


# ==== Widgets ====


class WidgetMountRequest(BaseModel):
    kind: Literal["counter", "switch", "text", "add-text"]
    attributes: dict[str, Any] = Field(default_factory=dict)


class WidgetAction(BaseModel):
    action: Literal["increment", "decrement", "toggle", "commit", "add", "reload"]
    value: str | None = Field(default=None, description="Text for commit or add")


class WidgetResponse(BaseModel):
    id: str
    kind: str
    state: str
    effective_date: str
    value: Any = None
    text: str = ""
    checked: bool = False
    disabled: bool = True
    error: bool = False
    tooltip: str = ""
    label: str = ""


# ==== Health ====


class HealthResponse(BaseModel):
    status: str = Field(description="healthy or error")
    mode: str = Field(description="local or remote")
    timestamp: str = Field(description="ISO timestamp")
