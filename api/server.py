"""
NoteDB API server.

Exposes one NoteDBRuntime over HTTP:

- POST /query, POST /execute: the Data Access protocol RemoteBackend speaks,
  so one NoteDB instance can serve another
- /blocks/render: row-query and chart blocks
- /selection: the shared selected date and period (changes stream as SSE)
- /widgets: mounted widget controllers and their interactions
- /tables: table listing and structure inspection

Build with create_app(); `python -m cli serve` runs it under uvicorn.
"""

import logging
import os
import uuid
from datetime import datetime

from fastapi import Depends, FastAPI, HTTPException, Response
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import PlainTextResponse

from api.auth import require_auth
from api.response_models import (
    BlockErrorModel,
    BlockRequest,
    BlockResponse,
    ChartModel,
    HealthResponse,
    SelectionResponse,
    SelectionUpdate,
    StatementRequest,
    TableInspectionResponse,
    TableListResponse,
    WidgetAction,
    WidgetMountRequest,
    WidgetResponse,
)
from api.sse_router import EventBus, create_event, sse_router
from notedb.config import Settings, load_settings
from notedb.errors import ConfigError, NoteDBError
from notedb.periods import format_period_for_display, period_id
from notedb.processors import BlockResult, inspect_table
from notedb.runtime import NoteDBRuntime
from notedb.selection import DATE_CHANGED_EVENT, SelectionChange
from notedb.widgets import AddTextWidget, BindingWidget, CounterWidget, SwitchWidget, TextWidget

logger = logging.getLogger(__name__)


def _block_response(result: BlockResult) -> BlockResponse:
    error = None
    if result.error is not None:
        e = result.error
        error = BlockErrorModel(
            message=e.message,
            detail=e.detail,
            available_columns=e.available_columns,
            query=e.query,
            params=e.params,
            usage=e.usage,
        )
    return BlockResponse(
        kind=result.kind.value,
        ok=result.ok,
        display_format=result.display_format,
        columns=result.result.columns if result.result else [],
        rows=result.result.rows if result.result else [],
        chart=ChartModel(**result.chart.to_dict()) if result.chart else None,
        error=error,
        notice=result.notice,
        text=result.to_text(),
    )


def _selection_response(change: SelectionChange) -> SelectionResponse:
    return SelectionResponse(
        **change.to_dict(),
        period_id=period_id(change.selected_date, change.current_period),
        display=format_period_for_display(change.selected_date, change.current_period),
    )


def _widget_response(widget_id: str, widget: BindingWidget) -> WidgetResponse:
    view = widget.view
    return WidgetResponse(
        id=widget_id,
        kind=widget.kind.value,
        state=widget.state.value,
        effective_date=widget.effective_date(),
        value=widget.value,
        text=view.text,
        checked=view.checked,
        disabled=view.disabled,
        error=view.error,
        tooltip=view.tooltip,
        label=view.label,
    )


def create_app(settings: Settings | None = None, runtime: NoteDBRuntime | None = None) -> FastAPI:
    """Build the API around *runtime*, or a runtime opened from *settings*."""
    if runtime is None:
        runtime = NoteDBRuntime(settings or load_settings())

    app = FastAPI(
        title="NoteDB API",
        description="Declarative SQL blocks, charts and bound widgets over one SQLite database",
        version="1.0.0",
    )

    # Dev default: allow all origins; set CORS_ORIGINS to a comma-separated list otherwise
    cors_origins_env = os.getenv("CORS_ORIGINS", "*")
    cors_origins = ["*"] if cors_origins_env == "*" else [o.strip() for o in cors_origins_env.split(",")]
    app.add_middleware(
        CORSMiddleware,
        allow_origins=cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    event_bus = EventBus()
    widgets: dict[str, BindingWidget] = {}
    app.state.runtime = runtime
    app.state.event_bus = event_bus
    app.state.widgets = widgets

    def publish_date_changed(change: SelectionChange) -> None:
        event_bus.publish(create_event(DATE_CHANGED_EVENT, change.to_dict()))

    runtime.register_view(publish_date_changed)
    app.include_router(sse_router)

    @app.on_event("shutdown")
    def deactivate_runtime():
        runtime.deactivate()

    # ==== Health ====

    @app.get("/api/health", response_model=HealthResponse)
    def health_check():
        return HealthResponse(
            status="healthy" if runtime.active else "error",
            mode=runtime.backend.mode,
            timestamp=datetime.now().isoformat(),
        )

    # ==== Data Access protocol ====
    # Failures answer with the engine's message as a plain-text body.

    @app.post("/query", dependencies=[Depends(require_auth)])
    def query(body: StatementRequest):
        try:
            return runtime.backend.execute(body.sql, body.params)
        except NoteDBError as e:
            logger.info("Rejected /query: %s", e)
            return PlainTextResponse(str(e), status_code=400)

    @app.post("/execute", dependencies=[Depends(require_auth)])
    def execute(body: StatementRequest):
        try:
            runtime.backend.run(body.sql, body.params)
        except NoteDBError as e:
            logger.info("Rejected /execute: %s", e)
            return PlainTextResponse(str(e), status_code=400)
        runtime.records.forget()
        return Response(status_code=204)

    # ==== Tables ====

    @app.get("/tables", response_model=TableListResponse, dependencies=[Depends(require_auth)])
    def list_tables():
        try:
            tables = runtime.backend.list_tables()
        except NoteDBError as e:
            raise HTTPException(status_code=502, detail=str(e)) from e
        return TableListResponse(items=tables, total=len(tables))

    @app.get("/tables/{table}", response_model=TableInspectionResponse, dependencies=[Depends(require_auth)])
    def get_table(table: str):
        try:
            inspection = inspect_table(runtime.backend, table)
        except ConfigError as e:
            raise HTTPException(status_code=400, detail=str(e)) from e
        except NoteDBError as e:
            raise HTTPException(status_code=502, detail=str(e)) from e
        if not inspection.columns:
            raise HTTPException(status_code=404, detail=f'Table "{table}" does not exist.')
        return TableInspectionResponse(
            table=inspection.table,
            columns=inspection.columns,
            first_row=inspection.first_row,
            text=inspection.to_text(),
        )

    # ==== Blocks ====

    @app.post("/blocks/render", response_model=BlockResponse, dependencies=[Depends(require_auth)])
    def render_block(body: BlockRequest):
        return _block_response(runtime.render_block(body.kind, body.source))

    # ==== Selection ====

    @app.get("/selection", response_model=SelectionResponse, dependencies=[Depends(require_auth)])
    def get_selection():
        return _selection_response(runtime.selection.snapshot())

    @app.put("/selection", response_model=SelectionResponse, dependencies=[Depends(require_auth)])
    def update_selection(body: SelectionUpdate):
        selection = runtime.selection
        if body.navigate and (body.selected_date or body.period):
            raise HTTPException(status_code=400, detail="navigate cannot be combined with selected_date or period")
        try:
            if body.navigate == "next":
                selection.go_next()
            elif body.navigate == "prev":
                selection.go_prev()
            elif body.navigate == "today":
                selection.go_today()
            else:
                selection.set(selected_date=body.selected_date, period=body.period)
        except ConfigError as e:
            raise HTTPException(status_code=400, detail=str(e)) from e
        return _selection_response(selection.snapshot())

    # ==== Widgets ====

    def _get_widget(widget_id: str) -> BindingWidget:
        widget = widgets.get(widget_id)
        if widget is None:
            raise HTTPException(status_code=404, detail=f"Unknown widget {widget_id}")
        return widget

    @app.post("/widgets", response_model=WidgetResponse, dependencies=[Depends(require_auth)])
    def mount_widget(body: WidgetMountRequest):
        widget = runtime.mount_widget(body.kind, body.attributes)
        widget_id = uuid.uuid4().hex[:12]
        widgets[widget_id] = widget
        return _widget_response(widget_id, widget)

    @app.get("/widgets/{widget_id}", response_model=WidgetResponse, dependencies=[Depends(require_auth)])
    def get_widget(widget_id: str):
        return _widget_response(widget_id, _get_widget(widget_id))

    @app.delete("/widgets/{widget_id}", status_code=204, dependencies=[Depends(require_auth)])
    def unmount_widget(widget_id: str):
        runtime.unmount_widget(_get_widget(widget_id))
        del widgets[widget_id]
        return Response(status_code=204)

    @app.post("/widgets/{widget_id}/actions", response_model=WidgetResponse, dependencies=[Depends(require_auth)])
    def widget_action(widget_id: str, body: WidgetAction):
        widget = _get_widget(widget_id)
        action = body.action
        if action == "reload":
            widget.load()
        elif action in ("increment", "decrement") and isinstance(widget, CounterWidget):
            getattr(widget, action)()
        elif action == "toggle" and isinstance(widget, SwitchWidget):
            widget.toggle()
        elif action == "commit" and isinstance(widget, TextWidget):
            widget.commit(body.value or "")
        elif action == "add" and isinstance(widget, AddTextWidget):
            widget.add(body.value or "")
        else:
            raise HTTPException(status_code=400, detail=f"{action} is not supported by a {widget.kind.value} widget")
        return _widget_response(widget_id, widget)

    return app
