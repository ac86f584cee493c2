"""
Render context management with context-local storage.
"""

import contextvars
import uuid
from typing import Optional

# Context variable for the id of the block or widget currently being processed
_render_id_var: contextvars.ContextVar[Optional[str]] = contextvars.ContextVar(
    "render_id", default=None
)


def get_render_id() -> Optional[str]:
    """Get the current render ID from context."""
    return _render_id_var.get()


def set_render_id(render_id: str) -> contextvars.Token:
    """Set the render ID in context. Returns token for reset."""
    return _render_id_var.set(render_id)


def generate_render_id(prefix: str = "rnd") -> str:
    return f"{prefix}-{uuid.uuid4().hex[:12]}"


class RenderContext:
    """
    Context manager scoping log lines to one block render or widget load.

    Usage:
        with RenderContext(prefix="sql") as ctx:
            logger.info("Rendering block")  # formatted with ctx.render_id

    Nested contexts restore the outer id on exit.
    """

    def __init__(self, render_id: Optional[str] = None, prefix: str = "rnd"):
        self.render_id = render_id or generate_render_id(prefix)
        self._token: Optional[contextvars.Token] = None

    def __enter__(self) -> "RenderContext":
        self._token = set_render_id(self.render_id)
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        if self._token is not None:
            _render_id_var.reset(self._token)
            self._token = None
