"""
Observability: structured logging and render IDs.

Usage:
    from notedb.observability import RenderContext, configure_logging

    configure_logging("DEBUG", json_format=False)
    with RenderContext(prefix="chart"):
        ...
"""

from .context import RenderContext, generate_render_id, get_render_id, set_render_id
from .logging import HumanFormatter, JSONFormatter, configure_logging

__all__ = [
    "configure_logging",
    "JSONFormatter",
    "HumanFormatter",
    "RenderContext",
    "generate_render_id",
    "get_render_id",
    "set_render_id",
]
