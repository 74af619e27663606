"""Table used by every CLI listing."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from rich import box
from rich.table import Table as RichTable

if TYPE_CHECKING:
    from rich.console import RenderableType

STATE_STYLES = {
    "running": "green",
    "healthy": "green",
    "exited": "red",
    "dead": "red",
    "unhealthy": "red",
}


def styled_state(state: str) -> str:
    """Wrap a container state in markup for its colour (yellow when unknown)."""
    if not state:
        return "-"
    return f"[{STATE_STYLES.get(state.lower(), 'yellow')}]{state}[/]"


class Table(RichTable):
    """Rich Table with the devstack look.

    Bold headers and a light box by default. Columns fold long values
    (container status lines, port mappings, file paths) instead of
    truncating them, so nothing is lost in a narrow terminal.

    Usage:
        table = Table(title="Certificates")
        table.add_column("Name", style="cyan", no_wrap=True)
        table.add_column("Certificate")
        table.add_row("gateway5", "/stack/volumes/gateway5/certificates/gw-manager.pem")
    """

    def __init__(self, *headers: Any, **kwargs: Any) -> None:
        kwargs.setdefault("box", box.SIMPLE_HEAVY)
        kwargs.setdefault("header_style", "bold")
        kwargs.setdefault("title_justify", "left")
        super().__init__(*headers, **kwargs)

    def add_column(
        self, header: RenderableType = "", footer: RenderableType = "", **kwargs: Any
    ) -> None:
        """Add a column that folds overflowing text unless told otherwise."""
        kwargs.setdefault("overflow", "fold")
        super().add_column(header, footer, **kwargs)
