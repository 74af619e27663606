"""Rendering helpers shared by the CLI commands.

Listings go through ``render_records`` so ``--output json|yaml`` works the
same everywhere; ad-hoc tables use the project's ``Table``.
"""

from dev_stack_manager.cli.output.formatters import OutputFormat, render_document, render_records
from dev_stack_manager.cli.output.table import Table, styled_state

__all__ = ["OutputFormat", "Table", "render_document", "render_records", "styled_state"]
