"""Sheet document export."""

from .sheet_composer import (
    SheetSaveError,
    compose_sheet,
    load_sheet,
    read_sheet_file,
    render_composite_preview,
    save_sheet,
    write_sheet_file,
)

__all__ = [
    'SheetSaveError',
    'compose_sheet',
    'load_sheet',
    'read_sheet_file',
    'render_composite_preview',
    'save_sheet',
    'write_sheet_file',
]
