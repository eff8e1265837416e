"""Rendering of table controllers in Streamlit."""

from .streamlit_table import get_table_controller, render_table, reset_table_controller

__all__ = [
    "render_table",
    "get_table_controller",
    "reset_table_controller",
]
