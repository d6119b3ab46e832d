"""HTML rendering of flattened database rows for digest emails."""

import os
from functools import lru_cache
from typing import Any, Sequence

from jinja2 import Environment, FileSystemLoader, Template

NO_DATA_HTML = "<p>No data found.</p>"

TEMPLATES_DIR = os.path.join(os.path.dirname(__file__), "..", "templates", "email")


def _cell(value: Any) -> Any:
    return "" if value is None else value


@lru_cache
def _table_template() -> Template:
    env = Environment(loader=FileSystemLoader(TEMPLATES_DIR), autoescape=True)
    env.filters["cell"] = _cell
    return env.get_template("digest_table.html")


def render_rows_as_html_table(rows: Sequence[dict[str, Any]]) -> str:
    """Render rows as an HTML table.

    Columns come from the first row's keys only; later rows are rendered
    against that list, so keys missing from the first row are dropped and
    keys missing from a later row render as empty cells. Header and cell
    text is escaped.
    """
    if not rows:
        return NO_DATA_HTML
    return _table_template().render(columns=list(rows[0].keys()), rows=rows)
