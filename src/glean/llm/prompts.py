"""System prompts for the agents, rendered from the package's Jinja2 templates.

Rendering is strict: a variable the caller forgets (or a brand field that is
misspelled in a template) raises instead of silently rendering as blank.
"""

from __future__ import annotations

from pathlib import Path

from jinja2 import Environment, FileSystemLoader, StrictUndefined

TEMPLATE_DIR = Path(__file__).parent.parent / "templates"

_env = Environment(
    loader=FileSystemLoader(str(TEMPLATE_DIR)),
    undefined=StrictUndefined,
    trim_blocks=True,
    lstrip_blocks=True,
    keep_trailing_newline=False,
)


def render(template_name: str, **context: object) -> str:
    """Render ``template_name`` with ``context`` and strip outer whitespace."""
    return _env.get_template(template_name).render(**context).strip()
