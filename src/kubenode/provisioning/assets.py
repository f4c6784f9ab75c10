"""
Configuration templates shipped as package data.

Templates use string.Template placeholders (${name}); files without
placeholders are written verbatim.
"""

from pathlib import Path
from string import Template

TEMPLATES_DIR = Path(__file__).resolve().parent / "templates"


def template_path(name: str) -> Path:
    candidate = TEMPLATES_DIR / name
    if not candidate.exists():
        raise FileNotFoundError(f"Template '{name}' is missing from {TEMPLATES_DIR}")
    return candidate


def render_template(name: str, **values: str) -> str:
    # substitute() raises KeyError on a missing value rather than writing a half-filled file
    return Template(template_path(name).read_text(encoding="utf-8")).substitute(**values)
