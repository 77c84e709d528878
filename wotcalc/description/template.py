"""Thing Model loading and placeholder substitution.

A Thing Model is a Thing Description skeleton whose values may contain
`{{NAME}}` placeholders. A string that is exactly one placeholder is replaced
by the variable's value with its type preserved (so `"{{PORT_NUMBER}}"`
becomes the integer 3000 and `"{{RESULT_OBSERVABLE}}"` becomes `true`).
Placeholders embedded in longer strings are replaced by the value's text.
Unknown placeholders are left untouched.
"""

from __future__ import annotations

import re
from pathlib import Path
from typing import Any

from wotcalc.config.load_utils import load_json_file

_PLACEHOLDER = re.compile(r"\{\{\s*([A-Za-z_][A-Za-z0-9_]*)\s*\}\}")


def _text(value: Any) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


def substitute_placeholders(obj: Any, variables: dict[str, Any]) -> Any:
    """Return a copy of obj with placeholders in keys and string values replaced."""
    if isinstance(obj, dict):
        return {
            substitute_placeholders(key, variables): substitute_placeholders(value, variables)
            for key, value in obj.items()
        }
    if isinstance(obj, list):
        return [substitute_placeholders(item, variables) for item in obj]
    if not isinstance(obj, str):
        return obj

    whole = _PLACEHOLDER.fullmatch(obj.strip())
    if whole and whole.group(1) in variables:
        return variables[whole.group(1)]

    def replace(match: re.Match[str]) -> str:
        name = match.group(1)
        if name not in variables:
            return match.group(0)
        return _text(variables[name])

    return _PLACEHOLDER.sub(replace, obj)


def render_thing_model(path: Path, variables: dict[str, Any]) -> dict[str, Any]:
    """Load a Thing Model file and substitute its placeholders.

    Raises:
        LoadError: If the file is missing or not a JSON object.
    """
    model = load_json_file(path, error_context="thing model")
    return substitute_placeholders(model, variables)
