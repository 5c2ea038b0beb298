# SPDX-License-Identifier: MIT
# Copyright (c) 2026 Ourochronos Contributors

"""Output formatting for CLI commands.

Handles JSON vs plain text output based on the ``--json`` flag.
"""

from __future__ import annotations

import json
import sys
from typing import Any


def _format_value(value: Any) -> str:
    if isinstance(value, list):
        return ", ".join(str(v) for v in value) if value else "-"
    if value is None:
        return "-"
    return str(value)


def format_text(data: dict[str, Any]) -> str:
    """Render a flat mapping as aligned ``key: value`` lines.

    Nested mappings are rendered as indented blocks; lists of mappings
    (such as claim listings) as blank-line separated blocks.
    """
    if not data:
        return ""
    width = max(len(str(k)) for k in data) + 1
    lines = []
    for key, value in data.items():
        if isinstance(value, dict):
            lines.append(f"{key}:")
            lines.extend(f"  {line}" for line in format_text(value).splitlines())
        elif isinstance(value, list) and value and isinstance(value[0], dict):
            lines.append(f"{key}:")
            blocks = [format_text(item) for item in value]
            for i, block in enumerate(blocks):
                if i:
                    lines.append("")
                lines.extend(f"  {line}" for line in block.splitlines())
        else:
            lines.append(f"{(str(key) + ':').ljust(width)} {_format_value(value)}")
    return "\n".join(lines)


def output_result(data: dict[str, Any], output_format: str = "text") -> None:
    """Print a command result as JSON or text."""
    if output_format == "json":
        print(json.dumps(data, indent=2, default=str))
    else:
        print(format_text(data))


def output_error(message: str) -> None:
    """Print error message to stderr."""
    print(f"Error: {message}", file=sys.stderr)
