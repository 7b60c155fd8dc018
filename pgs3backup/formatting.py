# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
Presentation helpers for the command line.
"""

import json
from datetime import datetime
from typing import List, Sequence

from pgs3backup.catalog import CatalogEntry

_UNITS = ["B", "KB", "MB", "GB", "TB"]


def format_bytes(size: float) -> str:
    unit = 0
    while size >= 1024 and unit < len(_UNITS) - 1:
        size /= 1024
        unit += 1
    return f"{size:.2f} {_UNITS[unit]}"


def format_duration(ms: int) -> str:
    seconds = ms // 1000
    minutes = seconds // 60
    hours = minutes // 60
    if hours > 0:
        return f"{hours}h {minutes % 60}m {seconds % 60}s"
    if minutes > 0:
        return f"{minutes}m {seconds % 60}s"
    return f"{seconds}s"


def format_date(value: datetime) -> str:
    return value.strftime("%m/%d/%Y %H:%M")


def render_json(entries: Sequence[CatalogEntry]) -> str:
    return json.dumps([e.to_dict() for e in entries], indent=2)


def render_table(entries: Sequence[CatalogEntry]) -> str:
    """Render the catalog as a fixed-width table."""
    if not entries:
        return "No backups found"

    headers = ["ID", "Last Modified", "Name", "Size"]
    rows: List[List[str]] = [
        [e.id, format_date(e.date), e.name, format_bytes(e.size)] for e in entries
    ]
    widths = [max(len(row[i]) for row in [headers, *rows]) for i in range(len(headers))]

    def _line(cells: Sequence[str]) -> str:
        return "  ".join(cell.ljust(width) for cell, width in zip(cells, widths)).rstrip()

    separator = "  ".join("-" * width for width in widths)
    return "\n".join([_line(headers), separator, *(_line(row) for row in rows)])
