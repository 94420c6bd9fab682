"""Printer registry model."""

from __future__ import annotations

from dataclasses import dataclass, asdict
from typing import Any, Dict, List


@dataclass(frozen=True)
class Printer:
    """A known printer and its advertised status."""

    id: str
    status: str = "online"

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


def parse_printers(value: str) -> List[Printer]:
    """
    Parse a ``id:status,id:status`` configuration string.

    Entries without a status default to "online"; blank entries are skipped.

    Example:
        parse_printers("printer3:online,printer4:offline")
    """
    printers = []
    for item in value.split(","):
        item = item.strip()
        if not item:
            continue
        printer_id, _, status = item.partition(":")
        printers.append(Printer(id=printer_id.strip(), status=status.strip() or "online"))
    return printers
