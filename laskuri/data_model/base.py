"""Editor schemas over nested JSON documents.

Columns address document values with dotted paths (``"discount.percentage"``),
so an editor can work on one flat row per document while storage keeps the
nested wire shape. ``flatten`` and ``nest`` convert between the two.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Tuple

import pandas as pd

_MISSING = object()


@dataclass
class ColumnDefinition:
    """One editable value of a document."""

    field: str  # dotted path, e.g. "discount.percentage"
    label: str
    kind: str = "text"  # text | number | select | date | bool
    default: Any = ""
    options: List[str] | None = None
    min_value: float | None = None
    step: float | None = None
    format: str | None = None
    help: str | None = None

    @property
    def path(self) -> Tuple[str, ...]:
        return tuple(self.field.split("."))

    def read(self, document: Mapping[str, Any]) -> Any:
        """Value at this column's path, or the column default when absent."""
        node: Any = document
        for part in self.path:
            if not isinstance(node, Mapping):
                return self.default
            node = node.get(part, _MISSING)
            if node is _MISSING:
                return self.default
        return node


@dataclass
class TableModel:
    """Editor schema plus the default documents a new table starts with."""

    name: str
    columns: List[ColumnDefinition]
    default_rows: List[dict[str, Any]] = field(default_factory=list)

    @property
    def fields(self) -> List[str]:
        return [col.field for col in self.columns]

    def flatten(self, document: Mapping[str, Any]) -> Dict[str, Any]:
        return {col.field: col.read(document) for col in self.columns}

    @staticmethod
    def is_flat(row: Mapping[str, Any]) -> bool:
        return any("." in str(key) for key in row)

    @staticmethod
    def nest(row: Mapping[str, Any]) -> Dict[str, Any]:
        """Rebuild a nested document from a flat row.

        Keys without a dot are copied as they are; a dotted key whose
        parent already holds a non-object value replaces that value.
        """
        document: Dict[str, Any] = {}
        for key, value in row.items():
            *parents, leaf = str(key).split(".")
            node = document
            for part in parents:
                child = node.get(part)
                if not isinstance(child, dict):
                    child = node[part] = {}
                node = child
            node[leaf] = value
        return document

    def create_default_df(self) -> pd.DataFrame:
        rows = self.default_rows or [{}]
        return pd.DataFrame([self.flatten(row) for row in rows], columns=self.fields)
