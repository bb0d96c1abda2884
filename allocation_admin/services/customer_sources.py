# allocation_admin/services/customer_sources.py
"""
Staging area for the customers a tier will target.

Each source kind keeps its own list of selected items. The selection is
flattened into assignment triples only when the tier is created.
"""
from __future__ import annotations

import logging
from collections import namedtuple
from dataclasses import dataclass
from enum import Enum
from typing import Dict, List, Optional

from ..errors import ValidationError

logger = logging.getLogger(__name__)


class SourceKind(str, Enum):
    QUERY = "query"
    TAG = "tag"
    GROUP = "group"
    CLUB = "club"
    SEARCH = "search"

    @classmethod
    def parse(cls, value) -> "SourceKind":
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value or "").strip().lower())
        except ValueError:
            allowed = ", ".join(k.value for k in cls)
            raise ValidationError(f"source must be one of: {allowed}")


SOURCE_LABELS = {
    SourceKind.QUERY: "Queries",
    SourceKind.TAG: "Tags",
    SourceKind.GROUP: "Groups",
    SourceKind.CLUB: "Clubs",
    SourceKind.SEARCH: "Search",
}

SourceAssignment = namedtuple("SourceAssignment", "source_type source_id customer_id")


@dataclass(frozen=True)
class SourceItem:
    id: str
    name: str = ""
    count: Optional[int] = None   # cardinality, when known

    @property
    def estimated_customers(self) -> int:
        # unknown (or zero) cardinality counts as one customer
        return self.count or 1

    def as_api(self):
        return {"id": self.id, "name": self.name, "count": self.count}


class SelectedSources:
    def __init__(self, active_kind=SourceKind.QUERY):
        self.active_kind = SourceKind.parse(active_kind)
        self._sources: Dict[SourceKind, List[SourceItem]] = {}

    # ---- selection ---------------------------------------------------------
    def set_active_kind(self, kind) -> "SelectedSources":
        self.active_kind = SourceKind.parse(kind)
        return self

    def toggle(self, item: SourceItem, kind=None) -> "SelectedSources":
        """Select ``item`` under ``kind`` (default: the active kind) or deselect it if present."""
        kind = SourceKind.parse(kind) if kind is not None else self.active_kind
        if self.is_selected(kind, item.id):
            return self.remove_selection(kind, item.id)
        return self.add_selection(kind, item)

    def add_selection(self, kind, item: SourceItem) -> "SelectedSources":
        kind = SourceKind.parse(kind)
        items = self._sources.setdefault(kind, [])
        if not any(i.id == item.id for i in items):
            items.append(item)
        return self

    def remove_selection(self, kind, item_id) -> "SelectedSources":
        kind = SourceKind.parse(kind)
        items = [i for i in self._sources.get(kind, []) if i.id != str(item_id)]
        if items:
            self._sources[kind] = items
        else:
            self._sources.pop(kind, None)
        return self

    def remove_source(self, kind) -> "SelectedSources":
        self._sources.pop(SourceKind.parse(kind), None)
        return self

    # ---- inspection --------------------------------------------------------
    def is_selected(self, kind, item_id) -> bool:
        return any(i.id == str(item_id) for i in self._sources.get(SourceKind.parse(kind), []))

    def kinds(self) -> List[SourceKind]:
        return list(self._sources)

    def items(self, kind) -> List[SourceItem]:
        return list(self._sources.get(SourceKind.parse(kind), []))

    def __len__(self):
        return sum(len(items) for items in self._sources.values())

    def __bool__(self):
        return bool(self._sources)

    def source_total(self, kind) -> int:
        return sum(i.estimated_customers for i in self.items(kind))

    def total_estimated_customers(self) -> int:
        """Summed cardinalities; a customer reachable through two sources counts twice."""
        return sum(self.source_total(kind) for kind in self._sources)

    def resolution_gaps(self):
        return [(kind, item) for kind, items in self._sources.items() for item in items if item.count is None]

    def as_api(self):
        return [
            {
                "source": kind.value,
                "label": SOURCE_LABELS[kind],
                "customers": self.source_total(kind),
                "items": [i.as_api() for i in items],
            }
            for kind, items in self._sources.items()
        ]

    # ---- resolution --------------------------------------------------------
    def flatten(self, resolver) -> List[SourceAssignment]:
        """Expand every selected item into one triple per member customer."""
        for kind, item in self.resolution_gaps():
            logger.debug("no cardinality for %s item %s, estimating 1", kind.value, item.id)

        rows = []
        for kind, items in self._sources.items():
            for item in items:
                for customer_id in sorted(resolver.members(kind, item.id)):
                    rows.append(SourceAssignment(kind.value, item.id, str(customer_id)))
        return rows

    def exact_customer_count(self, resolver) -> int:
        """Distinct customers across all sources."""
        return len({row.customer_id for row in self.flatten(resolver)})

    @classmethod
    def from_payload(cls, payload) -> "SelectedSources":
        """
        Build from the console's summary::

            [{"source": "tag", "items": [{"id": "t1", "name": "VIP", "count": 150}]}]
        """
        selected = cls()
        if payload is None:
            return selected
        if not isinstance(payload, list):
            raise ValidationError("sources must be a list")
        for entry in payload:
            if not isinstance(entry, dict):
                raise ValidationError("each source must be an object")
            kind = SourceKind.parse(entry.get("source"))
            items = entry.get("items") or []
            if not isinstance(items, list):
                raise ValidationError("source items must be a list")
            for raw in items:
                selected.add_selection(kind, _item_from_payload(raw))
        return selected


def _item_from_payload(raw) -> SourceItem:
    if isinstance(raw, (str, int)):
        return SourceItem(id=str(raw))
    if not isinstance(raw, dict) or raw.get("id") in (None, ""):
        raise ValidationError("source items need an id")
    count = raw.get("count")
    if count is not None:
        try:
            count = int(count)
        except (TypeError, ValueError):
            raise ValidationError("source item count must be an integer")
        if count < 0:
            raise ValidationError("source item count must be >= 0")
    return SourceItem(id=str(raw["id"]), name=str(raw.get("name") or ""), count=count)
