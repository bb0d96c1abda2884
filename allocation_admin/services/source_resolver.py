# allocation_admin/services/source_resolver.py
"""
Expansion of a selected source item into the customer ids it denotes.

The app uses ``app.extensions["customer_source_resolver"]`` when set, otherwise
a resolver backed by the Reporting API.
"""
import logging

from flask import current_app

from ..reporting.client import create_api_client
from .customer_sources import SourceKind

logger = logging.getLogger(__name__)


class CustomerSourceResolver:
    def members(self, kind, item_id):
        """Return the set of customer ids behind one source item."""
        raise NotImplementedError


class StaticSourceResolver(CustomerSourceResolver):
    """Membership from a fixed mapping ``{(kind, item_id): customer ids}``."""

    def __init__(self, mapping=None):
        self.mapping = {}
        for (kind, item_id), ids in (mapping or {}).items():
            self.mapping[(SourceKind.parse(kind), str(item_id))] = {str(c) for c in ids}

    def members(self, kind, item_id):
        kind = SourceKind.parse(kind)
        if kind is SourceKind.SEARCH:
            return {str(item_id)}
        return set(self.mapping.get((kind, str(item_id)), set()))


class ReportingSourceResolver(CustomerSourceResolver):
    """Groups and clubs come from the Reporting API; search items are customers already."""

    def __init__(self, client):
        self.client = client

    def members(self, kind, item_id):
        kind = SourceKind.parse(kind)
        item_id = str(item_id)
        if kind is SourceKind.SEARCH:
            return {item_id}
        if kind is SourceKind.GROUP:
            customers = self.client.get_customers_in_group(item_id) or {}
            return {str(cid) for cid in customers}
        if kind is SourceKind.CLUB:
            members = self.client.get_club_members() or []
            if isinstance(members, dict):
                members = list(members.values())
            return {
                str(m.get("customer_id"))
                for m in members
                if str(m.get("club_id")) == item_id and m.get("customer_id") is not None
            }
        # saved queries and tags have no Reporting API endpoint
        logger.warning("cannot expand %s source %s; no members assigned", kind.value, item_id)
        return set()


def get_resolver():
    resolver = current_app.extensions.get("customer_source_resolver")
    if resolver is None:
        resolver = ReportingSourceResolver(create_api_client())
    return resolver
