"""
Entity bundles — the lead / service order / tray graph a strategy works on.

load_bundle() walks outward from whatever ids the strategy starts with
(trays → orders → leads, and back down to every tray, line item and service)
so totals and tags are computed from complete data.
"""
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Optional

from kanban.projection.fetchers import (
    fetch_concurrently,
    fetch_lead_tags,
    fetch_leads,
    fetch_service_orders,
    fetch_services,
    fetch_tray_items,
    fetch_trays,
)
from kanban.projection.transformers import estimated_minutes, resolve_tags, tray_total


def _by_id(rows):
    return {row['id']: row for row in rows}


def _number_key(tray):
    return (tray.get('number') or '', tray['id'])


@dataclass
class Bundle:
    leads: Dict[str, Dict[str, Any]] = field(default_factory=dict)
    lead_tags: Dict[str, List[Dict[str, Any]]] = field(default_factory=dict)
    orders: Dict[str, Dict[str, Any]] = field(default_factory=dict)
    trays: Dict[str, Dict[str, Any]] = field(default_factory=dict)
    tray_items: Dict[str, List[Dict[str, Any]]] = field(default_factory=dict)
    services: Dict[str, Dict[str, Any]] = field(default_factory=dict)

    # ── Navigation ───────────────────────────────────────────────────────

    def lead_of_order(self, order_id) -> Optional[Dict[str, Any]]:
        order = self.orders.get(order_id)
        return self.leads.get(order['lead_id']) if order else None

    def order_of_tray(self, tray_id) -> Optional[Dict[str, Any]]:
        tray = self.trays.get(tray_id)
        return self.orders.get(tray['service_order_id']) if tray else None

    def orders_of_lead(self, lead_id) -> List[Dict[str, Any]]:
        return [o for o in self.orders.values() if o['lead_id'] == lead_id]

    def trays_of_order(self, order_id) -> List[Dict[str, Any]]:
        return sorted(
            (t for t in self.trays.values() if t['service_order_id'] == order_id),
            key=_number_key,
        )

    def tags_of_lead(self, lead_id) -> List[Dict[str, Any]]:
        return self.lead_tags.get(lead_id, [])

    # ── Money / time ─────────────────────────────────────────────────────

    def _prices(self):
        return {sid: s.get('price') or 0 for sid, s in self.services.items()}

    def tray_total(self, tray_id) -> float:
        tray = self.trays.get(tray_id)
        if tray is None:
            return 0.0
        order = self.orders.get(tray['service_order_id']) or {}
        return tray_total(self.tray_items.get(tray_id, []), self._prices(), order.get('subscription_type'))

    def order_total(self, order_id) -> float:
        return round(sum(self.tray_total(t['id']) for t in self.trays_of_order(order_id)), 2)

    def lead_total(self, lead_id) -> float:
        return round(sum(self.order_total(o['id']) for o in self.orders_of_lead(lead_id)), 2)

    def tray_minutes(self, tray_id) -> float:
        times = {sid: s.get('time') for sid, s in self.services.items()}
        return estimated_minutes(self.tray_items.get(tray_id, []), times)

    def order_tags(self, order_id):
        """Lead tags as shown on the order's card (urgent rule applied)."""
        order = self.orders.get(order_id) or {}
        return resolve_tags(self.tags_of_lead(order.get('lead_id')), bool(order.get('urgent')), order_id)


def load_bundle(lead_ids: Iterable[str] = (), order_ids: Iterable[str] = (),
                tray_ids: Iterable[str] = ()) -> Bundle:
    """
    Fetch everything reachable from the given ids. Raises FetchError on failure.
    """
    lead_ids, order_ids, tray_ids = list(lead_ids), list(order_ids), list(tray_ids)

    start_trays = fetch_trays(ids=tray_ids).data_or_raise()
    order_ids = order_ids + [t['service_order_id'] for t in start_trays]

    orders = fetch_service_orders(ids=order_ids, lead_ids=lead_ids).data_or_raise()
    all_lead_ids = lead_ids + [o['lead_id'] for o in orders]

    results = fetch_concurrently({
        'leads': lambda: fetch_leads(all_lead_ids),
        'tags': lambda: fetch_lead_tags(all_lead_ids),
        'trays': lambda: fetch_trays(service_order_ids=[o['id'] for o in orders]),
    })
    leads = results['leads'].data_or_raise()
    lead_tags = results['tags'].data_or_raise()
    trays = _by_id(start_trays)
    trays.update(_by_id(results['trays'].data_or_raise()))

    items = fetch_tray_items(list(trays)).data_or_raise()
    tray_items: Dict[str, List[Dict[str, Any]]] = {}
    for item in items:
        tray_items.setdefault(item['tray_id'], []).append(item)

    services = fetch_services([i['service_id'] for i in items if i.get('service_id')]).data_or_raise()

    return Bundle(
        leads=_by_id(leads),
        lead_tags=lead_tags,
        orders=_by_id(orders),
        trays=trays,
        tray_items=tray_items,
        services=_by_id(services),
    )
