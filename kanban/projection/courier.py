"""
Courier strategy — service orders placed on the courier board, as placed.
"""
from typing import Any, Dict, List

from kanban.projection.base import KanbanItem
from kanban.projection.bundles import load_bundle
from kanban.projection.context import ProjectionContext
from kanban.projection.transformers import service_order_to_item


def project_courier(ctx: ProjectionContext, placements: List[Dict[str, Any]]) -> List[KanbanItem]:
    placed = {p['entity_id']: p for p in placements if p['entity_type'] == 'service_order'}
    if not placed:
        return []

    bundle = load_bundle(order_ids=list(placed))
    items = []
    for order_id, placement in placed.items():
        order = bundle.orders.get(order_id)
        if order is None:
            continue
        items.append(service_order_to_item(
            order, bundle.lead_of_order(order_id), ctx.pipeline.id,
            ctx.stage_by_id(placement['stage_id']), placement,
            bundle.order_tags(order_id), total=bundle.order_total(order_id),
            tray_numbers=[t.get('number') for t in bundle.trays_of_order(order_id)],
        ))

    items.sort(key=lambda i: -(i.created_at.timestamp() if i.created_at else 0))
    return items
