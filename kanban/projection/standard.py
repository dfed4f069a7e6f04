"""
Standard strategy — leads placed in a pipeline, shown where they are placed.

The sales pipeline adds display-only overrides on top of the placement:
no-deal, callbacks, ordered, active orders elsewhere, foreign numbers, and
the courier / office-direct "arrived today" window. Overrides never move the
persisted placement.
"""
import logging
from datetime import timedelta
from typing import Any, Dict, List, Optional, Tuple

from kanban.config import ARRIVED_TODAY_WINDOW_HOURS
from kanban.projection.base import KanbanItem
from kanban.projection.bundles import Bundle, load_bundle
from kanban.projection.context import ProjectionContext
from kanban.projection.fetchers import fetch_placements
from kanban.projection.matchers import is_foreign_phone, matches_stage_pattern
from kanban.projection.transformers import lead_to_item, to_tag

logger = logging.getLogger('projection.standard')

ORDERED_STATUS = 'comanda'
COURIER_TAGS = ('curier trimis', 'office direct')


def project_standard(ctx: ProjectionContext, placements: List[Dict[str, Any]]) -> List[KanbanItem]:
    lead_placements = {p['entity_id']: p for p in placements if p['entity_type'] == 'lead'}
    if not lead_placements:
        return []

    bundle = load_bundle(lead_ids=list(lead_placements))

    if ctx.pipeline.is_sales:
        items = _project_sales(ctx, lead_placements, bundle)
    else:
        items = []
        for lead_id, placement in lead_placements.items():
            lead = bundle.leads.get(lead_id)
            if lead is None:
                continue
            items.append(_lead_item(ctx, bundle, lead, placement, ctx.stage_by_id(placement['stage_id'])))
        items.sort(key=_newest_first)

    return items


def _newest_first(item: KanbanItem):
    return -(item.created_at.timestamp() if item.created_at else 0)


def _lead_item(ctx, bundle: Bundle, lead, placement, stage) -> KanbanItem:
    tags = [to_tag(t) for t in bundle.tags_of_lead(lead['id'])]
    return lead_to_item(lead, ctx.pipeline.id, stage, placement, tags, total=bundle.lead_total(lead['id']))


# ── Sales ────────────────────────────────────────────────────────────────────

def _project_sales(ctx: ProjectionContext, lead_placements, bundle: Bundle) -> List[KanbanItem]:
    active_leads = _leads_with_active_orders(ctx, bundle)

    items: List[KanbanItem] = []
    arrived_today: List[KanbanItem] = []
    for lead_id, placement in lead_placements.items():
        lead = bundle.leads.get(lead_id)
        if lead is None:
            continue
        stage, virtual = resolve_sales_stage(ctx, lead, placement, bundle, lead_id in active_leads)
        item = _lead_item(ctx, bundle, lead, placement, stage)
        if virtual:
            item.is_virtual = True
            item.annotations['arrived_today'] = True
            arrived_today.append(item)
        else:
            if stage is not None and stage['id'] != placement['stage_id']:
                item.annotations['override'] = True
            items.append(item)

    items.sort(key=_newest_first)
    arrived_today.sort(key=_newest_first)
    return items + arrived_today


def courier_trigger(lead, bundle: Bundle) -> Tuple[bool, Optional[Any]]:
    """
    (is courier/office lead, trigger time).

    Trigger time is the latest courier schedule / office-direct time over the
    lead's flagged orders, else the lead's own timestamps.
    """
    flagged = [o for o in bundle.orders_of_lead(lead['id']) if o.get('courier_sent') or o.get('office_direct')]
    times = [
        o.get('courier_scheduled_at') or o.get('office_direct_at') or o.get('created_at')
        for o in flagged
    ]
    times = [t for t in times if t is not None]
    if times:
        return True, max(times)

    tag_names = {(t.get('name') or '').strip().lower() for t in bundle.tags_of_lead(lead['id'])}
    if flagged or tag_names & set(COURIER_TAGS):
        return True, lead.get('courier_sent_at') or lead.get('office_direct_at') or lead.get('created_at')
    return False, None


def resolve_sales_stage(ctx: ProjectionContext, lead, placement, bundle: Bundle,
                        has_active_orders: bool) -> Tuple[Optional[Dict[str, Any]], bool]:
    """
    (stage to display, shown as a virtual Arrived-Today card).

    Priority, first hit with an existing target stage wins:
      no-deal > courier/office window > callback > no-answer > ordered >
      active orders > foreign number > persisted placement
    """
    persisted = ctx.stage_by_id(placement['stage_id'])

    def target(key):
        return ctx.find_stage(key)

    if lead.get('no_deal') and target('NO_DEAL'):
        return target('NO_DEAL'), False

    is_courier, triggered_at = courier_trigger(lead, bundle)
    if is_courier:
        if persisted and matches_stage_pattern(persisted['name'], 'ARCHIVED'):
            return persisted, False
        window = timedelta(hours=ARRIVED_TODAY_WINDOW_HOURS)
        if triggered_at is not None and ctx.now - triggered_at < window:
            if persisted and matches_stage_pattern(persisted['name'], 'HAS_ORDER'):
                return persisted, False
            if target('ARRIVED_TODAY'):
                return target('ARRIVED_TODAY'), True
        elif target('HAS_ORDER'):
            return target('HAS_ORDER'), False

    callback = lead.get('callback_date')
    if callback is not None and callback > ctx.now and target('CALLBACK'):
        return target('CALLBACK'), False

    no_answer = lead.get('no_answer_callback_at')
    if no_answer is not None and no_answer > ctx.now and target('NO_ANSWER'):
        return target('NO_ANSWER'), False

    if any(o.get('status') == ORDERED_STATUS for o in bundle.orders_of_lead(lead['id'])) and target('HAS_ORDER'):
        return target('HAS_ORDER'), False

    if has_active_orders and target('ACTIVE_ORDERS'):
        return target('ACTIVE_ORDERS'), False

    foreign_stage = target('FOREIGN_LEADS')
    if foreign_stage and is_foreign_phone(lead.get('phone_number')):
        first_id = ctx.first_stage['id'] if ctx.first_stage else None
        if persisted is None or persisted['id'] in (first_id, foreign_stage['id']):
            return foreign_stage, False

    return persisted, False


def _leads_with_active_orders(ctx: ProjectionContext, bundle: Bundle) -> set:
    """
    Leads with an order (or one of its trays) open on the front desk or a department board.

    Orders the front desk has archived do not count, nor do their trays.
    """
    front_desk_ids = [p.id for p in ctx.front_desk_pipelines]
    pipeline_ids = front_desk_ids + [p.id for p in ctx.department_pipelines]
    if not pipeline_ids or not bundle.orders:
        return set()

    placements = fetch_placements(
        pipeline_ids, entity_ids=list(bundle.orders) + list(bundle.trays),
    ).data_or_raise()

    archived_orders = set()
    for p in placements:
        if p['entity_type'] == 'service_order' and p['pipeline_id'] in front_desk_ids:
            stage = ctx.any_stage_by_id(p['stage_id'])
            if stage and matches_stage_pattern(stage['name'], 'ARCHIVED'):
                archived_orders.add(p['entity_id'])

    active = set()
    for p in placements:
        if p['entity_type'] == 'service_order':
            order = bundle.orders.get(p['entity_id'])
        elif p['entity_type'] == 'tray':
            order = bundle.order_of_tray(p['entity_id'])
        else:
            continue
        if order is None or order['id'] in archived_orders:
            continue
        active.add(order['lead_id'])
    return active
