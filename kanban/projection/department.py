"""
Department strategy — one card per tray routed to this department.

Trays whose line items name this department are given a placement in the
department's "new" stage the first time the board is opened. What a
technician sees is recomputed from storage on every call: privileged users
see every tray, everyone else sees unassigned, own and split trays.
"""
import logging
from typing import Any, Dict, List, Optional

from kanban.config import SPLIT_TO_TECHNICIAN_EVENT
from kanban.projection.base import KanbanItem, KanbanTag
from kanban.projection.bundles import Bundle, load_bundle
from kanban.projection.context import ProjectionContext
from kanban.projection.fetchers import fetch_concurrently, fetch_department_tray_ids, fetch_events
from kanban.projection.matchers import matches_stage_pattern
from kanban.projection.status import QC_EVENT_TYPES, is_validated_since, resolve_quality_status
from kanban.projection.transformers import is_split_tray, resolve_tags, tray_to_item
from kanban.projection.writes import create_placements

logger = logging.getLogger('projection.department')

DEFAULT_SENDER_NAME = 'Coleg'


def project_department(ctx: ProjectionContext, placements: List[Dict[str, Any]]) -> List[KanbanItem]:
    if not ctx.acting_user_id:
        logger.info("Department %s: no acting user, nothing to show", ctx.pipeline.name)
        return []

    placed = {p['entity_id']: p for p in placements if p['entity_type'] == 'tray'}
    unplaced = _materialize_routed_trays(ctx, placed)
    if not placed and not unplaced:
        return []

    tray_ids = list(placed) + unplaced
    bundle = load_bundle(tray_ids=tray_ids)
    events = fetch_concurrently({
        'qc': lambda: fetch_events('tray', tray_ids, QC_EVENT_TYPES),
        'splits': lambda: fetch_events('tray', tray_ids, [SPLIT_TO_TECHNICIAN_EVENT]),
    })
    qc_status = resolve_quality_status(events['qc'].data_or_raise())
    received = split_senders(events['splits'].data_or_raise(), ctx.acting_user_id)
    new_stage = ctx.find_stage('NEW') or ctx.first_stage

    # Routed trays whose placement could not be written show in "new" as virtual cards
    entries = [(tray_id, placement, ctx.stage_by_id(placement['stage_id'])) for tray_id, placement in placed.items()]
    entries += [(tray_id, None, new_stage) for tray_id in unplaced]

    items = []
    for tray_id, placement, stage in entries:
        tray = bundle.trays.get(tray_id)
        if tray is None:
            continue
        has_items = bool(bundle.tray_items.get(tray_id))

        if tray_id in received:
            # Shown to the receiver as new work; the real placement is untouched
            item = _tray_item(ctx, bundle, tray, new_stage, placement)
            item.is_virtual = True
            item.tags.append(KanbanTag(
                id=f'de_la_{tray_id}_{ctx.acting_user_id}',
                name=f'De la {received[tray_id]}',
                color='blue',
            ))
            item.annotations['split_from'] = received[tray_id]
            items.append(item)
            continue

        if not ctx.is_privileged and not is_visible_to(tray, ctx.acting_user_id, stage, has_items):
            continue
        if placement and stage and matches_stage_pattern(stage['name'], 'FINALIZED') and is_validated_since(
            qc_status.get(tray_id), placement.get('updated_at'),
        ):
            continue

        item = _tray_item(ctx, bundle, tray, stage, placement)
        item.is_virtual = placement is None
        items.append(item)

    items.sort(key=lambda i: -(i.stage_moved_at.timestamp() if i.stage_moved_at else 0))
    return items


def is_visible_to(tray, user_id: str, stage: Optional[Dict[str, Any]], has_items: bool) -> bool:
    """Non-privileged visibility: unassigned, assigned to the user, or split; never empty trays."""
    if not has_items:
        return False
    if stage and matches_stage_pattern(stage['name'], 'NEW') and tray.get('technician_id') == user_id:
        return False
    assigned = user_id in (tray.get('technician_id'), tray.get('technician2_id'), tray.get('technician3_id'))
    return tray.get('technician_id') is None or assigned or is_split_tray(tray)


def split_senders(events, user_id: str) -> Dict[str, str]:
    """
    {tray_id: sender name} for trays whose latest split went to user_id.

    Only the latest split event per (tray, target technician) counts.
    """
    latest: Dict[tuple, Dict[str, Any]] = {}
    for event in sorted(events, key=lambda e: e['created_at']):
        payload = event.get('payload') or {}
        target = payload.get('target_technician_id')
        if target:
            latest[(event['entity_id'], target)] = event

    senders = {}
    for (tray_id, target), event in latest.items():
        if target != user_id:
            continue
        payload = event.get('payload') or {}
        sender = (payload.get('user') or {}).get('name') or event.get('actor_name') or DEFAULT_SENDER_NAME
        senders[tray_id] = sender
    return senders


def _materialize_routed_trays(ctx: ProjectionContext, placed: Dict[str, Dict[str, Any]]) -> List[str]:
    """
    Give trays routed here (by line item) a placement in the "new" stage.

    New rows are added to `placed`; returns the routed tray ids still without
    a placement on this board.
    """
    routed = fetch_department_tray_ids(ctx.pipeline.id).data_or_raise()
    missing = [tray_id for tray_id in routed if tray_id not in placed]
    target = ctx.find_stage('NEW') or ctx.first_stage
    if not missing or target is None:
        return []

    written = create_placements('tray', ctx.pipeline.id, {t: target['id'] for t in missing}, now=ctx.now)
    if not written.ok:
        logger.warning("Department %s: %d tray placement(s) not created", ctx.pipeline.name, len(written.errors))
    for row in written.created:
        placed[row['entity_id']] = row
    return [tray_id for tray_id in missing if tray_id not in placed]


def _tray_item(ctx: ProjectionContext, bundle: Bundle, tray, stage, placement) -> KanbanItem:
    order = bundle.orders.get(tray['service_order_id']) or {}
    lead = bundle.leads.get(order.get('lead_id')) if order else None
    tags = resolve_tags(bundle.tags_of_lead(order.get('lead_id')), bool(order.get('urgent')), tray['id'])
    item = tray_to_item(
        tray, order, lead, ctx.pipeline.id, stage, placement, tags, ctx.technician_names,
        total=bundle.tray_total(tray['id']), minutes=bundle.tray_minutes(tray['id']),
    )
    item.pipeline_name = ctx.pipeline.name
    if stage and placement:
        moved = placement.get('updated_at')
        if matches_stage_pattern(stage['name'], 'IN_PROGRESS'):
            item.annotations['in_progress_since'] = moved
        elif matches_stage_pattern(stage['name'], 'WAITING'):
            item.annotations['waiting_since'] = moved
    return item
