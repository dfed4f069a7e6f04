"""
Front-desk strategy — one card per service order.

An order's stage here is derived, in strict priority, from its trays' state
on the department boards, quality outcomes, the milestone events and the
order's courier/office flags. When the derived stage differs from the
persisted placement the placement is corrected in one batch; the derived
stage is shown either way.
"""
import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional, Tuple

from kanban.config import ARCHIVED_TRAY_MARKER, DEPARTMENT_PIPELINES
from kanban.projection.base import KanbanItem
from kanban.projection.bundles import Bundle, load_bundle
from kanban.projection.context import ProjectionContext
from kanban.projection.fetchers import (
    fetch_concurrently,
    fetch_direct_service_orders,
    fetch_events,
    fetch_lead_ids_with_tags,
    fetch_placements,
    fetch_trays,
)
from kanban.projection.matchers import matches_stage_pattern, tag_slug
from kanban.projection.status import (
    FRONT_DESK_EVENT_TYPES,
    QC_EVENT_TYPES,
    VALIDATED,
    earliest_by_kind,
    is_validated_since,
    resolve_quality_status,
)
from kanban.projection.transformers import service_order_to_item, technician_names
from kanban.projection.writes import apply_stage_corrections, clear_package_unclaimed

logger = logging.getLogger('projection.front_desk')


# ── Tray state on the department boards ──────────────────────────────────────

WAITING = 'waiting'
IN_PROGRESS = 'in_progress'
FINALIZED = 'finalized'
NEW = 'new'


def classify_department_stage(stage_name: Optional[str]) -> Optional[str]:
    """Work-stage type of a department stage name, or None for any other stage."""
    if matches_stage_pattern(stage_name, 'WAITING_PARTS') or matches_stage_pattern(stage_name, 'WAITING'):
        return WAITING
    if matches_stage_pattern(stage_name, 'IN_PROGRESS'):
        return IN_PROGRESS
    if matches_stage_pattern(stage_name, 'FINALIZED'):
        return FINALIZED
    if matches_stage_pattern(stage_name, 'NEW'):
        return NEW
    return None


def _aggregate_kind(kinds: List[str]) -> str:
    # Finalized only once every department is done with the tray
    if WAITING in kinds:
        return WAITING
    if IN_PROGRESS in kinds:
        return IN_PROGRESS
    if all(k == FINALIZED for k in kinds):
        return FINALIZED
    return NEW


def tray_stage_types(ctx: ProjectionContext, tray_placements) -> Dict[str, Dict[str, Any]]:
    """
    {tray_id: {'type': ..., 'finalized_at': datetime | None}} over department placements.

    A tray on several department boards aggregates as waiting > in progress >
    finalized (every placement finalized) > new.
    """
    kinds: Dict[str, List[str]] = {}
    finalized_at: Dict[str, Optional[datetime]] = {}
    for p in tray_placements:
        stage = ctx.any_stage_by_id(p['stage_id'])
        kind = classify_department_stage(stage['name']) if stage else None
        if kind is None:
            continue
        tray_id = p['entity_id']
        kinds.setdefault(tray_id, []).append(kind)
        finalized_at.setdefault(tray_id, None)
        if kind == FINALIZED:
            moved = p.get('updated_at') or p.get('created_at')
            if finalized_at[tray_id] is None or (moved and moved > finalized_at[tray_id]):
                finalized_at[tray_id] = moved
    return {
        tray_id: {'type': _aggregate_kind(tray_kinds), 'finalized_at': finalized_at[tray_id]}
        for tray_id, tray_kinds in kinds.items()
    }


@dataclass
class OrderFacts:
    """Everything the stage rules look at for one order."""
    archived: bool = False
    has_waiting: bool = False
    has_in_progress: bool = False
    all_finalized: bool = False
    all_validated: bool = False
    in_departments: bool = False
    no_answer: bool = False
    milestones: Dict[str, datetime] = field(default_factory=dict)
    validated_at: Optional[datetime] = None

    @property
    def fully_validated(self) -> bool:
        return self.all_finalized and self.all_validated


def is_archived_tray(tray) -> bool:
    return ARCHIVED_TRAY_MARKER in (tray.get('number') or '')


def order_facts(order, trays, tray_types, qc_status, lead_tags, milestones) -> OrderFacts:
    typed = [t for t in trays if t['id'] in tray_types]
    kinds = [tray_types[t['id']]['type'] for t in typed]
    finalized = [t for t in typed if tray_types[t['id']]['type'] == FINALIZED]

    all_validated = bool(finalized) and all(
        is_validated_since(qc_status.get(t['id']), tray_types[t['id']]['finalized_at']) for t in finalized
    )
    validated_times = [
        qc_status[t['id']]['at'] for t in finalized
        if t['id'] in qc_status and qc_status[t['id']]['status'] == VALIDATED
    ]

    return OrderFacts(
        archived=any(is_archived_tray(t) for t in trays),
        has_waiting=WAITING in kinds,
        has_in_progress=IN_PROGRESS in kinds,
        all_finalized=bool(typed) and all(k == FINALIZED for k in kinds),
        all_validated=all_validated,
        in_departments=bool(typed),
        no_answer=bool(order.get('no_answer_callback_at')) or any(
            tag_slug(t.get('name')) == 'nuraspunde' for t in lead_tags
        ),
        milestones=milestones or {},
        validated_at=max(validated_times) if validated_times else None,
    )


# ── Stage resolution ─────────────────────────────────────────────────────────

def resolve_front_desk_stage(ctx: ProjectionContext, order, facts: OrderFacts,
                             current: Optional[Dict[str, Any]]) -> Tuple[Optional[Dict[str, Any]], bool]:
    """
    (stage to show, package counts as arrived).

    Rules in strict priority; a rule whose target stage does not exist on
    this board is skipped. No rule matching keeps the current stage.
    """
    m = facts.milestones

    def stage(key):
        return ctx.find_stage(key)

    if facts.archived and stage('ARCHIVED'):
        return stage('ARCHIVED'), False
    if current is not None and matches_stage_pattern(current['name'], 'ARCHIVED'):
        return current, False
    if order.get('package_arrived') and stage('PACKAGE_ARRIVED'):
        return stage('PACKAGE_ARRIVED'), True
    if 'ready_to_ship' in m and stage('READY_TO_SHIP'):
        return stage('READY_TO_SHIP'), False
    if 'self_pickup' in m and stage('SELF_PICKUP'):
        return stage('SELF_PICKUP'), False
    if facts.no_answer and stage('NO_ANSWER'):
        return stage('NO_ANSWER'), False
    if ('to_invoice' in m or facts.fully_validated) and stage('TO_INVOICE'):
        return stage('TO_INVOICE'), False
    if facts.has_waiting and stage('WAITING'):
        return stage('WAITING'), False
    if (facts.has_in_progress or (facts.all_finalized and not facts.all_validated)) and stage('IN_PROGRESS'):
        return stage('IN_PROGRESS'), False
    if 'package_arrived' in m and stage('PACKAGE_ARRIVED'):
        return stage('PACKAGE_ARRIVED'), True
    if ('package_unclaimed' in m or order.get('package_unclaimed')) and stage('PACKAGE_UNCLAIMED'):
        return stage('PACKAGE_UNCLAIMED'), False
    if facts.in_departments and not facts.fully_validated and stage('PACKAGE_ARRIVED'):
        return stage('PACKAGE_ARRIVED'), True
    if order.get('courier_sent') and not order.get('package_unclaimed') and stage('COURIER_SENT'):
        return stage('COURIER_SENT'), False
    if order.get('office_direct') and stage('OFFICE_DIRECT'):
        return stage('OFFICE_DIRECT'), False
    return current, False


def direct_virtual_stage(ctx: ProjectionContext, order) -> Optional[Dict[str, Any]]:
    """Where an unplaced courier/office/unclaimed order first appears."""
    for flag, key in (('package_unclaimed', 'PACKAGE_UNCLAIMED'),
                      ('office_direct', 'OFFICE_DIRECT'),
                      ('courier_sent', 'COURIER_SENT')):
        if order.get(flag) and ctx.find_stage(key):
            return ctx.find_stage(key)
    return ctx.first_stage


def department_virtual_stage(ctx: ProjectionContext, facts: OrderFacts) -> Optional[Dict[str, Any]]:
    """Where an unplaced order with trays in the departments appears (read-only)."""
    if facts.has_waiting:
        key = 'WAITING'
    elif facts.has_in_progress:
        key = 'IN_PROGRESS'
    elif facts.fully_validated:
        key = 'TO_INVOICE'
    elif facts.all_finalized:
        key = 'IN_PROGRESS'
    else:
        key = 'PACKAGE_ARRIVED'
    return ctx.find_stage(key) or ctx.find_stage('PACKAGE_ARRIVED') or ctx.first_stage


# ── Strategy ─────────────────────────────────────────────────────────────────

@dataclass
class _Candidate:
    order: Dict[str, Any]
    placement: Optional[Dict[str, Any]]
    stage: Optional[Dict[str, Any]]
    read_only: bool = False

    @property
    def is_virtual(self) -> bool:
        return self.placement is None


def project_front_desk(ctx: ProjectionContext, placements: List[Dict[str, Any]]) -> List[KanbanItem]:
    placed = {p['entity_id']: p for p in placements if p['entity_type'] == 'service_order'}
    department_ids = [p.id for p in ctx.department_pipelines]
    work_stage_ids = [
        s['id'] for pid in department_ids for s in ctx.stages_of(pid)
        if classify_department_stage(s['name'])
    ]

    seeds = fetch_concurrently({
        'direct': fetch_direct_service_orders,
        'work_trays': lambda: fetch_placements(department_ids, 'tray', stage_ids=work_stage_ids),
        'tagged_leads': lambda: fetch_lead_ids_with_tags(DEPARTMENT_PIPELINES),
    })
    direct = {o['id']: o for o in seeds['direct'].data_or_raise()}
    work_tray_ids = [p['entity_id'] for p in seeds['work_trays'].data_or_raise()]
    tagged_lead_ids = seeds['tagged_leads'].data_or_raise()

    work_trays = fetch_trays(ids=work_tray_ids).data_or_raise()
    bundle = load_bundle(
        lead_ids=tagged_lead_ids,
        order_ids=list(placed) + list(direct) + [t['service_order_id'] for t in work_trays],
    )

    extras = fetch_concurrently({
        'tray_placements': lambda: fetch_placements(department_ids, 'tray', entity_ids=list(bundle.trays)),
        'qc': lambda: fetch_events('tray', list(bundle.trays), QC_EVENT_TYPES),
        'milestones': lambda: fetch_events('service_order', list(bundle.orders), FRONT_DESK_EVENT_TYPES),
    })
    tray_types = tray_stage_types(ctx, extras['tray_placements'].data_or_raise())
    qc_status = resolve_quality_status(extras['qc'].data_or_raise())
    milestones = earliest_by_kind(extras['milestones'].data_or_raise())

    facts = {
        order_id: order_facts(
            order, bundle.trays_of_order(order_id), tray_types, qc_status,
            bundle.tags_of_lead(order['lead_id']), milestones.get(order_id),
        )
        for order_id, order in bundle.orders.items()
    }

    candidates = _collect_candidates(ctx, placed, direct, bundle, facts)

    corrections: Dict[str, str] = {}
    arrived: List[str] = []
    resolved: Dict[str, Optional[Dict[str, Any]]] = {}
    for order_id, cand in candidates.items():
        stage, mark_arrived = resolve_front_desk_stage(ctx, cand.order, facts[order_id], cand.stage)
        resolved[order_id] = stage
        if mark_arrived and cand.order.get('package_unclaimed'):
            arrived.append(order_id)
        if stage is None or cand.read_only:
            continue
        if cand.placement is None or cand.placement['stage_id'] != stage['id']:
            corrections[order_id] = stage['id']

    written = apply_stage_corrections('service_order', ctx.pipeline.id, corrections, now=ctx.now)
    if not written.ok:
        logger.warning("Front desk %s: %d stage correction(s) not persisted", ctx.pipeline.name, len(written.errors))
    created = {row['entity_id']: row for row in written.created}

    if arrived:
        cleared = clear_package_unclaimed(arrived)
        if not cleared.ok:
            logger.warning("Front desk %s: could not clear unclaimed flag on %d order(s)",
                           ctx.pipeline.name, len(cleared.errors))

    items = []
    for order_id, cand in candidates.items():
        stage = resolved[order_id]
        if stage is None:
            continue
        placement = created.get(order_id) or cand.placement
        item = service_order_to_item(
            cand.order, bundle.lead_of_order(order_id), ctx.pipeline.id, stage, placement,
            bundle.order_tags(order_id), total=bundle.order_total(order_id),
            tray_numbers=[t.get('number') for t in bundle.trays_of_order(order_id)],
        )
        item.read_only = cand.read_only
        item.is_virtual = placement is None
        if order_id in corrections and order_id in written.succeeded and not created.get(order_id):
            item.stage_moved_at = ctx.now
        _annotate(ctx, item, bundle, facts[order_id], tray_types, qc_status)
        items.append(item)

    items.sort(key=lambda i: -(i.created_at.timestamp() if i.created_at else 0))
    return items


def _collect_candidates(ctx, placed, direct, bundle: Bundle, facts) -> Dict[str, _Candidate]:
    """
    Orders shown on the front desk: placed here, direct (courier / office /
    unclaimed), with trays at work in a department, or whose lead carries a
    department tag. Unplaced archived orders are never materialized.
    """
    department_tags = {tag_slug(name) for name in DEPARTMENT_PIPELINES}
    candidates: Dict[str, _Candidate] = {}

    for order_id, order in bundle.orders.items():
        placement = placed.get(order_id)
        state = facts[order_id]
        if placement is not None:
            # A stage from another board falls back to the first column and gets corrected
            current = ctx.stage_by_id(placement['stage_id']) or ctx.first_stage
            candidates[order_id] = _Candidate(order, placement, current)
            continue
        if state.archived:
            continue
        if order_id in direct:
            candidates[order_id] = _Candidate(order, None, direct_virtual_stage(ctx, order))
        elif state.in_departments:
            candidates[order_id] = _Candidate(order, None, department_virtual_stage(ctx, state), read_only=True)
        elif any(tag_slug(t.get('name')) in department_tags for t in bundle.tags_of_lead(order['lead_id'])):
            # A department tag shows the order; it never picks the stage
            candidates[order_id] = _Candidate(order, None, ctx.first_stage, read_only=True)

    return candidates


def _annotate(ctx, item: KanbanItem, bundle: Bundle, facts: OrderFacts, tray_types, qc_status):
    trays = bundle.trays_of_order(item.id)

    for tray in trays:
        names = [n for n in technician_names(tray, ctx.technician_names) if n]
        if names:
            item.technician = ', '.join(names)
            item.technician_id = tray.get('technician_id')
            break

    item.annotations['trays'] = [
        {
            'id': t['id'],
            'number': t.get('number'),
            'status': t.get('status'),
            'stage_type': tray_types.get(t['id'], {}).get('type'),
            'qc_validated': is_validated_since(
                qc_status.get(t['id']), tray_types.get(t['id'], {}).get('finalized_at'),
            ),
        }
        for t in trays
    ]

    if ctx.stage_is(item.stage_id, 'IN_PROGRESS') and facts.all_finalized and not facts.all_validated:
        item.annotations['qc_in_validation'] = True
    if ctx.stage_is(item.stage_id, 'TO_INVOICE') and facts.validated_at is not None:
        item.annotations['qc_validated_at'] = facts.validated_at

    arrived_at = facts.milestones.get('package_arrived')
    invoice_at = facts.milestones.get('to_invoice')
    if arrived_at is not None:
        item.annotations['package_arrived_at'] = arrived_at
        end = invoice_at if invoice_at is not None and invoice_at >= arrived_at else ctx.now
        item.annotations['time_at_us_minutes'] = max(0, int((end - arrived_at).total_seconds() // 60))
        item.annotations['time_at_us_done'] = invoice_at is not None
    if invoice_at is not None:
        item.annotations['invoice_at'] = invoice_at
