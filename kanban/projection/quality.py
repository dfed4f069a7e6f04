"""
Quality strategy — trays waiting for quality review.

Nothing is placed on the quality board. Every tray sitting in a "finalized"
stage of any department shows up here as a read-only virtual card in the
stage that stands for its department, until a quality validation newer than
that finalization is logged.
"""
import logging
from typing import Any, Dict, List, Optional

from kanban.config import SPLIT_TRAY_STATUS
from kanban.projection.base import KanbanItem, PipelineInfo
from kanban.projection.bundles import load_bundle
from kanban.projection.context import ProjectionContext
from kanban.projection.fetchers import fetch_events, fetch_placements
from kanban.projection.matchers import matches_department_stage, matches_stage_pattern
from kanban.projection.status import QC_EVENT_TYPES, VALIDATED, is_validated_since, resolve_quality_status
from kanban.projection.transformers import resolve_tags, tray_to_item

logger = logging.getLogger('projection.quality')


def quality_stage_for(ctx: ProjectionContext, department: Optional[PipelineInfo]) -> Optional[Dict[str, Any]]:
    """Stage standing for a department; else the validation stage; else the first stage."""
    if department is not None:
        for stage in ctx.stages:
            if matches_department_stage(department.name, stage['name']):
                return stage
    return ctx.find_stage('VALIDATION') or ctx.first_stage


def latest_finalized_placements(placements) -> Dict[str, Dict[str, Any]]:
    """{tray_id: most recently moved finalized placement} across departments."""
    latest: Dict[str, Dict[str, Any]] = {}
    for p in placements:
        moved = p.get('updated_at') or p.get('created_at')
        current = latest.get(p['entity_id'])
        if current is None or (moved and moved > (current.get('updated_at') or current.get('created_at'))):
            latest[p['entity_id']] = p
    return latest


def project_quality(ctx: ProjectionContext, placements: List[Dict[str, Any]]) -> List[KanbanItem]:
    departments = ctx.department_pipelines
    finalized_stage_ids = [
        s['id'] for d in departments for s in ctx.stages_of(d.id)
        if matches_stage_pattern(s['name'], 'FINALIZED')
    ]
    if not finalized_stage_ids:
        return []

    source = latest_finalized_placements(
        fetch_placements([d.id for d in departments], 'tray', stage_ids=finalized_stage_ids).data_or_raise()
    )
    if not source:
        return []

    qc_status = resolve_quality_status(fetch_events('tray', list(source), QC_EVENT_TYPES).data_or_raise())
    bundle = load_bundle(tray_ids=list(source))

    items = []
    for tray_id, placement in source.items():
        tray = bundle.trays.get(tray_id)
        if tray is None or tray.get('status') == SPLIT_TRAY_STATUS:
            continue
        finalized_at = placement.get('updated_at') or placement.get('created_at')
        qc = qc_status.get(tray_id)
        if is_validated_since(qc, finalized_at):
            continue
        if qc and qc['status'] == VALIDATED:
            # Validated before it was finalized again: needs a fresh review
            qc = None

        department = ctx.pipeline_by_id(placement['pipeline_id'])
        stage = quality_stage_for(ctx, department)
        if stage is None:
            continue

        order = bundle.orders.get(tray['service_order_id']) or {}
        lead = bundle.leads.get(order.get('lead_id')) if order else None
        tags = resolve_tags(bundle.tags_of_lead(order.get('lead_id')), bool(order.get('urgent')), tray_id)
        item = tray_to_item(
            tray, order, lead, ctx.pipeline.id, stage, None, tags, ctx.technician_names,
            total=bundle.tray_total(tray_id), minutes=bundle.tray_minutes(tray_id),
        )
        item.pipeline_name = ctx.pipeline.name
        item.read_only = True
        item.is_virtual = True
        item.stage_moved_at = finalized_at
        item.annotations.update({
            'qc_source_pipeline_id': placement['pipeline_id'],
            'qc_source_pipeline_name': department.name if department else None,
            'qc_status': qc['status'] if qc else None,
            'qc_validated': bool(qc and qc['status'] == VALIDATED),
            'qc_not_validated': bool(qc and qc['status'] != VALIDATED),
        })
        items.append(item)

    items.sort(key=lambda i: -(i.stage_moved_at.timestamp() if i.stage_moved_at else 0))
    return items
