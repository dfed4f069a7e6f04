"""
Projection engine — public entry points.

    project(pipeline_id, ...)                       -> ProjectionResult(List[KanbanItem])
    project_by_type(entity_type, pipeline_id, ...)  -> ProjectionResult(List[KanbanItem])
    project_single(entity_type, entity_id, pid)     -> ProjectionResult(KanbanItem | None)

One call = one point-in-time snapshot. Context inputs and the pipeline's
placements are fetched concurrently, the context is built, one strategy
runs. Any failure is logged and returned as ProjectionResult.error with
empty data; callers never see an exception.
"""
import logging
import time
from datetime import datetime, timezone
from typing import Optional

from kanban.config import ENTITY_TYPES
from kanban.projection.base import ProjectionResult
from kanban.projection.bundles import load_bundle
from kanban.projection.context import build_context
from kanban.projection.dispatcher import select_strategy
from kanban.projection.fetchers import (
    fetch_concurrently,
    fetch_members,
    fetch_pipelines,
    fetch_placement,
    fetch_placements,
    fetch_stages,
)
from kanban.projection.transformers import (
    lead_to_item,
    resolve_tags,
    service_order_to_item,
    to_tag,
    tray_to_item,
)

logger = logging.getLogger('projection.engine')


def _context_inputs(extra):
    calls = {
        'pipelines': fetch_pipelines,
        'stages': fetch_stages,
        'members': fetch_members,
    }
    calls.update(extra)
    results = fetch_concurrently(calls)
    return {name: result.data_or_raise() for name, result in results.items()}


def project(pipeline_id: Optional[str], acting_user_id: Optional[str] = None,
            is_privileged: bool = False, now: Optional[datetime] = None) -> ProjectionResult:
    """Every card on one pipeline's board, in display order."""
    if not pipeline_id:
        return ProjectionResult([])

    started = time.time()
    try:
        data = _context_inputs({'placements': lambda: fetch_placements([pipeline_id])})
        ctx = build_context(
            pipeline_id, data['pipelines'], data['stages'], data['members'],
            now=now or datetime.now(timezone.utc),
            acting_user_id=acting_user_id, is_privileged=is_privileged,
        )
        if ctx is None:
            logger.info("Pipeline %s not found", pipeline_id)
            return ProjectionResult([])

        strategy = select_strategy(ctx.pipeline)
        items = strategy.project(ctx, data['placements'])
        logger.info("Projected %s (%s strategy): %d item(s) in %.2fs",
                    ctx.pipeline.name, strategy.name, len(items), time.time() - started)
        return ProjectionResult(items)

    except Exception as e:
        logger.error("Projection failed for pipeline %s: %s", pipeline_id, e, exc_info=True)
        return ProjectionResult([], str(e))


def project_by_type(entity_type: str, pipeline_id: Optional[str], acting_user_id: Optional[str] = None,
                    is_privileged: bool = False, now: Optional[datetime] = None) -> ProjectionResult:
    """project(), keeping only cards of one entity type."""
    result = project(pipeline_id, acting_user_id=acting_user_id, is_privileged=is_privileged, now=now)
    return ProjectionResult([i for i in result.data if i.entity_type == entity_type], result.error)


def project_single(entity_type: str, entity_id: str, pipeline_id: str) -> ProjectionResult:
    """
    One card at its persisted placement (no overrides).

    No placement for the entity in this pipeline → data is None, no error.
    """
    if entity_type not in ENTITY_TYPES:
        return ProjectionResult(None, f"Unknown entity type '{entity_type}'")
    if not entity_id or not pipeline_id:
        return ProjectionResult(None)

    try:
        data = _context_inputs({
            'placement': lambda: fetch_placement(entity_type, entity_id, pipeline_id),
        })
        placement = data['placement']
        if placement is None:
            return ProjectionResult(None)

        ctx = build_context(pipeline_id, data['pipelines'], data['stages'], data['members'],
                            now=datetime.now(timezone.utc))
        if ctx is None:
            return ProjectionResult(None)
        stage = ctx.stage_by_id(placement['stage_id'])

        if entity_type == 'lead':
            bundle = load_bundle(lead_ids=[entity_id])
            lead = bundle.leads.get(entity_id)
            if lead is None:
                return ProjectionResult(None)
            tags = [to_tag(t) for t in bundle.tags_of_lead(entity_id)]
            item = lead_to_item(lead, pipeline_id, stage, placement, tags, total=bundle.lead_total(entity_id))

        elif entity_type == 'service_order':
            bundle = load_bundle(order_ids=[entity_id])
            order = bundle.orders.get(entity_id)
            if order is None:
                return ProjectionResult(None)
            item = service_order_to_item(
                order, bundle.lead_of_order(entity_id), pipeline_id, stage, placement,
                bundle.order_tags(entity_id), total=bundle.order_total(entity_id),
                tray_numbers=[t.get('number') for t in bundle.trays_of_order(entity_id)],
            )

        else:
            bundle = load_bundle(tray_ids=[entity_id])
            tray = bundle.trays.get(entity_id)
            if tray is None:
                return ProjectionResult(None)
            order = bundle.orders.get(tray['service_order_id']) or {}
            item = tray_to_item(
                tray, order, bundle.leads.get(order.get('lead_id')), pipeline_id, stage, placement,
                resolve_tags(bundle.tags_of_lead(order.get('lead_id')), bool(order.get('urgent')), entity_id),
                ctx.technician_names,
                total=bundle.tray_total(entity_id), minutes=bundle.tray_minutes(entity_id),
            )
            item.pipeline_name = ctx.pipeline.name

        return ProjectionResult(item)

    except Exception as e:
        logger.error("Single projection failed for %s %s in %s: %s",
                     entity_type, entity_id, pipeline_id, e, exc_info=True)
        return ProjectionResult(None, str(e))
