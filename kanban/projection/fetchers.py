"""
Snapshot fetchers — batched, read-only queries for one projection call.

Each fetch opens its own session (so fetches can run on worker threads),
returns plain dicts with timezone-aware UTC datetimes, and reports failure
through FetchResult.error instead of raising. Large id sets are read in
chunks of IN_FILTER_CHUNK_SIZE to stay under driver parameter limits.
"""
import concurrent.futures
import logging
from datetime import datetime, timezone
from typing import Any, Callable, Dict, Iterable, List, Optional

from sqlalchemy import or_

from kanban.config import FETCH_MAX_WORKERS, IN_FILTER_CHUNK_SIZE
from kanban.database import get_session
from kanban.models.event import ItemEvent
from kanban.models.lead import Lead, LeadTag, Tag
from kanban.models.member import Member
from kanban.models.pipeline import Pipeline, PipelineItem, Stage
from kanban.models.service import Service
from kanban.models.service_order import ServiceOrder
from kanban.models.tray import Tray, TrayItem
from kanban.projection.base import FetchResult
from kanban.projection.matchers import tag_slug

logger = logging.getLogger('projection.fetchers')


# ── Helpers ──────────────────────────────────────────────────────────────────

def _aware(value):
    # SQLite hands back naive datetimes; everything is stored as UTC
    if isinstance(value, datetime) and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def as_dict(row) -> Dict[str, Any]:
    """ORM row -> plain dict keyed by column name."""
    return {c.key: _aware(getattr(row, c.key)) for c in row.__table__.columns}


def _unique(ids: Iterable[Optional[str]]) -> List[str]:
    seen = set()
    out = []
    for i in ids:
        if i and i not in seen:
            seen.add(i)
            out.append(i)
    return out


def _chunks(ids: List[str]):
    for start in range(0, len(ids), IN_FILTER_CHUNK_SIZE):
        yield ids[start:start + IN_FILTER_CHUNK_SIZE]


def _fetch(label: str, query_fn: Callable) -> FetchResult:
    """Run query_fn(session) on a fresh session; failures become FetchResult.error."""
    session = get_session()
    try:
        return FetchResult(query_fn(session))
    except Exception as e:
        logger.error("Failed to fetch %s: %s", label, e, exc_info=True)
        return FetchResult([], str(e))
    finally:
        session.close()


def _fetch_in(label: str, model, column, ids, *criteria, order_by=None) -> FetchResult:
    """SELECT model WHERE column IN ids (chunked), plus optional extra criteria."""
    ids = _unique(ids)
    if not ids:
        return FetchResult([])

    def query(session):
        rows = []
        for chunk in _chunks(ids):
            q = session.query(model).filter(column.in_(chunk), *criteria)
            if order_by is not None:
                q = q.order_by(order_by)
            rows.extend(as_dict(r) for r in q.all())
        return rows

    return _fetch(label, query)


def fetch_concurrently(calls: Dict[str, Callable[[], FetchResult]]) -> Dict[str, FetchResult]:
    """
    Run independent fetches in parallel, bounded by FETCH_MAX_WORKERS.

    Returns {name: FetchResult} in the same shape as `calls`.
    """
    if FETCH_MAX_WORKERS <= 1 or len(calls) <= 1:
        return {name: fn() for name, fn in calls.items()}

    workers = min(FETCH_MAX_WORKERS, len(calls))
    with concurrent.futures.ThreadPoolExecutor(max_workers=workers) as executor:
        futures = {name: executor.submit(fn) for name, fn in calls.items()}
        return {name: future.result() for name, future in futures.items()}


# ── Board structure ──────────────────────────────────────────────────────────

def fetch_pipelines() -> FetchResult:
    return _fetch('pipelines', lambda s: [
        as_dict(r) for r in s.query(Pipeline).order_by(Pipeline.position, Pipeline.name).all()
    ])


def fetch_stages() -> FetchResult:
    return _fetch('stages', lambda s: [
        as_dict(r) for r in s.query(Stage).order_by(Stage.pipeline_id, Stage.position, Stage.name).all()
    ])


def fetch_members() -> FetchResult:
    return _fetch('members', lambda s: [as_dict(r) for r in s.query(Member).all()])


# ── Placements ───────────────────────────────────────────────────────────────

def fetch_placements(pipeline_ids: Iterable[str], entity_type: Optional[str] = None,
                     stage_ids: Optional[Iterable[str]] = None,
                     entity_ids: Optional[Iterable[str]] = None) -> FetchResult:
    """Placements in the given pipelines, optionally narrowed by type, stage and entity."""
    criteria = []
    if entity_type:
        criteria.append(PipelineItem.entity_type == entity_type)
    if stage_ids is not None:
        stage_ids = _unique(stage_ids)
        if not stage_ids:
            return FetchResult([])
        criteria.append(PipelineItem.stage_id.in_(stage_ids))
    if entity_ids is not None:
        entity_ids = _unique(entity_ids)
        if not entity_ids:
            return FetchResult([])
        # Chunk over entity ids; pipeline ids are always a short list
        return _fetch_in(
            'placements', PipelineItem, PipelineItem.entity_id, entity_ids,
            PipelineItem.pipeline_id.in_(_unique(pipeline_ids)), *criteria,
        )
    return _fetch_in('placements', PipelineItem, PipelineItem.pipeline_id, pipeline_ids, *criteria)


def fetch_placement(entity_type: str, entity_id: str, pipeline_id: str) -> FetchResult:
    """The single placement of an entity in a pipeline; data is None if there is none."""
    def query(session):
        row = session.query(PipelineItem).filter_by(
            entity_type=entity_type, entity_id=entity_id, pipeline_id=pipeline_id,
        ).first()
        return as_dict(row) if row is not None else None
    return _fetch('placement', query)


# ── Entities ─────────────────────────────────────────────────────────────────

def fetch_leads(ids: Iterable[str]) -> FetchResult:
    return _fetch_in('leads', Lead, Lead.id, ids)


def fetch_lead_tags(lead_ids: Iterable[str]) -> FetchResult:
    """{lead_id: [tag dict, ...]} for the given leads."""
    ids = _unique(lead_ids)
    if not ids:
        return FetchResult({})

    def query(session):
        tags: Dict[str, List[Dict[str, Any]]] = {}
        for chunk in _chunks(ids):
            rows = (
                session.query(LeadTag.lead_id, Tag)
                .join(Tag, Tag.id == LeadTag.tag_id)
                .filter(LeadTag.lead_id.in_(chunk))
                .order_by(Tag.name)
                .all()
            )
            for lead_id, tag in rows:
                tags.setdefault(lead_id, []).append(as_dict(tag))
        return tags

    return _fetch('lead tags', query)


def fetch_lead_ids_with_tags(tag_names: Iterable[str]) -> FetchResult:
    """Ids of leads carrying any tag whose slug ('Frizérii' -> 'frizerii') matches one of tag_names."""
    slugs = {tag_slug(n) for n in tag_names if n}
    slugs.discard('')
    if not slugs:
        return FetchResult([])

    def query(session):
        tag_ids = [tag_id for tag_id, name in session.query(Tag.id, Tag.name).all() if tag_slug(name) in slugs]
        lead_ids: List[str] = []
        for chunk in _chunks(tag_ids):
            rows = (
                session.query(LeadTag.lead_id)
                .filter(LeadTag.tag_id.in_(chunk))
                .distinct()
                .all()
            )
            lead_ids.extend(r[0] for r in rows)
        return _unique(lead_ids)

    return _fetch('leads by tag', query)


def fetch_service_orders(ids: Iterable[str] = (), lead_ids: Iterable[str] = ()) -> FetchResult:
    """Service orders by id and/or by lead, de-duplicated."""
    by_id = _fetch_in('service orders', ServiceOrder, ServiceOrder.id, ids)
    if not by_id.ok:
        return by_id
    by_lead = _fetch_in('service orders by lead', ServiceOrder, ServiceOrder.lead_id, lead_ids)
    if not by_lead.ok:
        return by_lead
    merged = {row['id']: row for row in by_id.data + by_lead.data}
    return FetchResult(list(merged.values()))


def fetch_direct_service_orders() -> FetchResult:
    """Orders that reach the front desk without a department: courier / office / unclaimed."""
    return _fetch('direct service orders', lambda s: [
        as_dict(r) for r in s.query(ServiceOrder).filter(or_(
            ServiceOrder.courier_sent.is_(True),
            ServiceOrder.office_direct.is_(True),
            ServiceOrder.package_unclaimed.is_(True),
        )).all()
    ])


def fetch_trays(ids: Iterable[str] = (), service_order_ids: Iterable[str] = ()) -> FetchResult:
    by_id = _fetch_in('trays', Tray, Tray.id, ids)
    if not by_id.ok:
        return by_id
    by_order = _fetch_in('trays by order', Tray, Tray.service_order_id, service_order_ids)
    if not by_order.ok:
        return by_order
    merged = {row['id']: row for row in by_id.data + by_order.data}
    return FetchResult(list(merged.values()))


def fetch_tray_items(tray_ids: Iterable[str]) -> FetchResult:
    return _fetch_in('tray items', TrayItem, TrayItem.tray_id, tray_ids)


def fetch_department_tray_ids(department_id: str) -> FetchResult:
    """Ids of trays with at least one line item routed to this department."""
    return _fetch('department trays', lambda s: [
        r[0] for r in s.query(TrayItem.tray_id).filter(TrayItem.department_id == department_id).distinct().all()
    ])


def fetch_services(ids: Iterable[str]) -> FetchResult:
    return _fetch_in('services', Service, Service.id, ids)


def fetch_events(entity_type: str, entity_ids: Iterable[str], event_types: Iterable[str]) -> FetchResult:
    """Events for the given entities and types, oldest first."""
    return _fetch_in(
        'events', ItemEvent, ItemEvent.entity_id, entity_ids,
        ItemEvent.entity_type == entity_type,
        ItemEvent.event_type.in_(list(event_types)),
        order_by=ItemEvent.created_at,
    )
