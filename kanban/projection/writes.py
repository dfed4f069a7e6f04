"""
Corrective writes — the only way the projection touches storage.

All writes are idempotent "set stage" / "insert if missing" operations and
return a WriteResult. A batch that fails is rolled back and retried one row
at a time so a single bad row never blocks the rest. Nothing here raises.
"""
import logging
from collections import defaultdict
from datetime import datetime, timezone
from typing import Dict, Iterable, List, Optional, Set

from sqlalchemy.exc import IntegrityError

from kanban.config import IN_FILTER_CHUNK_SIZE
from kanban.database import get_session
from kanban.models.pipeline import PipelineItem
from kanban.models.service_order import ServiceOrder
from kanban.projection.base import WriteError, WriteResult
from kanban.projection.fetchers import as_dict

logger = logging.getLogger('projection.writes')


def _chunks(ids: List[str]):
    for start in range(0, len(ids), IN_FILTER_CHUNK_SIZE):
        yield ids[start:start + IN_FILTER_CHUNK_SIZE]


def _existing_entity_ids(session, entity_type: str, pipeline_id: str, ids: List[str]) -> Set[str]:
    existing: Set[str] = set()
    for chunk in _chunks(ids):
        existing.update(
            r[0] for r in session.query(PipelineItem.entity_id).filter(
                PipelineItem.entity_type == entity_type,
                PipelineItem.pipeline_id == pipeline_id,
                PipelineItem.entity_id.in_(chunk),
            ).all()
        )
    return existing


def _group_by_stage(targets: Dict[str, str]) -> Dict[str, List[str]]:
    groups: Dict[str, List[str]] = defaultdict(list)
    for entity_id, stage_id in targets.items():
        groups[stage_id].append(entity_id)
    return groups


def move_item_to_stage(entity_type: str, entity_id: str, pipeline_id: str, stage_id: str,
                       now: Optional[datetime] = None) -> WriteResult:
    """Upsert one placement so (entity, pipeline) sits in stage_id."""
    now = now or datetime.now(timezone.utc)
    result = WriteResult()
    session = get_session()
    try:
        row = session.query(PipelineItem).filter_by(
            entity_type=entity_type, entity_id=entity_id, pipeline_id=pipeline_id,
        ).first()
        if row is None:
            row = PipelineItem(
                entity_type=entity_type, entity_id=entity_id, pipeline_id=pipeline_id,
                stage_id=stage_id, created_at=now, updated_at=now,
            )
            session.add(row)
            session.flush()
            result.created.append(as_dict(row))
        elif row.stage_id != stage_id:
            row.stage_id = stage_id
            row.updated_at = now
        session.commit()
        result.succeeded.append(entity_id)
    except Exception as e:
        session.rollback()
        logger.error("Failed to move %s %s to stage %s: %s", entity_type, entity_id, stage_id, e, exc_info=True)
        result.errors.append(WriteError(entity_id, str(e)))
    finally:
        session.close()
    return result


def apply_stage_corrections(entity_type: str, pipeline_id: str, targets: Dict[str, str],
                            now: Optional[datetime] = None) -> WriteResult:
    """
    Move many entities at once: {entity_id: target stage_id}.

    Existing rows get one UPDATE per target stage; entities with no row get
    one INSERT batch per target stage. On any failure the whole batch rolls
    back and every entity is retried with move_item_to_stage().
    """
    if not targets:
        return WriteResult()
    now = now or datetime.now(timezone.utc)

    result = WriteResult()
    session = get_session()
    try:
        ids = list(targets)
        existing = _existing_entity_ids(session, entity_type, pipeline_id, ids)

        new_rows = []
        for stage_id, entity_ids in _group_by_stage(targets).items():
            to_update = [i for i in entity_ids if i in existing]
            for chunk in _chunks(to_update):
                session.query(PipelineItem).filter(
                    PipelineItem.entity_type == entity_type,
                    PipelineItem.pipeline_id == pipeline_id,
                    PipelineItem.entity_id.in_(chunk),
                ).update({'stage_id': stage_id, 'updated_at': now}, synchronize_session=False)
            for entity_id in entity_ids:
                if entity_id not in existing:
                    new_rows.append(PipelineItem(
                        entity_type=entity_type, entity_id=entity_id, pipeline_id=pipeline_id,
                        stage_id=stage_id, created_at=now, updated_at=now,
                    ))
        if new_rows:
            session.add_all(new_rows)
            session.flush()
        created = [as_dict(r) for r in new_rows]
        session.commit()
        result.succeeded.extend(ids)
        result.created.extend(created)
        logger.info("Corrected %d %s placement(s) in pipeline %s (%d inserted)",
                    len(ids), entity_type, pipeline_id, len(new_rows))
    except Exception as e:
        session.rollback()
        logger.warning("Batch stage correction failed (%s), retrying %d row(s) individually", e, len(targets))
        result = WriteResult(used_fallback=True)
    finally:
        session.close()

    if result.used_fallback:
        for entity_id, stage_id in targets.items():
            result.merge(move_item_to_stage(entity_type, entity_id, pipeline_id, stage_id, now=now))
        if result.errors:
            logger.warning("%d of %d stage correction(s) failed in pipeline %s",
                           len(result.errors), len(targets), pipeline_id)
    return result


def _insert_placement(entity_type: str, entity_id: str, pipeline_id: str, stage_id: str,
                      now: datetime) -> WriteResult:
    """Insert one placement if missing. A row that already exists counts as success."""
    result = WriteResult()
    session = get_session()
    try:
        if not _existing_entity_ids(session, entity_type, pipeline_id, [entity_id]):
            row = PipelineItem(
                entity_type=entity_type, entity_id=entity_id, pipeline_id=pipeline_id,
                stage_id=stage_id, created_at=now, updated_at=now,
            )
            session.add(row)
            session.flush()
            created = as_dict(row)
            session.commit()
            result.created.append(created)
        result.succeeded.append(entity_id)
    except IntegrityError as e:
        session.rollback()
        # Lost the race against an overlapping projection
        if _existing_entity_ids(session, entity_type, pipeline_id, [entity_id]):
            result.succeeded.append(entity_id)
        else:
            logger.error("Failed to create %s placement for %s: %s", entity_type, entity_id, e, exc_info=True)
            result.errors.append(WriteError(entity_id, str(e)))
    except Exception as e:
        session.rollback()
        logger.error("Failed to create %s placement for %s: %s", entity_type, entity_id, e, exc_info=True)
        result.errors.append(WriteError(entity_id, str(e)))
    finally:
        session.close()
    return result


def create_placements(entity_type: str, pipeline_id: str, targets: Dict[str, str],
                      now: Optional[datetime] = None) -> WriteResult:
    """
    Insert placements for entities that have none here; existing rows are left alone.

    A failed batch is rolled back and retried one row at a time.
    """
    if not targets:
        return WriteResult()
    now = now or datetime.now(timezone.utc)

    result = WriteResult()
    session = get_session()
    try:
        existing = _existing_entity_ids(session, entity_type, pipeline_id, list(targets))
        rows = [
            PipelineItem(
                entity_type=entity_type, entity_id=entity_id, pipeline_id=pipeline_id,
                stage_id=stage_id, created_at=now, updated_at=now,
            )
            for entity_id, stage_id in targets.items() if entity_id not in existing
        ]
        session.add_all(rows)
        session.flush()
        created = [as_dict(r) for r in rows]
        session.commit()
        result.created.extend(created)
        result.succeeded.extend(r['entity_id'] for r in result.created)
        if rows:
            logger.info("Created %d %s placement(s) in pipeline %s", len(rows), entity_type, pipeline_id)
    except Exception as e:
        session.rollback()
        logger.warning("Batch placement insert failed (%s), retrying %d row(s) individually", e, len(targets))
        result = WriteResult(used_fallback=True)
    finally:
        session.close()

    if result.used_fallback:
        for entity_id, stage_id in targets.items():
            result.merge(_insert_placement(entity_type, entity_id, pipeline_id, stage_id, now))
        if result.errors:
            logger.warning("%d of %d placement insert(s) failed in pipeline %s",
                           len(result.errors), len(targets), pipeline_id)
    return result


def clear_package_unclaimed(service_order_ids: Iterable[str]) -> WriteResult:
    """Orders whose package is now at the front desk are no longer unclaimed."""
    ids = [i for i in dict.fromkeys(service_order_ids) if i]
    if not ids:
        return WriteResult()

    result = WriteResult()
    session = get_session()
    try:
        for chunk in _chunks(ids):
            session.query(ServiceOrder).filter(
                ServiceOrder.id.in_(chunk),
            ).update({'package_unclaimed': False}, synchronize_session=False)
        session.commit()
        result.succeeded.extend(ids)
    except Exception as e:
        session.rollback()
        logger.error("Failed to clear package_unclaimed for %d order(s): %s", len(ids), e, exc_info=True)
        result.errors.extend(WriteError(i, str(e)) for i in ids)
    finally:
        session.close()
    return result
