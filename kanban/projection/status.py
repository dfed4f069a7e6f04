"""
Event-derived status — folds over the append-only items_events log.

Quality outcome is never stored on the tray; it is the latest of the
validated / not-validated pair for that tray. Front-desk milestones keep the
first time each one happened. Both folds are pure: same events in, same
result out.
"""
from datetime import datetime
from typing import Any, Callable, Dict, Iterable, List, Optional

from kanban.config import (
    FRONT_DESK_EVENT_KINDS,
    QC_NOT_VALIDATED_EVENT,
    QC_VALIDATED_EVENT,
    STAGE_CHANGE_EVENT,
)
from kanban.projection.matchers import stage_key

QC_EVENT_TYPES = [QC_VALIDATED_EVENT, QC_NOT_VALIDATED_EVENT]

VALIDATED = 'validated'
NOT_VALIDATED = 'not_validated'

# Stage pattern key → milestone kind, for stage_change events
_STAGE_CHANGE_KINDS = {
    'PACKAGE_ARRIVED': 'package_arrived',
    'PACKAGE_UNCLAIMED': 'package_unclaimed',
    'TO_INVOICE': 'to_invoice',
    'READY_TO_SHIP': 'ready_to_ship',
    'SELF_PICKUP': 'self_pickup',
}


def _ordered(events: Iterable[Dict[str, Any]]) -> List[Dict[str, Any]]:
    # Stable on ties so log order breaks them
    return sorted(events, key=lambda e: e['created_at'])


def latest_of_pair(events: Iterable[Dict[str, Any]], positive: str, negative: str) -> Dict[str, Dict[str, Any]]:
    """
    {entity_id: latest event} considering only the two event types.

    Entities with no matching event are absent (status undefined).
    """
    latest: Dict[str, Dict[str, Any]] = {}
    for event in _ordered(events):
        if event['event_type'] in (positive, negative):
            latest[event['entity_id']] = event
    return latest


def resolve_quality_status(events: Iterable[Dict[str, Any]]) -> Dict[str, Dict[str, Any]]:
    """
    {tray_id: {'status': 'validated' | 'not_validated', 'at': datetime}}.
    """
    latest = latest_of_pair(events, QC_VALIDATED_EVENT, QC_NOT_VALIDATED_EVENT)
    return {
        entity_id: {
            'status': VALIDATED if event['event_type'] == QC_VALIDATED_EVENT else NOT_VALIDATED,
            'at': event['created_at'],
        }
        for entity_id, event in latest.items()
    }


def is_validated_since(qc: Optional[Dict[str, Any]], finalized_at: Optional[datetime]) -> bool:
    """
    Validated, and not by a validation older than the latest finalization.

    A tray sent back to work and finalized again must be validated again.
    """
    if not qc or qc['status'] != VALIDATED:
        return False
    if finalized_at is None or qc['at'] is None:
        return True
    return qc['at'] >= finalized_at


# ── Front-desk milestones ────────────────────────────────────────────────────

def _stage_change_target(payload: Optional[Dict[str, Any]]) -> Optional[str]:
    if not payload:
        return None
    target = payload.get('to')
    if isinstance(target, dict):
        target = target.get('name') or target.get('stage_name')
    return target if isinstance(target, str) else None


def classify_front_desk_event(event: Dict[str, Any]) -> Optional[str]:
    """Milestone kind for an event, or None if it is not a front-desk milestone."""
    event_type = event['event_type']
    if event_type in FRONT_DESK_EVENT_KINDS:
        return FRONT_DESK_EVENT_KINDS[event_type]
    if event_type == STAGE_CHANGE_EVENT:
        key = stage_key(_stage_change_target(event.get('payload')), _STAGE_CHANGE_KINDS)
        return _STAGE_CHANGE_KINDS.get(key) if key else None
    return None


def earliest_by_kind(events: Iterable[Dict[str, Any]],
                     classify: Callable[[Dict[str, Any]], Optional[str]] = classify_front_desk_event,
                     ) -> Dict[str, Dict[str, datetime]]:
    """{entity_id: {kind: first time it happened}}."""
    milestones: Dict[str, Dict[str, datetime]] = {}
    for event in _ordered(events):
        kind = classify(event)
        if kind is None:
            continue
        milestones.setdefault(event['entity_id'], {}).setdefault(kind, event['created_at'])
    return milestones


FRONT_DESK_EVENT_TYPES = list(FRONT_DESK_EVENT_KINDS) + [STAGE_CHANGE_EVENT]
