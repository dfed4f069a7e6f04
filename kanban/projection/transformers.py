"""
Transformers — pure helpers that turn snapshot rows into card fields.

Display name/phone fallbacks, money totals, time estimates, the urgent-tag
rule, technician names, and the entity → KanbanItem builders.
"""
import json
import re
from typing import Any, Dict, Iterable, List, Mapping, Optional

from kanban.config import SPLIT_TRAY_STATUS, SUBSCRIPTION_DISCOUNTS, URGENT_MARKUP_PCT
from kanban.projection.base import KanbanItem, KanbanTag


# ── Lead display name / phone ────────────────────────────────────────────────

_NAME_LABEL_RES = [re.compile(p, re.IGNORECASE) for p in (
    r'nume\s*complet\s*:',
    r'^nume\s*:',
    r'nume\s*(si\s*|și\s*)?prenume\s*:',
    r'^client\s*:',
    r'^contact\s*:',
    r'persoana\s*(de\s*)?contact\s*:',
    r'^denumire\s*:',
    r'^firma\s*:',
    r'^companie\s*:',
)]
_PHONE_LABEL_RES = [re.compile(p, re.IGNORECASE) for p in (
    r'num[aă]r\s*de\s*telefon\s*:',
    r'number\s*.*telefon\s*:',
)]
_FALLBACK_PHONE_LABEL_RES = [re.compile(p, re.IGNORECASE) for p in (
    r'^telefon\s*:',
    r'^nr\.?\s*telefon\s*:',
)]
_NAME_LIKE_RE = re.compile(r"^[\w\s\-'.]+$", re.UNICODE)
_PLACEHOLDER_PHONE_RE = re.compile(r'^\+40\s*xxx\s*xxx\s*xxx$', re.IGNORECASE)


def _value_after_label(line: str) -> str:
    return line.split(':', 1)[1].strip() if ':' in line else ''


def extract_name_and_phone(details: Optional[str]) -> Dict[str, str]:
    """
    Pull 'name' / 'phone' out of a free-form intake dump such as

        Nume Complet: Ana Pop
        Numar De Telefon: +40 712 345 678
    """
    if not details or not isinstance(details, str):
        return {}

    found: Dict[str, str] = {}
    lines = details.split('\n')
    for raw in lines:
        line = raw.strip()
        if not line:
            continue
        if any(r.search(line) for r in _NAME_LABEL_RES):
            value = _value_after_label(line)
            if len(value) > 1:
                found['name'] = value
        if any(r.search(line) for r in _PHONE_LABEL_RES):
            value = _value_after_label(line)
            if value:
                found['phone'] = value
        if 'phone' not in found and any(r.search(line) for r in _FALLBACK_PHONE_LABEL_RES):
            value = _value_after_label(line)
            if value:
                found['phone'] = value

    if 'name' not in found:
        # First line that looks like a name: 1-5 words, no label
        for raw in lines:
            line = raw.strip()
            if not line or ':' in line or len(line) < 3:
                continue
            if 1 <= len(line.split()) <= 5 and _NAME_LIKE_RE.match(line) and not line.replace(' ', '').isdigit():
                found['name'] = line
                break

    return found


def display_name(lead: Mapping[str, Any]) -> str:
    full_name = (lead.get('full_name') or '').strip()
    if full_name and full_name.lower() != 'unknown':
        return full_name
    return extract_name_and_phone(lead.get('details')).get('name') or full_name or 'Unknown'


def _is_real_phone(value: str) -> bool:
    value = (value or '').strip()
    if not value or _PLACEHOLDER_PHONE_RE.match(value):
        return False
    return len(value) >= 6


def display_phone(lead: Mapping[str, Any]) -> str:
    phone = lead.get('phone_number') or ''
    if _is_real_phone(phone):
        return phone.strip()
    return extract_name_and_phone(lead.get('details')).get('phone') or phone


# ── Service time ─────────────────────────────────────────────────────────────

_HOUR_MIN_COMPACT_RE = re.compile(r'^(\d+(?:\.\d+)?)\s*h\s*(\d+)$')
_UNIT_RE = re.compile(r'(\d+(?:\.\d+)?)\s*(hours|hour|ore|ora|h|minute|min|m|secunde|seconds|sec|s)\b')
_UNIT_MINUTES = {
    'h': 60, 'ora': 60, 'ore': 60, 'hour': 60, 'hours': 60,
    'min': 1, 'minute': 1, 'm': 1,
    's': 1 / 60, 'sec': 1 / 60, 'secunde': 1 / 60, 'seconds': 1 / 60,
}


def parse_service_time(raw) -> float:
    """
    Free-text service duration → minutes.

        "30" -> 30, "1h 30min" -> 90, "1h30" -> 90, "2 ore" -> 120,
        "01:30" -> 90, "0:05" -> 5, "30:00" -> 30, "00:30:00" -> 30
    Unparseable input is 0.
    """
    text = ' '.join(str(raw if raw is not None else '').lower().replace(',', '.').split())
    if not text:
        return 0

    compact = _HOUR_MIN_COMPACT_RE.match(text)
    if compact:
        return float(compact.group(1)) * 60 + float(compact.group(2))

    units = _UNIT_RE.findall(text)
    if units:
        return sum(float(value) * _UNIT_MINUTES[unit] for value, unit in units)

    if ':' in text:
        try:
            parts = [float(p) for p in text.split(':') if p.strip()]
        except ValueError:
            return 0
        parts = [max(0.0, p) for p in parts]
        if len(parts) == 3:
            hh, mm, ss = parts
            return hh * 60 + mm + ss / 60
        if len(parts) == 2:
            a, b = parts
            if a == 0:
                return b
            # "30:00" reads as MM:SS, "1:30" as HH:MM
            if a > 12:
                return a + b / 60
            return a * 60 + b
        return 0

    try:
        value = float(text)
    except ValueError:
        match = re.match(r'^(\d+)', text)
        return float(match.group(1)) if match else 0
    return value if value > 0 else 0


# ── Money ────────────────────────────────────────────────────────────────────

def parse_notes(notes) -> Optional[Dict[str, Any]]:
    """Line-item notes as a dict, or None when empty / not JSON."""
    if not notes:
        return None
    if isinstance(notes, dict):
        return notes
    try:
        data = json.loads(notes)
    except (TypeError, ValueError):
        return None
    return data if isinstance(data, dict) else None


def is_visible_item(item: Mapping[str, Any]) -> bool:
    """Items whose JSON notes lack an item_type are internal and never shown or billed."""
    if not item.get('notes'):
        return True
    data = parse_notes(item['notes'])
    if data is None:
        return True
    return data.get('item_type') is not None


def tray_total(items: Iterable[Mapping[str, Any]], service_prices: Mapping[str, float],
               subscription_type: Optional[str] = None) -> float:
    """
    Sum of visible line items after discount, urgent markup and subscription discount.

    Per item: qty × price, minus discount_pct (clamped 0-100), plus
    URGENT_MARKUP_PCT of the discounted amount when flagged urgent. Then the
    subscription takes its cut of the services and/or parts subtotals.
    """
    services_total = 0.0
    parts_total = 0.0
    for item in items:
        if not is_visible_item(item):
            continue
        notes = parse_notes(item.get('notes')) or {}
        qty = item.get('qty') or 1
        price = notes.get('price') or 0
        item_type = notes.get('item_type')
        if not price and item.get('service_id'):
            price = service_prices.get(item['service_id']) or 0
            item_type = item_type or 'service'
        if not item_type and not item.get('service_id'):
            item_type = 'part'

        base = qty * float(price)
        discount_pct = min(100.0, max(0.0, float(notes.get('discount_pct') or 0)))
        after_discount = base - base * discount_pct / 100
        if notes.get('urgent'):
            after_discount += after_discount * URGENT_MARKUP_PCT / 100

        if item_type == 'service':
            services_total += after_discount
        elif item_type == 'part':
            parts_total += after_discount

    total = services_total + parts_total
    if subscription_type in ('services', 'both'):
        total -= services_total * SUBSCRIPTION_DISCOUNTS['services'] / 100
    if subscription_type in ('parts', 'both'):
        total -= parts_total * SUBSCRIPTION_DISCOUNTS['parts'] / 100
    return round(max(0.0, total), 2)


def estimated_minutes(items: Iterable[Mapping[str, Any]], service_times: Mapping[str, Any]) -> float:
    """Σ service duration × qty over visible service line items."""
    total = 0.0
    for item in items:
        if not item.get('service_id') or not is_visible_item(item):
            continue
        total += parse_service_time(service_times.get(item['service_id'])) * (item.get('qty') or 1)
    return round(total, 2)


# ── Tags ─────────────────────────────────────────────────────────────────────

def to_tag(row: Mapping[str, Any]) -> KanbanTag:
    return KanbanTag(id=row['id'], name=row.get('name') or '', color=row.get('color') or 'gray')


def resolve_tags(lead_tags: Iterable[Mapping[str, Any]], is_urgent: bool, entity_id: str) -> List[KanbanTag]:
    """
    Lead tags with the urgent rule applied.

    The lead's own 'urgent' tag is dropped; an URGENT tag is shown only when
    the service order is urgent (reusing the lead's tag if it has one).
    """
    tags = []
    own_urgent = None
    for row in lead_tags:
        if (row.get('name') or '').strip().lower() == 'urgent':
            own_urgent = own_urgent or row
            continue
        tags.append(to_tag(row))
    if is_urgent:
        if own_urgent is not None:
            tags.append(to_tag(own_urgent))
        else:
            tags.append(KanbanTag(id=f'urgent_{entity_id}', name='URGENT', color='red'))
    return tags


# ── Technicians ──────────────────────────────────────────────────────────────

def technician_names(tray: Mapping[str, Any], names: Mapping[str, str]) -> List[Optional[str]]:
    """Display names for up to three technicians on a tray, None where unassigned."""
    out = []
    for key in ('technician_id', 'technician2_id', 'technician3_id'):
        user_id = tray.get(key)
        out.append(names.get(user_id, user_id) if user_id else None)
    return out


def is_split_tray(tray: Mapping[str, Any]) -> bool:
    return tray.get('status') == SPLIT_TRAY_STATUS or bool(tray.get('parent_tray_id'))


# ── Entity → KanbanItem ──────────────────────────────────────────────────────

def _stage_fields(stage: Optional[Mapping[str, Any]]) -> Dict[str, Any]:
    return {'stage_id': stage['id'] if stage else None, 'stage': stage['name'] if stage else ''}


def _placement_fields(placement: Optional[Mapping[str, Any]]) -> Dict[str, Any]:
    if not placement:
        return {'placement_id': None, 'stage_moved_at': None}
    return {
        'placement_id': placement.get('id'),
        'stage_moved_at': placement.get('updated_at') or placement.get('created_at'),
    }


def lead_to_item(lead, pipeline_id, stage, placement, tags, total=0.0) -> KanbanItem:
    return KanbanItem(
        id=lead['id'],
        entity_type='lead',
        pipeline_id=pipeline_id,
        name=display_name(lead),
        email=lead.get('email'),
        phone=display_phone(lead),
        lead_id=lead['id'],
        tags=list(tags),
        total=total,
        created_at=lead.get('created_at'),
        callback_date=lead.get('callback_date'),
        no_answer_callback_at=lead.get('no_answer_callback_at'),
        **_stage_fields(stage),
        **_placement_fields(placement),
    )


def service_order_to_item(order, lead, pipeline_id, stage, placement, tags,
                          total=0.0, tray_numbers=()) -> KanbanItem:
    lead = lead or {}
    return KanbanItem(
        id=order['id'],
        entity_type='service_order',
        pipeline_id=pipeline_id,
        name=display_name(lead) if lead else '',
        email=lead.get('email'),
        phone=display_phone(lead) if lead else None,
        lead_id=order.get('lead_id'),
        tags=list(tags),
        total=total,
        created_at=order.get('created_at'),
        service_order_number=order.get('number'),
        service_order_status=order.get('status'),
        tray_numbers=[n for n in tray_numbers if n],
        no_answer_callback_at=order.get('no_answer_callback_at') or lead.get('no_answer_callback_at'),
        **_stage_fields(stage),
        **_placement_fields(placement),
    )


def tray_to_item(tray, order, lead, pipeline_id, stage, placement, tags, names,
                 total=0.0, minutes=0.0) -> KanbanItem:
    order = order or {}
    lead = lead or {}
    tech1, tech2, tech3 = technician_names(tray, names)
    return KanbanItem(
        id=tray['id'],
        entity_type='tray',
        pipeline_id=pipeline_id,
        name=display_name(lead) if lead else '',
        email=lead.get('email'),
        phone=display_phone(lead) if lead else None,
        lead_id=order.get('lead_id'),
        tags=list(tags),
        technician=tech1,
        technician2=tech2,
        technician3=tech3,
        technician_id=tray.get('technician_id'),
        total=total,
        estimated_time=minutes,
        created_at=tray.get('created_at'),
        service_order_number=order.get('number'),
        service_order_status=order.get('status'),
        tray_number=tray.get('number'),
        tray_numbers=[tray['number']] if tray.get('number') else [],
        tray_status=tray.get('status'),
        is_split_child=bool(tray.get('parent_tray_id')),
        **_stage_fields(stage),
        **_placement_fields(placement),
    )
