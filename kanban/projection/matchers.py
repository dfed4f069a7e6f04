"""
Name matching — how the engine recognises pipelines and stages.

Stages carry no type column; they are recognised by normalized name against
the pattern table in stage_patterns.yaml. Pipelines are classified the same
way. All functions here are pure apart from the one-time pattern load.
"""
import logging
import os
import re
import unicodedata
from typing import Any, Dict, Iterable, List, Optional

import yaml

from kanban.config import (
    DEPARTMENT_NAME_VARIANTS,
    DEPARTMENT_PIPELINES,
    HOME_PHONE_PREFIXES,
    STAGE_PATTERNS_PATH,
)
from kanban.projection.base import PipelineInfo

logger = logging.getLogger('projection.matchers')


# ── Stage patterns (YAML with hardcoded fallback) ────────────────────────────

_stage_patterns = None


def _default_patterns():
    """Hardcoded fallback if YAML is missing or malformed."""
    return {
        'NEW': ['noua', 'new'],
        'IN_PROGRESS': ['in lucru', 'in work', 'in progress'],
        'WAITING': ['in asteptare', 'asteptare', 'waiting'],
        'WAITING_PARTS': ['astept piese', 'asteptare piese', 'waiting parts'],
        'FINALIZED': ['finaliz', 'finalized', 'done'],
        'PACKAGE_ARRIVED': ['colet ajuns', 'colet a ajuns', 'colet-ajuns', 'coletajuns', 'package arrived'],
        'PACKAGE_UNCLAIMED': ['colet neridicat', 'colet-neridicat', 'neridicat', 'unclaimed'],
        'COURIER_SENT': ['curier trimis', 'curier-trimis', 'curier_trimis', 'courier sent'],
        'OFFICE_DIRECT': ['office direct', 'office-direct', 'office_direct'],
        'TO_INVOICE': ['de facturat', 'facturat', 'to invoice'],
        'READY_TO_SHIP': ['de trimis', 'detrimis', 'to send', 'ready to ship'],
        'SELF_PICKUP': ['ridic personal', 'ridicpersonal', 'ridica personal', 'self pickup'],
        'RETURN': ['retur', 'return'],
        'NO_ANSWER': ['nu raspunde', 'nuraspunde', 'no answer'],
        'ARCHIVED': ['arhiv', 'archiv'],
        'MESSAGES': ['mesaje', 'messages'],
        'NO_DEAL': ['no deal', 'no-deal'],
        'CALLBACK': ['call back', 'callback', 'call-back'],
        'HAS_ORDER': ['avem comand', 'has order'],
        'ACTIVE_ORDERS': ['comenzi active', 'active orders'],
        'FOREIGN_LEADS': ['leaduri straine', 'foreign leads'],
        'ARRIVED_TODAY': ['curier ajuns azi', 'arrived today', 'livrari'],
        'VALIDATION': ['valid'],
    }


def load_stage_patterns() -> Dict[str, List[str]]:
    """Load stage patterns from YAML, with in-memory cache and hardcoded fallback."""
    global _stage_patterns
    if _stage_patterns is not None:
        return _stage_patterns

    config_path = STAGE_PATTERNS_PATH or os.path.join(os.path.dirname(__file__), 'stage_patterns.yaml')
    try:
        with open(config_path, 'r') as f:
            raw = yaml.safe_load(f)
        patterns = raw['patterns']
        if not isinstance(patterns, dict):
            raise ValueError("'patterns' must be a mapping")
        # Keys missing from the file keep their defaults
        merged = _default_patterns()
        merged.update({key: [str(p) for p in values] for key, values in patterns.items()})
        _stage_patterns = {
            key: [normalize_stage_name(p) for p in values]
            for key, values in merged.items()
        }
        logger.info("Stage patterns loaded from YAML (version=%s)", raw.get('version', '?'))
    except Exception as e:
        logger.warning("Stage patterns YAML unusable (%s), using defaults", e)
        _stage_patterns = {
            key: [normalize_stage_name(p) for p in values]
            for key, values in _default_patterns().items()
        }

    return _stage_patterns


def reset_stage_patterns():
    """Drop the cached pattern table (next call reloads)."""
    global _stage_patterns
    _stage_patterns = None


# ── Normalization ────────────────────────────────────────────────────────────

_WHITESPACE_RE = re.compile(r'\s+')
_NON_ALNUM_RE = re.compile(r'[^a-z0-9]+')


def normalize_stage_name(name: Optional[str]) -> str:
    """Lowercase, strip diacritics, collapse whitespace: 'În Lucru ' -> 'in lucru'."""
    if not name:
        return ''
    decomposed = unicodedata.normalize('NFD', str(name).lower())
    stripped = ''.join(ch for ch in decomposed if not unicodedata.combining(ch))
    return _WHITESPACE_RE.sub(' ', stripped).strip()


def tag_slug(name: Optional[str]) -> str:
    """'Nu răspunde' -> 'nuraspunde'."""
    return _NON_ALNUM_RE.sub('', normalize_stage_name(name))


# ── Stage matching ───────────────────────────────────────────────────────────

def matches_stage_pattern(stage_name: Optional[str], key: str) -> bool:
    """True if any pattern registered under `key` occurs in the normalized stage name."""
    normalized = normalize_stage_name(stage_name)
    if not normalized:
        return False
    patterns = load_stage_patterns().get(key)
    if patterns is None:
        raise KeyError(f"Unknown stage pattern key '{key}'")
    return any(p in normalized for p in patterns)


def find_stage_by_pattern(stages: Iterable[Dict[str, Any]], key: str) -> Optional[Dict[str, Any]]:
    """First stage (in the given order) whose name matches `key`, else None."""
    for stage in stages:
        if matches_stage_pattern(stage.get('name'), key):
            return stage
    return None


def stage_key(stage_name: Optional[str], keys: Iterable[str]) -> Optional[str]:
    """First key in `keys` the stage name matches, else None."""
    for key in keys:
        if matches_stage_pattern(stage_name, key):
            return key
    return None


# ── Pipeline classification ──────────────────────────────────────────────────

def is_department_pipeline_name(name: Optional[str]) -> bool:
    normalized = normalize_stage_name(name)
    if not normalized:
        return False
    for department in DEPARTMENT_PIPELINES:
        dep = normalize_stage_name(department)
        if normalized == dep or dep in normalized:
            return True
    return False


def classify_pipeline(pipeline: Dict[str, Any]) -> PipelineInfo:
    """Derive kind flags for a pipeline row from its name."""
    name = pipeline.get('name') or ''
    normalized = normalize_stage_name(name)
    return PipelineInfo(
        id=pipeline['id'],
        name=name,
        is_quality='quality' in normalized or 'calitate' in normalized,
        is_front_desk='receptie' in normalized or 'front desk' in normalized or 'front-desk' in normalized,
        is_courier='curier' in normalized or 'courier' in normalized,
        is_department=is_department_pipeline_name(name),
        is_sales='vanzari' in normalized or 'sales' in normalized,
    )


# ── Department ↔ stage matching (quality board) ──────────────────────────────

def _variant_group(normalized: str) -> Optional[str]:
    for group, variants in DEPARTMENT_NAME_VARIANTS.items():
        if any(v in normalized for v in variants):
            return group
    return None


def matches_department_stage(department_name: Optional[str], stage_name: Optional[str]) -> bool:
    """
    Does a stage (on another board) stand for this department?

    Checked in order, first hit wins:
      1. exact normalized equality
      2. either name contains the other
      3. a shared word longer than 3 characters
      4. both names fall in the same spelling-variant group (salon/saloane, ...)
    """
    dep = normalize_stage_name(department_name)
    stage = normalize_stage_name(stage_name)
    if not dep or not stage:
        return False

    if dep == stage:
        return True
    if dep in stage or stage in dep:
        return True

    dep_words = {w for w in dep.split(' ') if len(w) > 3}
    stage_words = {w for w in stage.split(' ') if len(w) > 3}
    if dep_words & stage_words:
        return True

    group = _variant_group(dep)
    return group is not None and group == _variant_group(stage)


# ── Phones ───────────────────────────────────────────────────────────────────

def is_foreign_phone(phone: Optional[str]) -> bool:
    """Non-empty number not starting with a home-country prefix."""
    if not phone:
        return False
    compact = ''.join(str(phone).split())
    if not compact:
        return False
    return not compact.startswith(HOME_PHONE_PREFIXES)
