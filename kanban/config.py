"""
Centralized configuration — env vars and board constants.
"""
import os


# ── Logging ──────────────────────────────────────────────────────────────────
LOG_LEVEL = os.getenv('LOG_LEVEL', 'INFO')
LOG_FORMAT = os.getenv('LOG_FORMAT', 'text')

# ── PostgreSQL ────────────────────────────────────────────────────────────────
DATABASE_URL = os.getenv('DATABASE_URL', 'sqlite:///local.db')

# ── Flask ─────────────────────────────────────────────────────────────────────
SECRET_KEY = os.getenv('SECRET_KEY', 'dev-secret-change-me')

# ── Snapshot fetches ─────────────────────────────────────────────────────────
FETCH_MAX_WORKERS = int(os.getenv('FETCH_MAX_WORKERS', '6'))
IN_FILTER_CHUNK_SIZE = int(os.getenv('IN_FILTER_CHUNK_SIZE', '500'))

# ── Stage name patterns (YAML; see kanban/projection/stage_patterns.yaml) ────
STAGE_PATTERNS_PATH = os.getenv('STAGE_PATTERNS_PATH')

# ── Sales board ──────────────────────────────────────────────────────────────
ARRIVED_TODAY_WINDOW_HOURS = int(os.getenv('ARRIVED_TODAY_WINDOW_HOURS', '24'))
HOME_PHONE_PREFIXES = ('+40', '40', '0')

# ── Pricing ───────────────────────────────────────────────────────────────────
URGENT_MARKUP_PCT = 30
SUBSCRIPTION_DISCOUNTS = {
    'services': 10,   # % off services for 'services' / 'both' subscriptions
    'parts': 5,       # % off parts for 'parts' / 'both' subscriptions
}

# ── Trays ─────────────────────────────────────────────────────────────────────
ARCHIVED_TRAY_MARKER = '-copy'
SPLIT_TRAY_STATUS = 'Splited'

# ── Pipelines ─────────────────────────────────────────────────────────────────
DEPARTMENT_PIPELINES = ['Saloane', 'Horeca', 'Frizerii', 'Reparatii']

# Alternate spellings used in stage names of other pipelines
DEPARTMENT_NAME_VARIANTS = {
    'saloane':   ['saloane', 'salon'],
    'horeca':    ['horeca'],
    'frizerii':  ['frizerii', 'frizerie', 'frizer'],
    'reparatii': ['reparatii', 'reparatie'],
}

ENTITY_TYPES = ['lead', 'service_order', 'tray']

# ── Event log types ───────────────────────────────────────────────────────────
QC_VALIDATED_EVENT = 'quality_validated'
QC_NOT_VALIDATED_EVENT = 'quality_not_validated'
SPLIT_TO_TECHNICIAN_EVENT = 'tray_items_split_to_technician'

# Front-desk milestones: event type → milestone kind
FRONT_DESK_EVENT_KINDS = {
    'colet_ajuns':     'package_arrived',
    'colet_neridicat': 'package_unclaimed',
    'de_facturat':     'to_invoice',
    'de_trimis':       'ready_to_ship',
    'ridic_personal':  'self_pickup',
}
STAGE_CHANGE_EVENT = 'stage_change'
