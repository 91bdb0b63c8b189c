"""
Centralized configuration — env vars, status values, event types.
"""
import os


# ── Logging ──────────────────────────────────────────────────────────────────
LOG_LEVEL = os.getenv('LOG_LEVEL', 'INFO')
LOG_FORMAT = os.getenv('LOG_FORMAT', 'text')

# ── Redis ─────────────────────────────────────────────────────────────────────
REDIS_URL = os.getenv('REDIS_URL', 'redis://localhost:6379/0')

# ── Persistence ───────────────────────────────────────────────────────────────
# sql  → SQLAlchemy (DATABASE_URL)
# file → single JSON document at FILE_STORE_PATH
# none → persistence disabled, API answers "not configured"
STORE_BACKEND = os.getenv('STORE_BACKEND', 'sql').lower()
DATABASE_URL = os.getenv('DATABASE_URL', 'sqlite:///local.db')
FILE_STORE_PATH = os.getenv('FILE_STORE_PATH', '.data/growth-audit-store.json')

# ── PageSpeed Insights ────────────────────────────────────────────────────────
PAGESPEED_API_KEY = os.getenv('PAGESPEED_API_KEY')
PAGESPEED_API_URL = 'https://www.googleapis.com/pagespeedonline/v5/runPagespeed'
METRICS_TIMEOUT_SECONDS = float(os.getenv('METRICS_TIMEOUT_SECONDS', '5.6'))

# ── Page fetch ────────────────────────────────────────────────────────────────
PAGE_FETCH_TIMEOUT_SECONDS = float(os.getenv('PAGE_FETCH_TIMEOUT_SECONDS', '4.5'))
PAGE_MAX_BYTES = int(os.getenv('PAGE_MAX_BYTES', str(3 * 1024 * 1024)))   # body read cap
AUDIT_USER_AGENT = os.getenv(
    'AUDIT_USER_AGENT',
    'GrowthAuditBot/2.0 (+https://digitalbusinessassets.co.uk)',
)

# ── Scan jobs ─────────────────────────────────────────────────────────────────
JOB_TRACKER = os.getenv('JOB_TRACKER', 'memory').lower()
SCAN_WORKERS = int(os.getenv('SCAN_WORKERS', '4'))
SCAN_LOCK_TTL_SECONDS = int(os.getenv('SCAN_LOCK_TTL_SECONDS', '900'))

# ── Outreach links ────────────────────────────────────────────────────────────
PUBLIC_BASE_URL = os.getenv('PUBLIC_BASE_URL', 'https://digitalbusinessassets.co.uk').rstrip('/')
BRAND_NAME = os.getenv('BRAND_NAME', 'Digital Business Assets')

# ── Scan status values ────────────────────────────────────────────────────────
QUEUED = 'QUEUED'
PROCESSING = 'PROCESSING'
COMPLETED = 'COMPLETED'
FAILED = 'FAILED'

SCAN_STATUSES = [QUEUED, PROCESSING, COMPLETED, FAILED]
TERMINAL_STATUSES = (COMPLETED, FAILED)

# ── Lead intake ───────────────────────────────────────────────────────────────
LEAD_REASONS = [
    'No leads',
    'Low conversion',
    'Slow replies',
    'Bad SEO',
    'Need website',
    'All of it',
]
DEFAULT_LEAD_REASON = 'All of it'
DEFAULT_INDUSTRY = 'General'

HOT_FOLLOWUP_STATUS = 'hot_followup_sent'

# ── Event types ───────────────────────────────────────────────────────────────
EVENT_TYPES = [
    'audit_started',
    'audit_completed',
    'audit_failed',
    'pdf_downloaded',
    'module_clicked',
    'simulator_opened',
    'simulator_started',
    'simulator_completed',
    'simulator_action_clicked',
    'book_call_clicked',
    'ai_follow_up_generated',
    'lead_scored',
    'auto_followup_triggered',
]

# Written by the pipeline itself; they do not count as lead activity
SYSTEM_EVENT_TYPES = {
    'audit_failed',
    'ai_follow_up_generated',
    'lead_scored',
    'auto_followup_triggered',
}
