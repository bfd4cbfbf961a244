"""
Centralized configuration — all env vars, constants, status vocabularies.
"""
import os


# ── Logging ──────────────────────────────────────────────────────────────────
LOG_LEVEL = os.getenv('LOG_LEVEL', 'INFO')
LOG_FORMAT = os.getenv('LOG_FORMAT', 'text')

# ── Redis ─────────────────────────────────────────────────────────────────────
REDIS_URL = os.getenv('REDIS_URL', 'redis://localhost:6379/0')

# ── PostgreSQL ────────────────────────────────────────────────────────────────
DATABASE_URL = os.getenv('DATABASE_URL', 'sqlite:///local.db')

# ── Resolver service ─────────────────────────────────────────────────────────
RESOLVER_URL = os.getenv('RESOLVER_URL')
RESOLVER_API_KEY = os.getenv('RESOLVER_API_KEY')
RESOLVER_TIMEOUT = float(os.getenv('RESOLVER_TIMEOUT', '30'))
MOCK_RESOLVER = os.getenv('MOCK_RESOLVER')

# ── Slack notifications ──────────────────────────────────────────────────────
SLACK_WEBHOOK_URL = os.getenv('SLACK_WEBHOOK_URL')

# ── Batch driver ─────────────────────────────────────────────────────────────
PAGE_SIZE = int(os.getenv('MATCH_PAGE_SIZE', '25'))
ROW_CONCURRENCY = int(os.getenv('MATCH_ROW_CONCURRENCY', '1'))
MAX_JOB_ROWS = int(os.getenv('MAX_JOB_ROWS', '5000'))
JOB_TIMEOUT = int(os.getenv('JOB_TIMEOUT', '14400'))
JOB_STALE_AFTER = int(os.getenv('JOB_STALE_AFTER', '900'))  # seconds without heartbeat

# ── Store write retries ──────────────────────────────────────────────────────
STORE_RETRY_ATTEMPTS = int(os.getenv('STORE_RETRY_ATTEMPTS', '3'))
STORE_RETRY_BACKOFF = float(os.getenv('STORE_RETRY_BACKOFF', '0.5'))

# ── Job status values ─────────────────────────────────────────────────────────
JOB_STATUSES = [
    'queued',
    'running',
    'partial',
    'succeeded',
    'failed',
    'cancelled',
]

JOB_TERMINAL_STATUSES = ('partial', 'succeeded', 'failed', 'cancelled')

# ── Row status values ─────────────────────────────────────────────────────────
ROW_STATUSES = [
    'queued',
    'running',
    'resolved_confident',
    'resolved_needs_review',
    'unresolved',
    'error',
]

ROW_TERMINAL_STATUSES = ('resolved_confident', 'resolved_needs_review', 'unresolved', 'error')

# Row status → JobStats field
ROW_STATUS_COUNTERS = {
    'resolved_confident': 'resolved',
    'resolved_needs_review': 'review',
    'unresolved': 'unresolved',
    'error': 'errors',
}
