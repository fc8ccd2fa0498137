"""
Centralized configuration - all env vars, constants, funnel limits.
"""
import os


# ── Redis ─────────────────────────────────────────────────────────────────────
REDIS_URL = os.getenv('REDIS_URL', 'redis://localhost:6379/0')
RUN_SNAPSHOT_TTL = 86400 * 7  # 7 days

# ── PostgreSQL ────────────────────────────────────────────────────────────────
DATABASE_URL = os.getenv('DATABASE_URL', 'sqlite:///local.db')

# ── OpenAI (scoring service) ──────────────────────────────────────────────────
OPENAI_API_KEY = os.getenv('OPENAI_API_KEY')
OPENAI_MODEL = os.getenv('OPENAI_MODEL', 'gpt-4o')

# ── Firecrawl (content extraction) ────────────────────────────────────────────
FIRECRAWL_API_KEY = os.getenv('FIRECRAWL_API_KEY')

# ── Fetch pacing ──────────────────────────────────────────────────────────────
FETCH_DELAY_SECONDS = float(os.getenv('FETCH_DELAY_SECONDS', '6'))
RATE_LIMIT_COOLDOWN_SECONDS = float(os.getenv('RATE_LIMIT_COOLDOWN_SECONDS', '60'))
FETCH_BATCH_SIZE = int(os.getenv('FETCH_BATCH_SIZE', '3'))
FETCH_BATCH_PAUSE_SECONDS = float(os.getenv('FETCH_BATCH_PAUSE_SECONDS', '2'))

# ── RQ ────────────────────────────────────────────────────────────────────────
RUN_JOB_TIMEOUT = int(os.getenv('RUN_JOB_TIMEOUT', '3600'))

# ── Supported source platforms ───────────────────────────────────────────────
SUPPORTED_PLATFORMS = ['itchio', 'steam']

# ── Run status values (in the only order a run may move through them) ───────
RUN_STATUSES = [
    'initializing',
    'searching',
    'analyzing',
    'storing',
    'completed',
    'failed',
]

TERMINAL_STATUSES = ('completed', 'failed')

# ── Mission cadence labels ───────────────────────────────────────────────────
FREQUENCIES = ['daily', 'weekly', 'monthly']
