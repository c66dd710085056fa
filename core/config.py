"""Environment configuration.

All settings come from the process environment (optionally a local .env
file). Values are read once at import; tests override them with
monkeypatch on this module.
"""

import os

from dotenv import load_dotenv

load_dotenv()


def _int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or raw.strip() == '':
        return default
    return int(raw)


def _list(name: str, default: str = '') -> list:
    raw = os.getenv(name, default)
    return [item.strip() for item in raw.split(',') if item.strip()]


# Slack
SLACK_BOT_TOKEN = os.getenv('SLACK_BOT_TOKEN', '')
SLACK_SIGNING_SECRET = os.getenv('SLACK_SIGNING_SECRET', '')
FOUNDER_SLACK_ID = os.getenv('FOUNDER_SLACK_ID', '')
BOT_NAME = os.getenv('BOT_NAME', 'Support Bot')

# Capability client
OPENAI_API_KEY = os.getenv('OPENAI_API_KEY', '')
OPENAI_MODEL = os.getenv('OPENAI_MODEL', 'gpt-4o')
OPENAI_FALLBACK_MODELS = _list('OPENAI_FALLBACK_MODELS', 'gpt-4o-mini')
LLM_MAX_ATTEMPTS = _int('LLM_MAX_ATTEMPTS', 2)

# Storage and queues
DATABASE_URL = os.getenv('DATABASE_URL', 'sqlite:///support_bot.db')
CELERY_BROKER_URL = os.getenv('CELERY_BROKER_URL', 'redis://localhost:6379/0')

# Time handling
TIMEZONE = os.getenv('TIMEZONE', 'Asia/Karachi')
QUIET_WINDOWS = _list('QUIET_WINDOWS')
QUIET_FRIDAY_WINDOW = os.getenv('QUIET_FRIDAY_WINDOW', '').strip()
QUIET_DEFER_MINUTES = _int('QUIET_DEFER_MINUTES', 30)

# Background jobs
REMINDER_MAX_ATTEMPTS = _int('REMINDER_MAX_ATTEMPTS', 3)
REMINDER_RETRY_BACKOFF = _int('REMINDER_RETRY_BACKOFF', 5)
DEADLINE_CHECK_INTERVAL_MINUTES = _int('DEADLINE_CHECK_INTERVAL_MINUTES', 15)
UNANSWERED_LOOKBACK_HOURS = _int('UNANSWERED_LOOKBACK_HOURS', 24)

LOG_LEVEL = os.getenv('LOG_LEVEL', 'INFO').upper()
LOG_FORMAT = '%(asctime)s %(levelname)s %(name)s %(message)s'

# HTTP entry points
SLACK_APP_PORT = _int('SLACK_APP_PORT', 3000)
AGENT_PORT = _int('AGENT_PORT', 5600)
