import os
from dataclasses import dataclass

from dotenv import load_dotenv

DEV_ENV_NAMES = {'development', 'dev', 'local', 'test'}
DEFAULT_STORAGE_BUCKET = 'lingosavor.firebasestorage.app'
DEFAULT_SCHEDULE_TIMEZONE = 'Asia/Tokyo'


def safe_float_env(name, default=0.0):
    raw = os.getenv(name, str(default)).strip()
    try:
        value = float(raw)
    except Exception:
        return default
    return min(max(value, 0.0), 1.0)


def env_flag(name, default='0'):
    return str(os.getenv(name, default)).strip().lower() in {'1', 'true', 'yes', 'on'}


def runtime_environment():
    return (
        os.getenv('SENTRY_ENVIRONMENT')
        or os.getenv('FLASK_ENV')
        or os.getenv('ENV')
        or ('production' if os.getenv('K_SERVICE') or os.getenv('RENDER') else 'development')
    ).strip().lower()


@dataclass(frozen=True)
class AppConfig:
    """Process-wide settings resolved from the environment."""

    flask_secret_key: str = ''
    log_level: str = 'INFO'
    runtime_env: str = 'development'
    sentry_dsn: str = ''
    sentry_environment: str = 'production'
    sentry_release: str = 'lingosavor'
    sentry_traces_sample_rate: float = 0.0
    gemini_api_key: str = ''
    firebase_credentials_path: str = 'firebase-credentials.json'
    firebase_credentials_json: str = ''
    storage_bucket: str = DEFAULT_STORAGE_BUCKET
    schedule_timezone: str = DEFAULT_SCHEDULE_TIMEZONE
    explanation_language: str = 'Japanese'
    job_lease_enabled: bool = True
    event_push_token: str = ''

    @property
    def is_dev_like(self):
        return self.runtime_env in DEV_ENV_NAMES


def load_config() -> AppConfig:
    load_dotenv()
    runtime_env = runtime_environment()
    config = AppConfig(
        flask_secret_key=os.getenv('FLASK_SECRET_KEY', ''),
        log_level=(os.getenv('LOG_LEVEL', 'INFO') or 'INFO').strip().upper(),
        runtime_env=runtime_env,
        sentry_dsn=os.getenv('SENTRY_DSN', '').strip(),
        sentry_environment=(os.getenv('SENTRY_ENVIRONMENT', os.getenv('FLASK_ENV', 'production')) or 'production').strip(),
        sentry_release=(os.getenv('SENTRY_RELEASE', 'lingosavor') or 'lingosavor').strip(),
        sentry_traces_sample_rate=safe_float_env('SENTRY_TRACES_SAMPLE_RATE', 0.0),
        gemini_api_key=os.getenv('GEMINI_API_KEY', '').strip(),
        firebase_credentials_path=(os.getenv('FIREBASE_CREDENTIALS_PATH', 'firebase-credentials.json') or '').strip(),
        firebase_credentials_json=os.getenv('FIREBASE_CREDENTIALS', '').strip(),
        storage_bucket=(os.getenv('FIREBASE_STORAGE_BUCKET', DEFAULT_STORAGE_BUCKET) or DEFAULT_STORAGE_BUCKET).strip(),
        schedule_timezone=(os.getenv('SCHEDULER_TIMEZONE', DEFAULT_SCHEDULE_TIMEZONE) or DEFAULT_SCHEDULE_TIMEZONE).strip(),
        explanation_language=(os.getenv('EXPLANATION_LANGUAGE', 'Japanese') or 'Japanese').strip(),
        job_lease_enabled=env_flag('JOB_LEASE_ENABLED', '1'),
        event_push_token=os.getenv('EVENT_PUSH_TOKEN', '').strip(),
    )
    if not config.is_dev_like and not config.flask_secret_key.strip():
        raise RuntimeError('FLASK_SECRET_KEY must be set in non-development environments.')
    return config
