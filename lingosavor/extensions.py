"""Construction of the process-wide service context (Firebase, Gemini, TTS, Sentry)."""

import json
import logging
import os
import time
from dataclasses import dataclass, field
from typing import Any, Callable

import firebase_admin
from firebase_admin import auth, credentials, firestore, messaging, storage

try:
    import sentry_sdk
    from sentry_sdk.integrations.flask import FlaskIntegration
except Exception:
    sentry_sdk = None
    FlaskIntegration = None

from lingosavor.config import AppConfig
from lingosavor.services import auth_service
from lingosavor.services.audio_service import SpeechSynthesizer
from lingosavor.services.clock import utc_now
from lingosavor.services.generation import ContentGenerationClient
from lingosavor.services.storage_service import ObjectStore

EXTENSION_KEY = 'lingosavor'
logger = logging.getLogger('lingosavor')


@dataclass
class ServiceContext:
    """Every external dependency a handler or job may touch."""

    db: Any
    config: AppConfig
    auth_module: Any = None
    firestore_module: Any = None
    messaging_module: Any = None
    object_store: Any = None
    generation: Any = None
    speech: Any = None
    logger: logging.Logger = field(default_factory=lambda: logger)
    sleep: Callable[[float], None] = time.sleep
    clock: Callable[[], Any] = utc_now

    def verify_firebase_token(self, request):
        return auth_service.verify_firebase_token(request, self.auth_module, self.logger)

    def now(self):
        return self.clock()


def load_firebase_credentials(config):
    if config.firebase_credentials_path and os.path.exists(config.firebase_credentials_path):
        return credentials.Certificate(config.firebase_credentials_path)
    if config.firebase_credentials_json:
        return credentials.Certificate(json.loads(config.firebase_credentials_json))
    return credentials.ApplicationDefault()


def init_firebase(config):
    if not firebase_admin._apps:
        firebase_admin.initialize_app(load_firebase_credentials(config), {'storageBucket': config.storage_bucket})
    return firebase_admin.get_app()


def build_service_context(config):
    init_firebase(config)
    return ServiceContext(
        db=firestore.client(),
        config=config,
        auth_module=auth,
        firestore_module=firestore,
        messaging_module=messaging,
        object_store=ObjectStore(storage.bucket, config.storage_bucket, logger=logger),
        generation=ContentGenerationClient.from_api_key(config.gemini_api_key, logger=logger),
        speech=SpeechSynthesizer(logger=logger),
        logger=logger,
    )


def init_sentry(config):
    if not (config.sentry_dsn and sentry_sdk and FlaskIntegration):
        return False
    sentry_sdk.init(
        dsn=config.sentry_dsn,
        integrations=[FlaskIntegration()],
        traces_sample_rate=config.sentry_traces_sample_rate,
        send_default_pii=False,
        environment=config.sentry_environment,
        release=config.sentry_release,
    )
    return True


def init_extensions(app, service_context) -> None:
    if app is None or not hasattr(app, 'extensions'):
        return
    app.extensions.setdefault(EXTENSION_KEY, {})
    app.extensions[EXTENSION_KEY]['service_context'] = service_context


def get_service_context(app=None):
    if app is None:
        from flask import current_app

        app = current_app
    return app.extensions[EXTENSION_KEY]['service_context']
