from flask import Flask, jsonify

from .callable_protocol import register_error_handlers
from .config import load_config
from .extensions import build_service_context, init_extensions, init_sentry
from .logging_config import configure_logging


def create_app(config=None, service_context=None):
    """App factory for the callable and event endpoints.

    Tests pass a ready ``service_context`` so no Firebase app is initialised.
    """
    config = config or load_config()
    configure_logging(config.log_level)
    init_sentry(config)

    app = Flask(__name__)
    app.secret_key = config.flask_secret_key or None
    if service_context is None:
        service_context = build_service_context(config)
    init_extensions(app, service_context)

    from .blueprints import account_bp, content_bp, documents_bp, events_bp, notifications_bp

    for blueprint in (account_bp, content_bp, documents_bp, notifications_bp, events_bp):
        app.register_blueprint(blueprint)
    register_error_handlers(app)

    @app.route('/healthz')
    def healthz():
        return jsonify({'status': 'ok'}), 200

    return app
