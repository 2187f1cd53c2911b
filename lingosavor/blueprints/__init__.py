from .account import account_bp
from .content import content_bp
from .documents import documents_bp
from .notifications import notifications_bp
from .events import events_bp

__all__ = ['account_bp', 'content_bp', 'documents_bp', 'notifications_bp', 'events_bp']
