"""Business logic handlers for manual notification callables."""

from lingosavor.callable_protocol import callable_payload, callable_result, require_string
from lingosavor.errors import CallableError
from lingosavor.services import notification_service
from lingosavor.services.auth_service import require_uid


def _title_and_body(data):
    title = require_string(data, 'title', 'title and body are required')
    body = require_string(data, 'body', 'title and body are required')
    return title, body


def _optional_fields(data):
    screen = data.get('screen') if isinstance(data.get('screen'), str) else None
    extra = data.get('data') if isinstance(data.get('data'), dict) else None
    return screen, extra


def send_notification(app_ctx, request):
    uid = require_uid(app_ctx, request)
    data = callable_payload(request)
    user_id = require_string(data, 'userId', 'userId, title and body are required')
    title, body = _title_and_body(data)
    screen, extra = _optional_fields(data)
    notification_id = notification_service.queue_notification(
        user_id, title, body,
        db=app_ctx.db, firestore_module=app_ctx.firestore_module,
        screen=screen, data=extra, created_by=uid,
    )
    app_ctx.logger.info(f"📮 Notification {notification_id} queued for user {user_id}")
    return callable_result({'success': True, 'notificationId': notification_id, 'message': 'Notification queued'})


def send_bulk_notification(app_ctx, request):
    uid = require_uid(app_ctx, request)
    data = callable_payload(request)
    user_ids = data.get('userIds')
    if not isinstance(user_ids, list) or not user_ids or not all(isinstance(item, str) and item for item in user_ids):
        raise CallableError('invalid-argument', 'userIds must be a non-empty list of user ids')
    title, body = _title_and_body(data)
    screen, extra = _optional_fields(data)
    notification_ids = notification_service.queue_bulk_notifications(
        user_ids, title, body,
        db=app_ctx.db, firestore_module=app_ctx.firestore_module, logger=app_ctx.logger,
        screen=screen, data=extra, created_by=uid, sleep=app_ctx.sleep,
    )
    return callable_result({
        'success': True,
        'notificationIds': notification_ids,
        'queued': len(notification_ids),
        'requested': len(user_ids),
    })
