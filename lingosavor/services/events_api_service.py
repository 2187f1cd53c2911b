"""Business logic handlers for document-change and store-notification events."""

import base64
import binascii
import hmac
import json

from flask import jsonify

from lingosavor.services import notification_service, plan_service, user_service


def _event_authorized(app_ctx, request):
    expected = app_ctx.config.event_push_token
    if not expected:
        return True
    provided = request.headers.get('X-Event-Token', '')
    return hmac.compare_digest(provided.encode('utf-8'), expected.encode('utf-8'))


def _event_body(request):
    body = request.get_json(silent=True)
    return body if isinstance(body, dict) else {}


def room_deleted(app_ctx, request):
    if not _event_authorized(app_ctx, request):
        return jsonify({'error': 'Unauthorized'}), 401
    body = _event_body(request)
    room_id = str(body.get('roomId') or '').strip()
    if not room_id:
        return jsonify({'error': 'roomId is required'}), 400
    try:
        deleted = user_service.cascade_delete_room(room_id, body.get('data') or {}, db=app_ctx.db, logger=app_ctx.logger)
    except Exception as e:
        app_ctx.logger.error(f"Error deleting messages of room {room_id}: {e}")
        return jsonify({'error': 'Could not delete room messages'}), 500
    return jsonify({'ok': True, 'messagesDeleted': deleted})


def subscription_written(app_ctx, request):
    if not _event_authorized(app_ctx, request):
        return jsonify({'error': 'Unauthorized'}), 401
    body = _event_body(request)
    user_id = str(body.get('userId') or '').strip()
    if not user_id:
        return jsonify({'error': 'userId is required'}), 400
    try:
        result = plan_service.sync_subscription(
            user_id, body.get('before'), body.get('after'),
            db=app_ctx.db, logger=app_ctx.logger, now=app_ctx.now(),
        )
    except Exception as e:
        app_ctx.logger.error(f"Error syncing subscription for user {user_id}: {e}")
        return jsonify({'error': 'Could not sync subscription'}), 500
    return jsonify({'ok': True, 'plan': result.get('plan')})


def notification_created(app_ctx, request):
    if not _event_authorized(app_ctx, request):
        return jsonify({'error': 'Unauthorized'}), 401
    body = _event_body(request)
    notification_id = str(body.get('notificationId') or '').strip()
    if not notification_id:
        return jsonify({'error': 'notificationId is required'}), 400
    result = notification_service.deliver_notification(
        notification_id, body.get('data'),
        db=app_ctx.db, messaging_module=app_ctx.messaging_module,
        logger=app_ctx.logger, clock=app_ctx.clock,
    )
    return jsonify({'ok': True, **result})


def decode_signed_payload(signed_payload):
    """Read the claims of an App Store JWS without verifying its signature."""
    parts = str(signed_payload or '').split('.')
    if len(parts) != 3:
        return None
    segment = parts[1] + '=' * (-len(parts[1]) % 4)
    try:
        return json.loads(base64.urlsafe_b64decode(segment.encode('ascii')))
    except (ValueError, binascii.Error):
        return None


def apple_server_notification(app_ctx, request):
    body = _event_body(request)
    claims = decode_signed_payload(body.get('signedPayload'))
    if claims is None:
        app_ctx.logger.warning('⚠️ App Store notification without a readable signedPayload')
    else:
        app_ctx.logger.info(
            f"🍎 App Store notification {claims.get('notificationType')} "
            f"({claims.get('subtype') or '-'}) uuid={claims.get('notificationUUID')}"
        )
    return jsonify({'ok': True}), 200
