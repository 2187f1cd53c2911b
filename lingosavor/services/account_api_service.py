"""Business logic handlers for account callables."""

import math

from lingosavor.callable_protocol import callable_payload, callable_result, require_string
from lingosavor.errors import CallableError
from lingosavor.services import gems_service, user_service
from lingosavor.services.auth_service import require_uid


def parse_gem_amount(value):
    if isinstance(value, bool) or not isinstance(value, (int, float)) or value <= 0:
        raise CallableError('invalid-argument', 'gem must be a positive number')
    return int(math.ceil(value))


def add_gems(app_ctx, request):
    uid = require_uid(app_ctx, request)
    data = callable_payload(request)
    amount = parse_gem_amount(data.get('gem'))
    user_id = require_string(data, 'user_id', 'user_id must be a non-empty string')
    if user_id != uid:
        raise CallableError('permission-denied', 'You can only add gems to your own account.')
    is_ad = bool(data.get('isAd', False))

    result = gems_service.add_gems(
        user_id, amount, is_ad=is_ad, db=app_ctx.db, firestore_module=app_ctx.firestore_module
    )
    app_ctx.logger.info(f"💎 Added {amount} gems to user {user_id} (ad={is_ad})")
    return callable_result({'success': True, 'message': f"Added {amount} gems", 'data': result})


def create_user_data(app_ctx, request):
    uid = require_uid(app_ctx, request)
    try:
        result = user_service.create_user_record(
            uid, db=app_ctx.db, auth_module=app_ctx.auth_module, firestore_module=app_ctx.firestore_module
        )
    except CallableError:
        raise
    except Exception as e:
        app_ctx.logger.error(f"Error creating user data for {uid}: {e}")
        raise CallableError('internal', 'Failed to create user data') from e
    return callable_result(result)


def save_fcm_token(app_ctx, request):
    uid = require_uid(app_ctx, request)
    data = callable_payload(request)
    token = require_string(data, 'token', 'A valid FCM token is required')
    result = user_service.save_push_token(
        uid, token, db=app_ctx.db, auth_module=app_ctx.auth_module, clock=app_ctx.clock
    )
    return callable_result(result)


def delete_account(app_ctx, request):
    uid = require_uid(app_ctx, request)
    result = user_service.delete_account(uid, db=app_ctx.db, auth_module=app_ctx.auth_module, logger=app_ctx.logger)
    return callable_result(result)
