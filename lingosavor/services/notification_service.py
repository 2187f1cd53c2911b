"""Notification queue writes, FCM delivery and the daily reminder jobs."""

import logging
import time

from lingosavor.logging_config import log_event
from lingosavor.repositories import notifications_repo, user_tasks_repo, users_repo
from lingosavor.repositories.query_utils import chunked
from lingosavor.services.clock import local_date_key

NOTIFICATION_BATCH_SIZE = 100
NOTIFICATION_BATCH_DELAY_SECONDS = 0.1
REMINDER_WORD_COUNT = 5

STATUS_PENDING = 'pending'
STATUS_SENT = 'sent'
STATUS_FAILED = 'failed'

DAILY_REMINDER_TITLE = 'What English did you meet today? ☺️'
DAILY_REMINDER_BODY = 'Look back on what you read 📖 and heard 🎧 with LingoSavor!'
WORD_LIST_REMINDER_TITLE = 'Some words are slipping away ‼️'
REVIEW_REMINDER_TITLE = "Yesterday's review is waiting 📝"
REVIEW_REMINDER_BODY = "Finish yesterday's review questions to lock in what you learned."


def notification_payload(user_id, title, body, *, screen=None, data=None, created_by=None, firestore_module):
    return {
        'userId': user_id,
        'title': title,
        'body': body,
        'screen': screen or None,
        'data': dict(data or {}),
        'createdAt': firestore_module.SERVER_TIMESTAMP,
        'createdBy': created_by or 'system',
        'status': STATUS_PENDING,
    }


def queue_bulk_notifications(
    user_ids,
    title,
    body,
    *,
    db,
    firestore_module,
    logger,
    screen=None,
    data=None,
    created_by=None,
    sleep=time.sleep,
):
    """Queue one notification per user, 100 per batch. Returns the ids that were committed."""
    notification_ids = []
    batches = list(chunked(user_ids, NOTIFICATION_BATCH_SIZE))
    for index, batch_user_ids in enumerate(batches):
        batch = db.batch()
        batch_ids = []
        for user_id in batch_user_ids:
            ref = notifications_repo.new_doc_ref(db)
            batch.set(ref, notification_payload(
                user_id, title, body,
                screen=screen, data=data, created_by=created_by, firestore_module=firestore_module,
            ))
            batch_ids.append(ref.id)
        try:
            batch.commit()
            notification_ids.extend(batch_ids)
        except Exception as exc:
            logger.error(f"❌ Notification batch {index + 1}/{len(batches)} failed ({batch_ids}): {exc}")
        if index < len(batches) - 1:
            sleep(NOTIFICATION_BATCH_DELAY_SECONDS)
    log_event(logger, logging.INFO, 'notifications_queued', requested=len(list(user_ids)), queued=len(notification_ids))
    return notification_ids


def queue_notification(user_id, title, body, *, db, firestore_module, screen=None, data=None, created_by=None):
    ref = notifications_repo.new_doc_ref(db)
    ref.set(notification_payload(
        user_id, title, body,
        screen=screen, data=data, created_by=created_by, firestore_module=firestore_module,
    ))
    return ref.id


def build_push_message(notification_id, notification, token, *, messaging_module):
    data = {
        'click_action': 'FLUTTER_NOTIFICATION_CLICK',
        'notificationId': notification_id,
    }
    for key, value in (notification.get('data') or {}).items():
        data[str(key)] = str(value)
    if notification.get('screen'):
        data['screen'] = str(notification['screen'])
    return messaging_module.Message(
        token=token,
        notification=messaging_module.Notification(title=notification['title'], body=notification['body']),
        data=data,
        apns=messaging_module.APNSConfig(
            payload=messaging_module.APNSPayload(
                aps=messaging_module.Aps(
                    alert=messaging_module.ApsAlert(title=notification['title'], body=notification['body']),
                    sound='default',
                    badge=1,
                ),
            ),
        ),
        android=messaging_module.AndroidConfig(
            priority='high',
            notification=messaging_module.AndroidNotification(sound='default', channel_id='default_channel'),
        ),
    )


def deliver_notification(notification_id, notification, *, db, messaging_module, logger, clock):
    """Send a queued notification over FCM and record the outcome on its document."""
    notification = notification or {}
    user_id = notification.get('userId')
    if not user_id or not notification.get('title') or not notification.get('body'):
        logger.warning(f"⚠️ Notification {notification_id} is missing userId, title or body")
        return {'status': 'skipped', 'reason': 'incomplete'}
    user_doc = users_repo.get_doc(db, user_id)
    token = (user_doc.to_dict() or {}).get('fcmToken') if user_doc.exists else None
    if not token:
        logger.warning(f"⚠️ No FCM token for user {user_id}; notification {notification_id} not sent")
        return {'status': 'skipped', 'reason': 'no-token'}
    try:
        message_id = messaging_module.send(
            build_push_message(notification_id, notification, token, messaging_module=messaging_module)
        )
    except Exception as exc:
        logger.error(f"❌ Push delivery failed for notification {notification_id}: {exc}")
        notifications_repo.update_doc(db, notification_id, {
            'status': STATUS_FAILED,
            'error': str(exc),
            'failedAt': clock(),
        })
        return {'status': STATUS_FAILED, 'error': str(exc)}
    notifications_repo.update_doc(db, notification_id, {
        'sentAt': clock(),
        'messageId': message_id,
        'status': STATUS_SENT,
    })
    logger.info(f"📨 Notification {notification_id} sent to user {user_id}")
    return {'status': STATUS_SENT, 'messageId': message_id}


def send_daily_study_reminder(app_ctx, now):
    user_ids = [doc.id for doc in users_repo.list_all(app_ctx.db)]
    if not user_ids:
        return {'notificationsSent': 0, 'totalUsers': 0}
    ids = queue_bulk_notifications(
        user_ids, DAILY_REMINDER_TITLE, DAILY_REMINDER_BODY,
        db=app_ctx.db, firestore_module=app_ctx.firestore_module, logger=app_ctx.logger,
        screen='document', sleep=app_ctx.sleep,
    )
    return {'notificationsSent': len(ids), 'totalUsers': len(user_ids)}


def word_list_reminder_body(word_list):
    words = [str(item.get('word')) for item in (word_list or [])[:REMINDER_WORD_COUNT] if isinstance(item, dict) and item.get('word')]
    if not words:
        return None
    return f"{', '.join(words)}... can you recall their meanings?"


def send_word_list_reminder(app_ctx, now):
    sent = 0
    bundles = user_tasks_repo.list_all(app_ctx.db)
    for snapshot in bundles:
        data = snapshot.to_dict() or {}
        body = word_list_reminder_body(data.get('word_list'))
        if not data.get('userId') or not body:
            continue
        try:
            queue_notification(
                data['userId'], WORD_LIST_REMINDER_TITLE, body,
                db=app_ctx.db, firestore_module=app_ctx.firestore_module, screen='home',
            )
            sent += 1
        except Exception as exc:
            app_ctx.logger.error(f"❌ Word list reminder failed for user {data['userId']}: {exc}")
    return {'notificationsSent': sent, 'totalBundles': len(bundles)}


def send_review_reminder(app_ctx, now):
    yesterday = local_date_key(now, app_ctx.config.schedule_timezone, days_ago=1)
    user_ids = []
    for snapshot in user_tasks_repo.list_by_date(app_ctx.db, yesterday):
        user_id = (snapshot.to_dict() or {}).get('userId')
        if user_id and user_id not in user_ids:
            user_ids.append(user_id)
    if not user_ids:
        return {'notificationsSent': 0, 'yesterdayDate': yesterday}
    ids = queue_bulk_notifications(
        user_ids, REVIEW_REMINDER_TITLE, REVIEW_REMINDER_BODY,
        db=app_ctx.db, firestore_module=app_ctx.firestore_module, logger=app_ctx.logger,
        screen='home', sleep=app_ctx.sleep,
    )
    return {'notificationsSent': len(ids), 'yesterdayDate': yesterday}
