"""Subscription-driven plan updates (RevenueCat mirror documents)."""

import logging
from datetime import timedelta

from lingosavor.logging_config import log_event
from lingosavor.repositories import subscriptions_repo, users_repo
from lingosavor.services.retention import coerce_datetime
from lingosavor.services.user_service import INITIAL_AD_VIEWS

PLAN_FREE = 'free'
PLAN_PRO = 'pro'
PLAN_ADFREE = 'adfree'
PLAN_STANDARD = 'standard'
EXPIRY_GRACE = timedelta(hours=1)


def _entitlement_active(entitlement, now, name, uid, logger):
    if not isinstance(entitlement, dict) or not entitlement.get('expires_date'):
        return False
    expires_at = coerce_datetime(entitlement.get('expires_date'))
    if expires_at is None:
        logger.warning(f"⚠️ Invalid {name} expires_date for user {uid}: {entitlement.get('expires_date')!r}")
        return False
    return expires_at > now


def plan_from_entitlements(entitlements, now, *, uid='', logger=None):
    logger = logger or logging.getLogger(__name__)
    if not isinstance(entitlements, dict) or not entitlements:
        return PLAN_FREE
    if _entitlement_active(entitlements.get(PLAN_PRO), now, PLAN_PRO, uid, logger):
        return PLAN_PRO
    if _entitlement_active(entitlements.get(PLAN_ADFREE), now, PLAN_ADFREE, uid, logger):
        return PLAN_ADFREE
    return PLAN_FREE


def set_user_plan(uid, plan, *, db, firestore_module, logger):
    user_doc = users_repo.get_doc(db, uid)
    if not user_doc.exists:
        logger.warning(f"⚠️ Subscription for unknown user {uid}; plan not updated")
        return False
    users_repo.update_doc(db, uid, {'plan': plan, 'plan_updated_at': firestore_module.SERVER_TIMESTAMP})
    return True


def reset_ad_views(*, db, logger, value=INITIAL_AD_VIEWS):
    reset = 0
    for snapshot in users_repo.list_with_ad_views_not(db, value):
        try:
            snapshot.reference.update({'ad_views': value})
            reset += 1
        except Exception as exc:
            logger.error(f"❌ Could not reset ad_views for user {snapshot.id}: {exc}")
    return reset


def update_user_plans(app_ctx, now):
    processed = updated = errors = 0
    for snapshot in subscriptions_repo.list_subscriptions(app_ctx.db):
        processed += 1
        uid = snapshot.id
        try:
            plan = plan_from_entitlements(
                (snapshot.to_dict() or {}).get('entitlements'), now, uid=uid, logger=app_ctx.logger
            )
            if set_user_plan(uid, plan, db=app_ctx.db, firestore_module=app_ctx.firestore_module, logger=app_ctx.logger):
                updated += 1
        except Exception as exc:
            errors += 1
            app_ctx.logger.error(f"❌ Plan update failed for user {uid}: {exc}")
    ad_views_reset = reset_ad_views(db=app_ctx.db, logger=app_ctx.logger)
    summary = {'processed': processed, 'updated': updated, 'errors': errors, 'ad_views_reset': ad_views_reset}
    log_event(app_ctx.logger, logging.INFO, 'user_plans_updated', **summary)
    return summary


def plan_for_product(product_id):
    if 'pro' in product_id:
        return PLAN_PRO
    if 'adfree' in product_id:
        return PLAN_STANDARD
    return ''


def _purchase_changed(previous, current):
    if previous is None:
        return True
    return (
        previous.get('purchase_date') != current.get('purchase_date')
        and previous.get('expires_date') != current.get('expires_date')
    )


def sync_subscription(uid, before, after, *, db, logger, now):
    """Apply a ``subscriptions/{uid}`` write to the user's plan and purchase history."""
    if after is None:
        user_doc = users_repo.get_doc(db, uid)
        if user_doc.exists:
            users_repo.update_doc(db, uid, {'plan': PLAN_FREE})
            logger.info(f"Subscription removed for user {uid}; plan reset to free")
            return {'plan': PLAN_FREE}
        return {'plan': None}

    user_doc = users_repo.get_doc(db, uid)
    if not user_doc.exists:
        logger.warning(f"⚠️ Subscription written for unknown user {uid}")
        return {'plan': None}
    purchase_data = list((user_doc.to_dict() or {}).get('purchase_data') or [])
    previous_subscriptions = (before or {}).get('subscriptions') or {}
    new_plan = ''
    for product_id, subscription in ((after or {}).get('subscriptions') or {}).items():
        if not isinstance(subscription, dict):
            continue
        previous = previous_subscriptions.get(product_id)
        if not _purchase_changed(previous if isinstance(previous, dict) else None, subscription):
            continue
        purchase_key = f"{product_id}_{subscription.get('purchase_date')}"
        if purchase_key in purchase_data:
            continue
        expires_at = coerce_datetime(subscription.get('expires_date'))
        if expires_at is not None and expires_at < now - EXPIRY_GRACE:
            logger.info(f"Expired purchase {purchase_key} for user {uid}; plan unchanged")
        else:
            new_plan = plan_for_product(product_id) or new_plan
        purchase_data.append(purchase_key)

    if new_plan:
        users_repo.update_doc(db, uid, {'plan': new_plan, 'purchase_data': purchase_data})
        logger.info(f"💳 User {uid} plan set to {new_plan}")
    return {'plan': new_plan or None, 'purchase_data': purchase_data}
