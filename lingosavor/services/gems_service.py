"""Gem balance bookkeeping: grants, charges and refunds."""

import logging
import math

from lingosavor.errors import CallableError
from lingosavor.logging_config import log_event
from lingosavor.repositories import users_repo
from lingosavor.repositories.query_utils import MAX_BATCH_WRITES, chunked
from lingosavor.services.file_service import count_words

WORDS_PER_GEM = 10
MONTHLY_FREE_GEMS = 100
FREE_PLAN = 'free'


def gems_for_text(text):
    return int(math.ceil(count_words(text) / WORDS_PER_GEM))


def add_gems(uid, amount, *, is_ad, db, firestore_module):
    """Credit ``amount`` gems; an ad reward also uses up one ad view."""
    ref = users_repo.doc_ref(db, uid)
    transaction = db.transaction()

    @firestore_module.transactional
    def _txn(txn):
        snapshot = ref.get(transaction=txn)
        if not snapshot.exists:
            raise CallableError('not-found', f"User {uid} not found")
        data = snapshot.to_dict() or {}
        previous_gems = int(data.get('gems', 0) or 0)
        previous_ad_views = int(data.get('ad_views', 0) or 0)
        updates = {'gems': previous_gems + amount}
        new_ad_views = None
        if is_ad:
            new_ad_views = max(0, previous_ad_views - 1)
            updates['ad_views'] = new_ad_views
        txn.update(ref, updates)
        return {
            'user_id': uid,
            'gems_added': amount,
            'previous_gems': previous_gems,
            'new_gems_total': previous_gems + amount,
            'is_ad': bool(is_ad),
            'previous_ad_views': previous_ad_views if is_ad else None,
            'new_ad_views': new_ad_views,
        }

    return _txn(transaction)


def deduct_gems(uid, amount, *, db, firestore_module):
    """Charge ``amount`` gems atomically and return the remaining balance."""
    ref = users_repo.doc_ref(db, uid)
    transaction = db.transaction()

    @firestore_module.transactional
    def _txn(txn):
        snapshot = ref.get(transaction=txn)
        if not snapshot.exists:
            raise CallableError('not-found', 'User not found')
        current = int((snapshot.to_dict() or {}).get('gems', 0) or 0)
        if current < amount:
            raise CallableError(
                'resource-exhausted',
                f"Not enough gems. Required: {amount}, available: {current}",
            )
        txn.update(ref, {'gems': current - amount})
        return current - amount

    return _txn(transaction)


def refund_gems(uid, amount, *, db, firestore_module, logger):
    if amount <= 0:
        return False
    try:
        users_repo.update_doc(db, uid, {'gems': firestore_module.Increment(amount)})
        logger.info(f"💎 Refunded {amount} gems to user {uid}")
        return True
    except Exception as exc:
        logger.error(f"❌ Failed to refund {amount} gems to user {uid}: {exc}")
        return False


def grant_monthly_free_gems(*, db, firestore_module, logger, amount=MONTHLY_FREE_GEMS):
    """Give every free-plan user ``amount`` gems, committing in Firestore-sized batches."""
    users = users_repo.list_by_plan(db, FREE_PLAN)
    updated = 0
    for chunk in chunked(users, MAX_BATCH_WRITES):
        batch = db.batch()
        for snapshot in chunk:
            batch.update(snapshot.reference, {
                'gems': firestore_module.Increment(amount),
                'gems_updated_at': firestore_module.SERVER_TIMESTAMP,
            })
        batch.commit()
        updated += len(chunk)
    log_event(logger, logging.INFO, 'monthly_free_gems_granted', users=updated, amount=amount)
    return updated
