"""User record lifecycle: creation, push tokens, room cascade and account deletion."""

import random
import string

from lingosavor.errors import CallableError
from lingosavor.repositories import messages_repo, users_repo
from lingosavor.repositories.query_utils import apply_where, delete_refs_in_batches

INITIAL_GEMS = 200
INITIAL_AD_VIEWS = 10
DEFAULT_PLAN = 'free'
USER_NAME_LENGTH = 12
USER_NAME_ALPHABET = string.ascii_lowercase + string.digits

ACCOUNT_COLLECTIONS = (
    'messages',
    'user_documents',
    'user_rooms',
    'words',
    'user_wordlists',
    'users',
    'documents_savor_results',
    'user_words',
)


def random_user_name(rng=None):
    rng = rng or random.SystemRandom()
    return ''.join(rng.choice(USER_NAME_ALPHABET) for _ in range(USER_NAME_LENGTH))


def create_user_record(uid, *, db, auth_module, firestore_module, rng=None):
    existing = users_repo.get_doc(db, uid)
    if existing.exists:
        return {'success': False, 'message': 'User data already exists'}
    user_record = auth_module.get_user(uid)
    user_data = {
        'user_id': uid,
        'email': user_record.email or '',
        'display_name': user_record.display_name or '',
        'user_name': random_user_name(rng),
        'created_at': firestore_module.SERVER_TIMESTAMP,
        'gems': INITIAL_GEMS,
        'plan': DEFAULT_PLAN,
        'ad_views': INITIAL_AD_VIEWS,
    }
    users_repo.set_doc(db, uid, user_data)
    response_data = dict(user_data)
    response_data.pop('created_at')
    return {'success': True, 'message': 'User data created', 'userData': response_data}


def save_push_token(uid, token, *, db, auth_module, clock):
    try:
        auth_module.get_user(uid)
    except Exception as exc:
        raise CallableError('not-found', f"User {uid} not found") from exc
    users_repo.set_doc(db, uid, {
        'fcmToken': token.strip(),
        'lastTokenUpdate': clock(),
        'tokenUpdatedBy': 'client_app',
    }, merge=True)
    return {'success': True, 'message': 'FCM token saved'}


def cascade_delete_room(room_id, room_data, *, db, logger):
    """Delete the messages of a removed room. Returns how many were deleted."""
    owner = (room_data or {}).get('user_id')
    if not owner:
        logger.warning(f"⚠️ Deleted room {room_id} has no user_id; messages left in place")
        return 0
    messages = messages_repo.list_for_room_and_user(db, room_id, owner)
    if not messages:
        return 0
    deleted = delete_refs_in_batches(db, [snapshot.reference for snapshot in messages])
    logger.info(f"🗑️ Deleted {deleted} messages of room {room_id}")
    return deleted


def delete_account(uid, *, db, auth_module, logger):
    deleted_total = 0
    for collection_name in ACCOUNT_COLLECTIONS:
        try:
            docs = list(apply_where(db.collection(collection_name), 'user_id', '==', uid).stream())
            deleted_total += delete_refs_in_batches(db, [snapshot.reference for snapshot in docs])
        except Exception as exc:
            logger.error(f"❌ Could not delete {collection_name} for user {uid}: {exc}")
    try:
        auth_module.delete_user(uid)
    except Exception as exc:
        logger.error(f"❌ Could not delete auth user {uid}: {exc}")
        raise CallableError('internal', 'Failed to delete the account') from exc
    logger.info(f"🗑️ Account {uid} deleted ({deleted_total} documents)")
    return {'success': True, 'message': 'Account deleted', 'documentsDeleted': deleted_total}
