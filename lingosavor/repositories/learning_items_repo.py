"""Firestore accessors for learning items: ``user_words`` and ``user_rooms``."""

from .query_utils import apply_where

WORDS_COLLECTION = 'user_words'
ROOMS_COLLECTION = 'user_rooms'


def word_ref(db, word_id):
    return db.collection(WORDS_COLLECTION).document(word_id)


def room_ref(db, room_id):
    return db.collection(ROOMS_COLLECTION).document(room_id)


def get_room(db, room_id):
    return room_ref(db, room_id).get()


def update_room(db, room_id, updates):
    return room_ref(db, room_id).update(updates)


def list_all_words(db):
    return list(db.collection(WORDS_COLLECTION).stream())


def list_words_by_user(db, uid, *, limit=None):
    query = apply_where(db.collection(WORDS_COLLECTION), 'user_id', '==', uid)
    if isinstance(limit, int) and limit > 0:
        query = query.limit(limit)
    return list(query.stream())


def list_rooms_by_user(db, uid):
    return list(apply_where(db.collection(ROOMS_COLLECTION), 'user_id', '==', uid).stream())


def list_by_user_and_stage(db, collection_name, uid, stage):
    query = apply_where(db.collection(collection_name), 'user_id', '==', uid)
    query = apply_where(query, 'stage', '==', stage)
    return list(query.stream())
