"""Firestore accessors for chat ``messages``."""

from .query_utils import ASCENDING, apply_where

COLLECTION = 'messages'


def list_for_user_since(db, uid, since):
    query = apply_where(db.collection(COLLECTION), 'user_id', '==', uid)
    query = apply_where(query, 'created_at', '>', since)
    return list(query.stream())


def list_for_room(db, room_id):
    query = apply_where(db.collection(COLLECTION), 'room_id', '==', room_id)
    return list(query.order_by('created_at', direction=ASCENDING).stream())


def list_for_room_and_user(db, room_id, uid, *, ordered=False):
    query = apply_where(db.collection(COLLECTION), 'user_id', '==', uid)
    query = apply_where(query, 'room_id', '==', room_id)
    if ordered:
        query = query.order_by('created_at', direction=ASCENDING)
    return list(query.stream())


def add_doc(db, data):
    return db.collection(COLLECTION).add(data)
