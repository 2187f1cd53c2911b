"""Firestore accessors for daily task bundles (``user_tasks``)."""

from .query_utils import DESCENDING, apply_where

COLLECTION = 'user_tasks'


def collection_ref(db):
    return db.collection(COLLECTION)


def new_doc_ref(db):
    return collection_ref(db).document()


def add_doc(db, data):
    return collection_ref(db).add(data)


def list_all(db):
    return list(collection_ref(db).stream())


def list_by_user(db, uid):
    return list(apply_where(collection_ref(db), 'userId', '==', uid).stream())


def list_by_date(db, date_key):
    return list(apply_where(collection_ref(db), 'date', '==', date_key).stream())


def latest_for_user(db, uid):
    query = apply_where(collection_ref(db), 'userId', '==', uid)
    docs = list(query.order_by('createdAt', direction=DESCENDING).limit(1).stream())
    return docs[0] if docs else None
