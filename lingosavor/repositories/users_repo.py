"""Firestore accessors for users collection."""

from .query_utils import apply_where

COLLECTION = 'users'


def doc_ref(db, uid):
    return db.collection(COLLECTION).document(uid)


def get_doc(db, uid):
    return doc_ref(db, uid).get()


def set_doc(db, uid, data, merge=False):
    return doc_ref(db, uid).set(data, merge=merge)


def update_doc(db, uid, updates):
    return doc_ref(db, uid).update(updates)


def delete_doc(db, uid):
    return doc_ref(db, uid).delete()


def list_all(db):
    return list(db.collection(COLLECTION).stream())


def list_by_plan(db, plan):
    return list(apply_where(db.collection(COLLECTION), 'plan', '==', plan).stream())


def list_with_ad_views_not(db, value):
    return list(apply_where(db.collection(COLLECTION), 'ad_views', '!=', value).stream())
