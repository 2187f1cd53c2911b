"""Firestore accessors for the shared ``dictionary`` collection."""

from .query_utils import apply_where

COLLECTION = 'dictionary'


def doc_ref(db, entry_id):
    return db.collection(COLLECTION).document(entry_id)


def get_doc(db, entry_id):
    return doc_ref(db, entry_id).get()


def find_by_word(db, word):
    docs = list(apply_where(db.collection(COLLECTION), 'word', '==', word).limit(1).stream())
    return docs[0] if docs else None


def add_doc(db, data):
    return db.collection(COLLECTION).add(data)
