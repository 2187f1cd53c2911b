"""Firestore accessors for the ``notifications`` delivery queue."""

COLLECTION = 'notifications'


def new_doc_ref(db):
    return db.collection(COLLECTION).document()


def doc_ref(db, notification_id):
    return db.collection(COLLECTION).document(notification_id)


def get_doc(db, notification_id):
    return doc_ref(db, notification_id).get()


def update_doc(db, notification_id, updates):
    return doc_ref(db, notification_id).update(updates)
