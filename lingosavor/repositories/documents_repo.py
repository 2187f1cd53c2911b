"""Firestore accessors for uploaded documents and their derived artifacts."""

DOCUMENTS_COLLECTION = 'user_documents'
SAVOR_RESULTS_COLLECTION = 'documents_savor_results'
USER_AUDIOS_COLLECTION = 'user_audios'


def doc_ref(db, document_id):
    return db.collection(DOCUMENTS_COLLECTION).document(document_id)


def get_doc(db, document_id):
    return doc_ref(db, document_id).get()


def update_doc(db, document_id, updates):
    return doc_ref(db, document_id).update(updates)


def set_savor_result(db, document_id, data):
    return db.collection(SAVOR_RESULTS_COLLECTION).document(document_id).set(data)


def add_user_audio(db, data):
    return db.collection(USER_AUDIOS_COLLECTION).add(data)
