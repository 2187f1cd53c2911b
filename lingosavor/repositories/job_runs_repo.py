"""Firestore accessors for scheduled job run leases."""

COLLECTION = 'job_runs'


def doc_ref(db, job_name):
    return db.collection(COLLECTION).document(job_name)


def get_doc(db, job_name):
    return doc_ref(db, job_name).get()


def set_doc(db, job_name, payload, merge=False):
    return doc_ref(db, job_name).set(payload, merge=merge)
