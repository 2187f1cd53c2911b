"""Firestore leases that keep two instances of a scheduled job from overlapping."""

import socket
import uuid
from datetime import timedelta

from lingosavor.repositories import job_runs_repo
from lingosavor.services.retention import coerce_datetime


def lease_owner():
    return f"{socket.gethostname()}:{uuid.uuid4().hex[:8]}"


def acquire_lease(job_name, *, db, firestore_module, now, ttl_seconds, owner):
    """Return True when the caller now holds the lease for ``job_name``."""
    ref = job_runs_repo.doc_ref(db, job_name)
    transaction = db.transaction()

    @firestore_module.transactional
    def _txn(txn):
        snapshot = ref.get(transaction=txn)
        data = snapshot.to_dict() if snapshot.exists else {}
        data = data or {}
        expires_at = coerce_datetime(data.get('lease_expires_at'))
        if data.get('status') == 'running' and expires_at is not None and expires_at > now:
            return False
        txn.set(ref, {
            'status': 'running',
            'owner': owner,
            'started_at': now,
            'lease_expires_at': now + timedelta(seconds=ttl_seconds),
        }, merge=True)
        return True

    return _txn(transaction)


def release_lease(job_name, *, db, owner, finished_at, status, summary=None):
    snapshot = job_runs_repo.get_doc(db, job_name)
    data = (snapshot.to_dict() or {}) if snapshot.exists else {}
    if data.get('owner') not in (None, owner):
        return False
    job_runs_repo.set_doc(db, job_name, {
        'status': status,
        'owner': owner,
        'finished_at': finished_at,
        'lease_expires_at': finished_at,
        'summary': summary or {},
    }, merge=True)
    return True
