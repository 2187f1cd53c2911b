"""Shared Firestore query helpers.

Uses keyword-based filters to avoid positional-argument warnings in newer
Firestore SDK versions. Falls back to positional style for simple test doubles
that do not support keyword filters.
"""

from google.cloud.firestore_v1.base_query import FieldFilter

ASCENDING = 'ASCENDING'
DESCENDING = 'DESCENDING'

# Firestore rejects batches with more than 500 writes.
MAX_BATCH_WRITES = 500


def apply_where(query, field_path, op_string, value):
    try:
        return query.where(filter=FieldFilter(field_path, op_string, value))
    except TypeError:
        return query.where(field_path, op_string, value)


def chunked(items, size):
    items = list(items or [])
    size = max(1, int(size))
    for start in range(0, len(items), size):
        yield items[start:start + size]


def delete_refs_in_batches(db, refs, *, chunk_size=MAX_BATCH_WRITES):
    """Delete document references chunk by chunk and return how many were removed."""
    deleted = 0
    for chunk in chunked(refs, chunk_size):
        batch = db.batch()
        for ref in chunk:
            batch.delete(ref)
        batch.commit()
        deleted += len(chunk)
    return deleted
