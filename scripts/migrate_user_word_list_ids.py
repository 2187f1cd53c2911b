#!/usr/bin/env python3
import argparse
from typing import Tuple

from firebase_admin import firestore

from lingosavor.config import load_config
from lingosavor.extensions import init_firebase
from lingosavor.repositories.learning_items_repo import WORDS_COLLECTION


def init_firestore():
    init_firebase(load_config())
    return firestore.client()


def list_id_as_array(value):
    if value == "":
        return []
    return [value]


def migrate_list_ids(db, apply_changes: bool) -> Tuple[int, int]:
    scanned = 0
    updated = 0
    for doc in db.collection(WORDS_COLLECTION).stream():
        scanned += 1
        data = doc.to_dict() or {}
        if not isinstance(data.get("list_id"), str):
            continue
        updated += 1
        if apply_changes:
            doc.reference.update({"list_id": list_id_as_array(data["list_id"])})
    return scanned, updated


def main():
    parser = argparse.ArgumentParser(description="Convert string user_words.list_id values to arrays.")
    parser.add_argument(
        "--apply",
        action="store_true",
        help="Apply changes. Without this flag, the script runs in dry-run mode.",
    )
    args = parser.parse_args()

    db = init_firestore()
    scanned, matched = migrate_list_ids(db, apply_changes=args.apply)
    mode = "APPLY" if args.apply else "DRY-RUN"
    print(f"[{mode}] scanned={scanned} user_words, string_list_ids={matched}")
    if not args.apply:
        print("No changes were written. Re-run with --apply to persist.")


if __name__ == "__main__":
    main()
