"""Firestore accessors for RevenueCat subscription mirrors and published word lists."""

SUBSCRIPTIONS_COLLECTION = 'subscriptions'
PUBLISHED_WORDLISTS_COLLECTION = 'published_wordlists'


def list_subscriptions(db):
    return list(db.collection(SUBSCRIPTIONS_COLLECTION).stream())


def get_subscription(db, uid):
    return db.collection(SUBSCRIPTIONS_COLLECTION).document(uid).get()


def get_published_wordlist(db, wordlist_id):
    return db.collection(PUBLISHED_WORDLISTS_COLLECTION).document(wordlist_id).get()


def published_word_refs(db, wordlist_id, word_doc_ids):
    words = db.collection(PUBLISHED_WORDLISTS_COLLECTION).document(wordlist_id).collection('words')
    return [words.document(doc_id) for doc_id in word_doc_ids]
