import copy
import itertools
import logging
from datetime import datetime, timezone
from types import SimpleNamespace

import pytest
from google.api_core import exceptions as google_exceptions

from lingosavor.config import AppConfig
from lingosavor.errors import GenerationError
from lingosavor.extensions import ServiceContext
from lingosavor.services.generation import extract_json_payload
from lingosavor.services.storage_service import ObjectStore

FIXED_NOW = datetime(2026, 10, 19, 3, 0, tzinfo=timezone.utc)
_MISSING = object()


class _Sentinel:
    def __init__(self, name):
        self.name = name

    def __repr__(self):
        return f"<{self.name}>"


SERVER_TIMESTAMP = _Sentinel('SERVER_TIMESTAMP')
DELETE_FIELD = _Sentinel('DELETE_FIELD')


class Increment:
    def __init__(self, value):
        self.value = value


class FakeSnapshot:
    def __init__(self, reference, data):
        self.reference = reference
        self.id = reference.id
        self._data = data

    @property
    def exists(self):
        return self._data is not None

    def to_dict(self):
        return copy.deepcopy(self._data) if self._data is not None else None


class FakeDocumentRef:
    def __init__(self, db, collection_path, doc_id):
        self._db = db
        self._collection_path = collection_path
        self.id = doc_id

    @property
    def path(self):
        return f"{self._collection_path}/{self.id}"

    def __eq__(self, other):
        return isinstance(other, FakeDocumentRef) and other.path == self.path

    def __hash__(self):
        return hash(self.path)

    def get(self, transaction=None):
        failure = self._db.fail_gets.get(self.path) or self._db.fail_gets.get(self._collection_path)
        if failure is not None:
            raise failure
        return FakeSnapshot(self, self._db.docs(self._collection_path).get(self.id))

    def set(self, data, merge=False):
        self._db.apply_set(self, data, merge)

    def update(self, updates):
        self._db.apply_update(self, updates)

    def delete(self):
        self._db.apply_delete(self)

    def collection(self, name):
        return FakeCollection(self._db, f"{self.path}/{name}")


def _matches(data, field_path, op_string, value):
    actual = data.get(field_path, _MISSING)
    if actual is _MISSING:
        return False
    try:
        if op_string == '==':
            return actual == value
        if op_string == '!=':
            return actual != value
        if op_string == '>':
            return actual > value
        if op_string == '>=':
            return actual >= value
        if op_string == '<':
            return actual < value
        if op_string == '<=':
            return actual <= value
        if op_string == 'in':
            return actual in value
        if op_string == 'array_contains':
            return value in actual
    except TypeError:
        return False
    raise ValueError(f"Unsupported operator {op_string}")


class FakeQuery:
    def __init__(self, db, path, filters=(), orders=(), limit_count=None):
        self._db = db
        self._path = path
        self._filters = tuple(filters)
        self._orders = tuple(orders)
        self._limit = limit_count

    def where(self, *args, filter=None):
        if filter is not None:
            condition = (filter.field_path, filter.op_string, filter.value)
        else:
            condition = tuple(args)
        return FakeQuery(self._db, self._path, self._filters + (condition,), self._orders, self._limit)

    def order_by(self, field_path, direction='ASCENDING'):
        return FakeQuery(self._db, self._path, self._filters, self._orders + ((field_path, direction),), self._limit)

    def limit(self, count):
        return FakeQuery(self._db, self._path, self._filters, self._orders, count)

    def stream(self, transaction=None):
        failure = self._db.fail_streams.get(self._path)
        if failure is not None:
            raise failure
        rows = [
            (doc_id, data)
            for doc_id, data in list(self._db.docs(self._path).items())
            if all(_matches(data, *condition) for condition in self._filters)
        ]
        for field_path, direction in reversed(self._orders):
            rows = [row for row in rows if field_path in row[1]]
            rows.sort(key=lambda row: row[1][field_path], reverse=direction == 'DESCENDING')
        if self._limit is not None:
            rows = rows[:self._limit]
        return iter([FakeSnapshot(FakeDocumentRef(self._db, self._path, doc_id), data) for doc_id, data in rows])

    def get(self, transaction=None):
        return list(self.stream())


class FakeCollection(FakeQuery):
    def __init__(self, db, path):
        super().__init__(db, path)
        self.id = path.rsplit('/', 1)[-1]

    def document(self, doc_id=None):
        return FakeDocumentRef(self._db, self._path, doc_id or self._db.next_id())

    def add(self, data):
        ref = self.document()
        ref.set(data)
        return None, ref


class FakeBatch:
    def __init__(self, db):
        self._db = db
        self._operations = []

    def set(self, ref, data, merge=False):
        self._operations.append(('set', ref, data, merge))

    def update(self, ref, updates):
        self._operations.append(('update', ref, updates, False))

    def delete(self, ref):
        self._operations.append(('delete', ref, None, False))

    def commit(self):
        if self._db.fail_commits > 0:
            self._db.fail_commits -= 1
            raise google_exceptions.ServiceUnavailable('batch commit failed')
        for kind, ref, data, merge in self._operations:
            if kind == 'set':
                self._db.apply_set(ref, data, merge)
            elif kind == 'update':
                self._db.apply_update(ref, data)
            else:
                self._db.apply_delete(ref)
        self._db.commits += 1
        return []


class FakeTransaction(FakeBatch):
    """Writes apply immediately; enough for single-threaded transactional code."""

    def set(self, ref, data, merge=False):
        self._db.apply_set(ref, data, merge)

    def update(self, ref, updates):
        self._db.apply_update(ref, updates)

    def delete(self, ref):
        self._db.apply_delete(ref)


class FakeFirestore:
    def __init__(self, now=FIXED_NOW):
        self.now = now
        self._collections = {}
        self._ids = itertools.count(1)
        self.fail_streams = {}
        self.fail_gets = {}
        self.fail_commits = 0
        self.commits = 0

    def next_id(self):
        return f"auto-{next(self._ids)}"

    def docs(self, path):
        return self._collections.setdefault(path, {})

    def collection(self, name):
        return FakeCollection(self, name)

    def batch(self):
        return FakeBatch(self)

    def transaction(self):
        return FakeTransaction(self)

    def get_all(self, refs):
        for ref in refs:
            yield ref.get()

    def _resolve(self, current, updates):
        result = dict(current)
        for key, value in updates.items():
            if value is DELETE_FIELD:
                result.pop(key, None)
            elif isinstance(value, Increment):
                result[key] = (result.get(key) or 0) + value.value
            elif value is SERVER_TIMESTAMP:
                result[key] = self.now
            else:
                result[key] = copy.deepcopy(value)
        return result

    def apply_set(self, ref, data, merge):
        docs = self.docs(ref._collection_path)
        base = docs.get(ref.id, {}) if merge else {}
        docs[ref.id] = self._resolve(base, data)

    def apply_update(self, ref, updates):
        docs = self.docs(ref._collection_path)
        if ref.id not in docs:
            raise google_exceptions.NotFound(f"No document to update: {ref.path}")
        docs[ref.id] = self._resolve(docs[ref.id], updates)

    def apply_delete(self, ref):
        self.docs(ref._collection_path).pop(ref.id, None)

    # Test helpers

    def seed(self, path, doc_id, data):
        self.docs(path)[doc_id] = copy.deepcopy(data)
        return FakeDocumentRef(self, path, doc_id)

    def data(self, path, doc_id):
        value = self.docs(path).get(doc_id)
        return copy.deepcopy(value) if value is not None else None

    def all(self, path):
        return {doc_id: copy.deepcopy(data) for doc_id, data in self.docs(path).items()}


class FakeFirestoreModule:
    SERVER_TIMESTAMP = SERVER_TIMESTAMP
    DELETE_FIELD = DELETE_FIELD
    Increment = Increment

    @staticmethod
    def transactional(func):
        def _run(transaction, *args, **kwargs):
            return func(transaction, *args, **kwargs)

        return _run


class FakeAuth:
    def __init__(self):
        self.users = {}
        self.deleted = []
        self.fail_delete = False

    def add_user(self, uid, email='learner@example.com', display_name='Learner'):
        self.users[uid] = SimpleNamespace(uid=uid, email=email, display_name=display_name)

    def verify_id_token(self, token):
        if token.startswith('token-'):
            return {'uid': token[len('token-'):]}
        raise ValueError('invalid token')

    def get_user(self, uid):
        if uid not in self.users:
            raise LookupError(f"No user record for {uid}")
        return self.users[uid]

    def delete_user(self, uid):
        if self.fail_delete:
            raise RuntimeError('auth backend unavailable')
        self.deleted.append(uid)
        self.users.pop(uid, None)


class _Record:
    def __init__(self, **kwargs):
        self.__dict__.update(kwargs)


class FakeMessaging:
    Message = _Record
    Notification = _Record
    APNSConfig = _Record
    APNSPayload = _Record
    Aps = _Record
    ApsAlert = _Record
    AndroidConfig = _Record
    AndroidNotification = _Record

    def __init__(self):
        self.sent = []
        self.error = None

    def send(self, message):
        if self.error is not None:
            raise self.error
        self.sent.append(message)
        return f"projects/lingosavor/messages/{len(self.sent)}"


class FakeBlob:
    def __init__(self, bucket, name):
        self.bucket = bucket
        self.name = name
        self.size = None

    def exists(self):
        return self.name in self.bucket.objects

    def reload(self):
        self.size = len(self.bucket.objects[self.name][0])

    def download_as_bytes(self):
        if self.name not in self.bucket.objects:
            raise google_exceptions.NotFound(self.name)
        return self.bucket.objects[self.name][0]

    def download_to_filename(self, path):
        with open(path, 'wb') as handle:
            handle.write(self.download_as_bytes())

    def upload_from_string(self, data, content_type=None):
        self.bucket.objects[self.name] = (bytes(data), content_type)

    def upload_from_filename(self, path, content_type=None):
        with open(path, 'rb') as handle:
            self.bucket.objects[self.name] = (handle.read(), content_type)

    def make_public(self):
        self.bucket.public.add(self.name)

    def delete(self):
        if self.name in self.bucket.fail_delete:
            raise google_exceptions.Forbidden(self.name)
        self.bucket.objects.pop(self.name, None)


class FakeBucket:
    def __init__(self, name):
        self.name = name
        self.objects = {}
        self.public = set()
        self.fail_delete = set()

    def blob(self, name):
        return FakeBlob(self, name)


class FakeGeneration:
    """Scripted model: the first rule whose marker appears in the prompt answers it.

    A rule's reply may be a string, an exception to raise, or a callable
    taking the prompt.
    """

    def __init__(self):
        self.rules = []
        self.calls = []

    def on(self, marker, reply):
        self.rules.append((marker, reply))
        return self

    def generate_text(self, model, prompt, **kwargs):
        self.calls.append({'model': model, 'prompt': prompt, **kwargs})
        for marker, reply in self.rules:
            if marker in prompt:
                if isinstance(reply, Exception):
                    raise reply
                if callable(reply):
                    reply = reply(prompt)
                return reply
        raise GenerationError(f"{model} has no scripted reply")

    def generate_json(self, model, prompt, **kwargs):
        payload = extract_json_payload(self.generate_text(model, prompt, **kwargs))
        if payload is None:
            raise GenerationError(f"{model} returned no parseable JSON")
        return payload


class FakeSpeech:
    def __init__(self):
        self.calls = []
        self.error = None

    def synthesize(self, text, **kwargs):
        self.calls.append(text)
        if self.error is not None:
            raise self.error
        return b'ID3-fake-mp3'

    def synthesize_document_voice(self, text):
        return self.synthesize(text)


@pytest.fixture()
def db():
    return FakeFirestore()


@pytest.fixture()
def buckets():
    return {}


@pytest.fixture()
def app_config():
    return AppConfig(
        flask_secret_key='test-secret',
        runtime_env='test',
        storage_bucket='lingosavor-test',
        explanation_language='Japanese',
    )


@pytest.fixture()
def app_ctx(db, buckets, app_config):
    def bucket_factory(name):
        return buckets.setdefault(name, FakeBucket(name))

    return ServiceContext(
        db=db,
        config=app_config,
        auth_module=FakeAuth(),
        firestore_module=FakeFirestoreModule,
        messaging_module=FakeMessaging(),
        object_store=ObjectStore(bucket_factory, app_config.storage_bucket),
        generation=FakeGeneration(),
        speech=FakeSpeech(),
        logger=logging.getLogger('lingosavor.tests'),
        sleep=lambda _seconds: None,
        clock=lambda: FIXED_NOW,
    )


@pytest.fixture()
def bucket(app_ctx):
    return app_ctx.object_store.bucket()


@pytest.fixture(autouse=True)
def isolate_runtime_env(monkeypatch):
    for name in ('K_SERVICE', 'RENDER', 'SENTRY_DSN'):
        monkeypatch.delenv(name, raising=False)
    monkeypatch.setenv('FLASK_ENV', 'test')
