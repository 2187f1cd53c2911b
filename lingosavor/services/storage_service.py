"""Object storage access for uploaded media and generated audio."""

import logging

GS_SCHEME = 'gs://'


def parse_gs_uri(uri):
    """Split ``gs://bucket/path/to/object`` into ``(bucket, path)``."""
    raw = str(uri or '').strip()
    if not raw.startswith(GS_SCHEME):
        raise ValueError(f"Not a gs:// URI: {uri}")
    parts = raw[len(GS_SCHEME):].split('/')
    bucket_name = parts[0]
    object_path = '/'.join(parts[1:])
    if not bucket_name or not object_path:
        raise ValueError(f"Incomplete gs:// URI: {uri}")
    return bucket_name, object_path


class ObjectStore:
    """Thin wrapper over firebase_admin storage buckets.

    Locations may be a ``gs://`` URI or a bare object path in the default bucket.
    """

    def __init__(self, bucket_factory, default_bucket, *, logger=None):
        self._bucket_factory = bucket_factory
        self.default_bucket = default_bucket
        self.logger = logger or logging.getLogger(__name__)
        self._buckets = {}

    def bucket(self, name=None):
        name = name or self.default_bucket
        if name not in self._buckets:
            self._buckets[name] = self._bucket_factory(name)
        return self._buckets[name]

    def resolve(self, location):
        raw = str(location or '').strip()
        if raw.startswith(GS_SCHEME):
            return parse_gs_uri(raw)
        return self.default_bucket, raw.lstrip('/')

    def blob(self, location):
        bucket_name, object_path = self.resolve(location)
        return self.bucket(bucket_name).blob(object_path)

    def exists(self, location):
        return bool(self.blob(location).exists())

    def size(self, location):
        blob = self.blob(location)
        blob.reload()
        return int(blob.size or 0)

    def download_bytes(self, location):
        return self.blob(location).download_as_bytes()

    def download_to_file(self, location, local_path):
        self.blob(location).download_to_filename(local_path)
        return local_path

    def upload_bytes(self, object_path, data, content_type):
        blob = self.bucket().blob(object_path)
        blob.upload_from_string(data, content_type=content_type)
        return blob

    def upload_file(self, object_path, local_path, content_type):
        blob = self.bucket().blob(object_path)
        blob.upload_from_filename(local_path, content_type=content_type)
        return blob

    def make_public(self, object_path):
        self.bucket().blob(object_path).make_public()

    def public_url(self, object_path):
        return f"https://storage.googleapis.com/{self.bucket().name}/{object_path}"

    def gs_uri(self, object_path):
        return f"{GS_SCHEME}{self.bucket().name}/{object_path}"

    def delete(self, location):
        self.blob(location).delete()
