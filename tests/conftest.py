"""
tests/conftest.py — in-memory stand-ins for PostgreSQL, S3 and the archive web host.

  store   : FakeStore, patched over every function of s3_archive.db
  s3      : FakeS3, returned by s3_archive.storage._client()
  archive : builds a real ByteTransport / StreamingCopier / ArchiveMigrator
            wired to the fakes; archive links are served by httpx.MockTransport
            straight out of the FakeS3 bucket.
"""
import io
from dataclasses import replace
from pathlib import Path
from types import SimpleNamespace
from unittest.mock import patch

import httpx
import pytest
from botocore.exceptions import ClientError

from s3_archive.copier import StreamingCopier
from s3_archive.errors import NotArchived
from s3_archive.migrator import ArchiveMigrator
from s3_archive.models import ORIGINAL_FILE_USE, Node
from s3_archive.transport import ByteTransport

BUCKET   = "archive-bucket"
BASE_URL = "https://archive.example.org/objects"

COLLECTION = "http://purl.org/dc/dcmitype/Collection"
BOOK       = "https://schema.org/Book"
IMAGE      = "http://purl.org/coar/resource_type/c_c513"
DERIVATIVE = "http://pcdm.org/use#ServiceFile"


# ─── Record store ─────────────────────────────────────────────────────────────

class FakeStore:
    """Dict-backed implementation of the s3_archive.db functions."""

    FUNCTIONS = (
        "fetch_child_containers", "fetch_members", "fetch_candidates",
        "load_node", "save_node", "delete_file", "delete_media",
        "create_recovered_asset", "get_setting", "set_setting", "archive_counts",
    )

    def __init__(self) -> None:
        self.nodes = {}
        self.media = {}
        self.files = {}
        self.settings = {}
        self.fail = {}          # function name → exception to raise
        self.calls = []
        self._next_id = 1000

    # ── fixtures helpers ──────────────────────────────────────────────────────

    def add_node(self, node_id, model=None, member_of=None, title=None):
        self.nodes[node_id] = Node(
            id=node_id, title=title or f"Node {node_id}", model=model, member_of=member_of
        )

    def add_media(self, media_id, node_id, uri, use=ORIGINAL_FILE_USE, file_id=None):
        file_id = file_id or media_id + 500
        self.files[file_id] = {"id": file_id, "filename": Path(uri).name, "uri": uri}
        self.media[media_id] = {
            "id": media_id, "name": f"Media {media_id}", "media_of": node_id,
            "media_use": use, "file_id": file_id,
        }
        return file_id

    def _enter(self, name):
        self.calls.append(name)
        if name in self.fail:
            raise self.fail[name]

    # ── db functions ──────────────────────────────────────────────────────────

    async def fetch_child_containers(self, pool, parents, models):
        self._enter("fetch_child_containers")
        parents, models = set(parents), set(models)
        return sorted(
            n.id for n in self.nodes.values() if n.member_of in parents and n.model in models
        )

    async def fetch_members(self, pool, parents):
        self._enter("fetch_members")
        parents = set(parents)
        return sorted(n.id for n in self.nodes.values() if n.member_of in parents)

    async def fetch_candidates(self, pool, node_ids, media_use):
        self._enter("fetch_candidates")
        scope = None if node_ids is None else set(node_ids)
        rows = []
        for m in sorted(self.media.values(), key=lambda m: (m["media_of"], m["id"])):
            if m["media_use"] != media_use or m["file_id"] not in self.files:
                continue
            if scope is not None and m["media_of"] not in scope:
                continue
            rows.append({
                "node_id": m["media_of"],
                "media_id": m["id"],
                "file_id": m["file_id"],
                "uri": self.files[m["file_id"]]["uri"],
            })
        return rows

    async def load_node(self, pool, node_id):
        self._enter("load_node")
        return self.nodes.get(node_id)

    async def save_node(self, pool, node):
        self._enter("save_node")
        if node.id not in self.nodes:
            raise LookupError(f"node {node.id} does not exist")
        self.nodes[node.id] = node

    async def delete_file(self, pool, file_id):
        self._enter("delete_file")
        return self.files.pop(file_id, None) is not None

    async def delete_media(self, pool, media_id):
        self._enter("delete_media")
        return self.media.pop(media_id, None) is not None

    async def create_recovered_asset(self, pool, *, node_id, uri, filename, filemime,
                                     filesize, media_name, media_use):
        self._enter("create_recovered_asset")
        node = self.nodes.get(node_id)
        if node is None or not node.archive_link:
            raise NotArchived(node_id, f"node {node_id} is no longer archived")
        self._next_id += 1
        file_id = self._next_id
        self._next_id += 1
        media_id = self._next_id
        self.files[file_id] = {
            "id": file_id, "filename": filename, "uri": uri,
            "filemime": filemime, "filesize": filesize,
        }
        self.media[media_id] = {
            "id": media_id, "name": media_name, "media_of": node_id,
            "media_use": media_use, "file_id": file_id, "file_title": filename,
            "mime_type": filemime,
        }
        self.nodes[node_id] = replace(self.nodes[node_id], archive_link=None, archive_filename=None)
        return media_id

    async def get_setting(self, pool, name):
        self._enter("get_setting")
        return self.settings.get(name)

    async def set_setting(self, pool, name, value):
        self._enter("set_setting")
        self.settings[name] = value

    async def archive_counts(self, pool, media_use):
        self._enter("archive_counts")
        return {
            "total_nodes": len(self.nodes),
            "archived_nodes": sum(1 for n in self.nodes.values() if n.archive_link),
            "pending_originals": sum(1 for m in self.media.values() if m["media_use"] == media_use),
        }


@pytest.fixture
def store():
    fake = FakeStore()
    with patch.multiple("s3_archive.db", **{name: getattr(fake, name) for name in FakeStore.FUNCTIONS}):
        yield fake


# ─── S3 ───────────────────────────────────────────────────────────────────────

def _client_error(code: str, op: str) -> ClientError:
    return ClientError({"Error": {"Code": code, "Message": code}}, op)


class FakeS3:
    """The handful of boto3 S3 client calls s3_archive.storage makes."""

    def __init__(self) -> None:
        self.objects = {}
        self.fail_upload = None

    def head_object(self, Bucket, Key):
        if (Bucket, Key) not in self.objects:
            raise _client_error("404", "HeadObject")
        return {"ContentLength": len(self.objects[(Bucket, Key)])}

    def put_object(self, Bucket, Key, Body):
        self.objects[(Bucket, Key)] = bytes(Body)

    def upload_file(self, Filename, Bucket, Key):
        if self.fail_upload:
            raise self.fail_upload
        self.objects[(Bucket, Key)] = Path(Filename).read_bytes()

    def get_object(self, Bucket, Key):
        if (Bucket, Key) not in self.objects:
            raise _client_error("NoSuchKey", "GetObject")
        return {"Body": io.BytesIO(self.objects[(Bucket, Key)])}

    def delete_object(self, Bucket, Key):
        self.objects.pop((Bucket, Key), None)

    def keys(self):
        return sorted(k for (b, k) in self.objects if b == BUCKET and not k.endswith("/"))


@pytest.fixture
def s3():
    fake = FakeS3()
    with patch("s3_archive.storage._client", return_value=fake):
        yield fake


# ─── Wiring ───────────────────────────────────────────────────────────────────

def serve_bucket(s3: FakeS3):
    """httpx handler exposing the fake bucket under BASE_URL."""
    def handler(request: httpx.Request) -> httpx.Response:
        url = str(request.url)
        prefix = BASE_URL + "/"
        if request.method == "GET" and url.startswith(prefix):
            data = s3.objects.get((BUCKET, url[len(prefix):]))
            if data is not None:
                return httpx.Response(200, content=data)
        return httpx.Response(404)
    return handler


@pytest.fixture
def archive(tmp_path, store, s3):
    """
    Everything needed to run real migrations against the fakes.

    Origin files live under tmp_path/files and are addressed as public://….
    """
    public_root = tmp_path / "files"
    staging_dir = tmp_path / "staging"
    client = httpx.AsyncClient(transport=httpx.MockTransport(serve_bucket(s3)))
    transport = ByteTransport(public_root=public_root, bucket=BUCKET, client=client, retry_delay=0)
    copier = StreamingCopier(transport, bucket=BUCKET, staging_dir=staging_dir)

    def make_migrator(**kwargs):
        kwargs.setdefault("archive_base_url", BASE_URL)
        return ArchiveMigrator(None, copier, transport, **kwargs)

    def origin(rel: str, data: bytes) -> str:
        path = public_root / rel
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_bytes(data)
        return f"public://{rel}"

    return SimpleNamespace(
        store=store,
        s3=s3,
        transport=transport,
        copier=copier,
        public_root=public_root,
        staging_dir=staging_dir,
        make_migrator=make_migrator,
        origin=origin,
    )
