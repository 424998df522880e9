import os
import struct
import zlib

# Must be set before db/main are imported so the app never reaches for a hosted DB
os.environ.setdefault("TEST_SQLITE", "1")
os.environ["LOG_FILE"] = ""

from io import BytesIO

import pytest
from fastapi.testclient import TestClient
from PIL import Image
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from app.models import Base
from app.services.content_store import ContentStore
from app.services.error_sink import ErrorSink
from app.services.image_variants import ImageFile, ImageVariantPipeline
from app.services.object_store import LocalObjectStore, ObjectStoreError


@pytest.fixture
def engine():
    """Fresh in-memory SQLite database per test with the full schema created."""
    eng = create_engine(
        "sqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=eng)
    try:
        yield eng
    finally:
        eng.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture
def db_session(session_factory):
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def store(db_session):
    return ContentStore(db_session)


@pytest.fixture
def errors(store):
    return ErrorSink(store)


@pytest.fixture
def event(store):
    return store.create_event(
        "Annual Health Camp 2024", "annual-health-camp-2024", Status="published"
    )


class FlakyObjectStore(LocalObjectStore):
    """Local store that records every call and fails on chosen size folders."""

    def __init__(self, base_dir, public_base_url, fail_puts=(), fail_deletes=False):
        super().__init__(base_dir, public_base_url)
        self.fail_puts = tuple(fail_puts)
        self.fail_deletes = fail_deletes
        self.puts = []
        self.deletes = []

    def put(self, key, data, content_type="application/octet-stream", metadata=None):
        self.puts.append(key)
        if any(f"/{folder}/" in key for folder in self.fail_puts):
            raise ObjectStoreError("put", key, TimeoutError("timed out"))
        return super().put(key, data, content_type, metadata)

    def delete(self, key):
        self.deletes.append(key)
        if self.fail_deletes:
            raise ObjectStoreError("delete", key, ConnectionError("storage unreachable"))
        return super().delete(key)

    def stored_keys(self):
        found = []
        for root, _dirs, files in os.walk(self.base_dir):
            for name in files:
                found.append(os.path.relpath(os.path.join(root, name), self.base_dir))
        return sorted(p.replace(os.sep, "/") for p in found)


@pytest.fixture
def make_objects(tmp_path):
    def _make(**kwargs):
        return FlakyObjectStore(
            str(tmp_path / "storage"), "http://testserver/storage", **kwargs
        )

    return _make


@pytest.fixture
def objects(make_objects):
    return make_objects()


@pytest.fixture
def pipeline(store, objects, errors):
    return ImageVariantPipeline(store, objects, errors)


@pytest.fixture
def make_image():
    """Build an ImageFile holding a real encoded image of the given size."""

    def _make(width=800, height=600, fmt="JPEG", mode="RGB", name=None, content_type=None):
        color = (200, 40, 40, 128) if mode == "RGBA" else (200, 40, 40)
        buf = BytesIO()
        Image.new(mode, (width, height), color).save(buf, format=fmt)
        ext = fmt.lower().replace("jpeg", "jpg")
        return ImageFile(
            file_name=name or f"photo.{ext}",
            content_type=content_type or f"image/{fmt.lower()}",
            data=buf.getvalue(),
        )

    return _make


def _png_chunk(ctype, body):
    crc = zlib.crc32(ctype + body) & 0xFFFFFFFF
    return struct.pack(">I", len(body)) + ctype + body + struct.pack(">I", crc)


@pytest.fixture
def corrupt_png():
    """A PNG whose first IDAT is split, the second half under an illegal chunk type."""
    buf = BytesIO()
    Image.effect_noise((400, 300), 64).convert("RGB").save(buf, format="PNG")
    data = buf.getvalue()
    out, pos, split = [data[:8]], 8, False
    while pos < len(data):
        (length,) = struct.unpack(">I", data[pos : pos + 4])
        ctype = data[pos + 4 : pos + 8]
        body = data[pos + 8 : pos + 8 + length]
        pos += 12 + length
        if ctype == b"IDAT" and not split:
            half = len(body) // 2
            out.append(_png_chunk(b"IDAT", body[:half]))
            out.append(_png_chunk(b"\x00\x01!!", body[half:]))
            split = True
        else:
            out.append(_png_chunk(ctype, body))
    return ImageFile("scan.png", "image/png", b"".join(out))


@pytest.fixture
def client(session_factory, objects):
    # Import the app here so TEST_SQLITE is set before db.py builds its engine
    from db import get_db
    from main import app

    def _get_test_db():
        db = session_factory()
        try:
            yield db
        finally:
            db.close()

    previous = app.state.object_store
    app.dependency_overrides[get_db] = _get_test_db
    app.state.object_store = objects
    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.clear()
        app.state.object_store = previous
