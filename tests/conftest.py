import os
import tempfile
from datetime import datetime, timedelta, timezone

# Configure before any bulk_importer module reads settings
os.environ.setdefault("DATABASE_URL", "sqlite+pysqlite:///:memory:")
os.environ.setdefault("UPLOADS_DIR", tempfile.mkdtemp(prefix="bulk-importer-uploads-"))

import httpx
import pytest
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from bulk_importer.db.base import Base
from bulk_importer.db.session import create_db_engine
from bulk_importer.services.csv_ingest import CsvIngestor
from bulk_importer.services.job_ledger import JobLedger

TENANT = "tenant-a"
OTHER_TENANT = "tenant-b"


class FakeClock:
    """Callable clock that only moves when told to."""

    def __init__(self, start: datetime | None = None):
        self.now = start or datetime(2024, 1, 1, 12, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += timedelta(seconds=seconds)


@pytest.fixture
def engine():
    engine = create_db_engine(
        "sqlite+pysqlite://",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    Base.metadata.create_all(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(bind=engine, autoflush=False, autocommit=False)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def ledger(session_factory, clock):
    return JobLedger(session_factory, clock=clock)


@pytest.fixture
def blob_files():
    """URL -> CSV text served by the mock blob host; missing URLs return 404."""
    return {}


@pytest.fixture
def ingestor(blob_files):
    def handler(request: httpx.Request) -> httpx.Response:
        body = blob_files.get(str(request.url))
        if body is None:
            return httpx.Response(404)
        return httpx.Response(200, content=body.encode("utf-8"))

    client = httpx.Client(transport=httpx.MockTransport(handler))
    yield CsvIngestor(client=client)
    client.close()


@pytest.fixture
def make_job(ledger, blob_files):
    """Create a pending job whose blob serves ``csv_text``."""

    def _make(csv_text=None, *, import_type="products", tenant_id=TENANT, url=None):
        url = url or f"https://blobs.test/{import_type}/{len(blob_files)}.csv"
        if csv_text is not None:
            blob_files[url] = csv_text
        return ledger.create(
            tenant_id=tenant_id,
            import_type=import_type,
            file_name="upload.csv",
            blob_url=url,
            created_by="admin@example.com",
        )

    return _make
