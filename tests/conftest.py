"""
Pytest configuration and fixtures for elib Backend tests.
"""

import os
import shutil
import tempfile
from pathlib import Path

import boto3
import pytest
from fastapi.testclient import TestClient
from moto import mock_aws

# Set test environment variables before importing the app
_DATA_DIR = tempfile.mkdtemp(prefix="elib_test_data_")
os.environ["ELIB_ADMIN_KEY"] = "test-master-key-12345"
os.environ["ELIB_DB_PATH"] = os.path.join(_DATA_DIR, "books.db")
os.environ["ELIB_KEYS_DB_PATH"] = os.path.join(_DATA_DIR, "keys.db")
os.environ["UPLOAD_DIR"] = os.path.join(_DATA_DIR, "uploads")
os.environ["S3_BUCKET_NAME"] = "elib-test"
os.environ["AWS_ACCESS_KEY_ID"] = "testing"
os.environ["AWS_SECRET_ACCESS_KEY"] = "testing"
os.environ["AWS_DEFAULT_REGION"] = "us-east-1"

from elib_backend.asset_store import AssetStore
from elib_backend.coordinator import BookAssetCoordinator
from elib_backend.database import BookDatabase
from elib_backend.key_manager import KeyManager
from elib_backend.main import app, get_coordinator, get_key_manager, get_staging_area
from elib_backend.staging import StagingArea

BUCKET = "elib-test"

# PNG signature followed by filler; the store never decodes it
PNG_BYTES = b"\x89PNG\r\n\x1a\n" + b"\x00" * 64

PDF_BYTES = b"""%PDF-1.4
1 0 obj
<< /Type /Catalog /Pages 2 0 R >>
endobj
trailer
<< /Size 2 /Root 1 0 R >>
%%EOF"""


def pytest_sessionfinish(session, exitstatus):
    shutil.rmtree(_DATA_DIR, ignore_errors=True)


@pytest.fixture
def s3_client():
    """Mocked S3 client with the test bucket created."""
    with mock_aws():
        client = boto3.client("s3", region_name="us-east-1")
        client.create_bucket(Bucket=BUCKET)
        yield client


@pytest.fixture
def asset_store(s3_client):
    return AssetStore(s3_client, bucket=BUCKET, public_base_url="https://assets.example.com")


@pytest.fixture
def database(tmp_path):
    return BookDatabase(tmp_path / "books.db")


@pytest.fixture
def coordinator(asset_store, database):
    return BookAssetCoordinator(asset_store, database)


@pytest.fixture
def upload_dir(tmp_path):
    path = tmp_path / "uploads"
    path.mkdir()
    return path


@pytest.fixture
def staging_area(upload_dir):
    return StagingArea(upload_dir)


@pytest.fixture
def key_manager(tmp_path):
    return KeyManager(str(tmp_path / "keys.db"))


@pytest.fixture
def client(coordinator, staging_area, key_manager):
    """Test client wired to the mocked store and per-test databases."""
    app.dependency_overrides[get_coordinator] = lambda: coordinator
    app.dependency_overrides[get_staging_area] = lambda: staging_area
    app.dependency_overrides[get_key_manager] = lambda: key_manager
    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.clear()


@pytest.fixture
def master_key():
    """Return the admin API key."""
    return "test-master-key-12345"


@pytest.fixture
def alice_headers(key_manager):
    raw_key, _ = key_manager.create_key("alice")
    return {"X-API-Key": raw_key}


@pytest.fixture
def bob_headers(key_manager):
    raw_key, _ = key_manager.create_key("bob")
    return {"X-API-Key": raw_key}


@pytest.fixture
def book_files():
    """Multipart parts for a complete create request."""
    return {
        "coverImage": ("cover.png", PNG_BYTES, "image/png"),
        "file": ("book.pdf", PDF_BYTES, "application/pdf"),
    }


def write_staged(directory: Path, name: str, content: bytes) -> Path:
    path = directory / name
    path.write_bytes(content)
    return path


def stored_keys(s3_client):
    response = s3_client.list_objects_v2(Bucket=BUCKET)
    return sorted(item["Key"] for item in response.get("Contents", []))
