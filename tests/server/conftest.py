"""Fixtures for the object-store endpoint: moto-backed S3 and a test client."""

import os
from unittest.mock import patch

import boto3
import pytest
from moto import mock_aws
from starlette.testclient import TestClient

from lightnotes.server.app import create_app
from lightnotes.server.config import Settings
from lightnotes.server.storage import S3ObjectStore

TEST_BUCKET = "test-notes-bucket"
TEST_TOKEN = "endpoint-secret"


@pytest.fixture
def mock_env_vars():
    """Mock environment variables for testing."""
    with patch.dict(
        os.environ,
        {
            "AWS_ACCESS_KEY_ID": "test-key",
            "AWS_SECRET_ACCESS_KEY": "test-secret",
            "AWS_REGION": "us-east-1",
            "S3_BUCKET": TEST_BUCKET,
            "S3_PREFIX": "notes-test",
            "LIGHTNOTES_TOKEN": TEST_TOKEN,
            "LOG_LEVEL": "DEBUG",
        },
    ):
        yield


@pytest.fixture
def settings(mock_env_vars):
    return Settings()


@pytest.fixture
def mock_s3(settings):
    """Mock S3 with moto."""
    with mock_aws():
        s3 = boto3.client("s3", region_name="us-east-1")
        s3.create_bucket(Bucket=TEST_BUCKET)
        yield s3


@pytest.fixture
def storage(mock_s3, settings):
    return S3ObjectStore(settings)


@pytest.fixture
def app(settings, storage):
    return create_app(settings, storage)


@pytest.fixture
def api(app):
    return TestClient(app)


@pytest.fixture
def auth_headers():
    return {"Authorization": f"Bearer {TEST_TOKEN}"}
