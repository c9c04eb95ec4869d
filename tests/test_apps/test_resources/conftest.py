"""Shared fixtures for resources app tests."""

from collections.abc import Callable

import boto3
import pytest
from django.conf import settings
from moto import mock_aws

from server.apps.resources.infrastructure.paths import KeyMapper


def _bucket_name() -> str:
    return settings.STORAGES['default']['OPTIONS']['bucket_name']


@pytest.fixture
def mock_s3():
    """Mock S3 service with the configured bucket.

    Yields:
        boto3 S3 bucket resource.
    """
    with mock_aws():
        conn = boto3.resource('s3', region_name='us-east-1')
        bucket = conn.create_bucket(Bucket=_bucket_name())

        yield bucket


@pytest.fixture
def tenant_id() -> int:
    """ID of the tenant under test."""
    return 1


@pytest.fixture
def other_tenant_id() -> int:
    """Second tenant for isolation tests."""
    return 2


@pytest.fixture
def mapper(tenant_id) -> KeyMapper:
    """Key mapper of the tenant under test."""
    return KeyMapper(tenant_id)


@pytest.fixture
def seed(mock_s3, mapper) -> Callable[..., None]:
    """Store objects directly in the bucket, bypassing the code under test.

    Returns:
        Function taking virtual paths of the tenant under test. Paths
        ending with a slash become folder markers.
    """
    def _seed(*paths: str, content: bytes = b'content') -> None:
        for path in paths:
            body = b'' if path.endswith('/') else content
            mock_s3.put_object(Key=mapper.to_storage_key(path), Body=body)

    return _seed


@pytest.fixture
def stored_paths(mock_s3, mapper) -> Callable[[], list[str]]:
    """Read back every virtual path of the tenant under test.

    Returns:
        Function returning sorted virtual paths currently stored.
    """
    def _stored_paths() -> list[str]:
        return sorted(
            mapper.to_virtual_path(obj.key)
            for obj in mock_s3.objects.filter(Prefix=mapper.root_key)
        )

    return _stored_paths
