"""Integration tests for NamespaceStorage against MinIO.

These tests verify that MinIO is properly configured and accessible
when running in Docker Compose, and that it answers the namespace
calls the same way the mocked S3 does. Run with ``-m integration``.
"""
import os
import uuid
from collections.abc import Iterator
from typing import Final

import boto3
import pytest
from botocore.exceptions import ClientError
from django.core.files.base import ContentFile

from server.apps.resources.infrastructure.storage import NamespaceStorage

_TEST_BUCKET: Final = 'cloud-storage-integration'
_TEST_FILE_CONTENT: Final = b'Hello from MinIO integration test!'


@pytest.fixture
def storage() -> NamespaceStorage:
    """Create NamespaceStorage pointing at MinIO.

    Returns:
        Storage backend with the test bucket created.
    """
    options = {
        'endpoint_url': os.getenv('MINIO_ENDPOINT', 'http://minio:9000'),
        'access_key': os.getenv('MINIO_ROOT_USER', 'minioadmin'),
        'secret_key': os.getenv('MINIO_ROOT_PASSWORD', 'minioadmin'),
        'region_name': 'us-east-1',
    }
    client = boto3.client(
        's3',
        endpoint_url=options['endpoint_url'],
        aws_access_key_id=options['access_key'],
        aws_secret_access_key=options['secret_key'],
        region_name=options['region_name'],
    )
    try:
        client.head_bucket(Bucket=_TEST_BUCKET)
    except ClientError:
        client.create_bucket(Bucket=_TEST_BUCKET)

    return NamespaceStorage(bucket_name=_TEST_BUCKET, **options)


@pytest.fixture
def prefix(storage: NamespaceStorage) -> Iterator[str]:
    """Unique key prefix, removed after the test.

    Yields:
        Folder key ending with a slash.
    """
    folder_key = f'user-{uuid.uuid4().int % 10**6}-files/'
    yield folder_key
    for listed in storage.list_objects(folder_key, recursive=True):
        storage.remove_object(listed.key)


@pytest.mark.integration
def test_stat_missing_object(storage: NamespaceStorage, prefix: str) -> None:
    """Test that MinIO reports absence the way stat_object expects."""
    assert storage.stat_object(f'{prefix}missing.txt') is None


@pytest.mark.integration
def test_put_and_open_object(storage: NamespaceStorage, prefix: str) -> None:
    """Test uploading and streaming an object back.

    Args:
        storage: Storage backend.
        prefix: Tenant prefix for this test.
    """
    key = f'{prefix}hello.txt'
    storage.put_object(
        key,
        ContentFile(_TEST_FILE_CONTENT),
        len(_TEST_FILE_CONTENT),
    )

    object_stat = storage.stat_object(key)
    body = storage.open_object(key)

    assert object_stat is not None
    assert object_stat.size == len(_TEST_FILE_CONTENT)
    assert object_stat.content_type == 'text/plain'
    assert body.read() == _TEST_FILE_CONTENT
    body.close()


@pytest.mark.integration
def test_shallow_listing_groups_prefixes(
    storage: NamespaceStorage,
    prefix: str,
) -> None:
    """Test that MinIO groups sub-folders with the delimiter.

    Args:
        storage: Storage backend.
        prefix: Tenant prefix for this test.
    """
    storage.put_folder_marker(f'{prefix}docs/')
    storage.put_object(f'{prefix}docs/a.txt', ContentFile(b'a'), 1)
    storage.put_object(f'{prefix}docs/sub/b.txt', ContentFile(b'b'), 1)

    listed = list(storage.list_objects(f'{prefix}docs/'))

    assert [entry.key for entry in listed] == [
        f'{prefix}docs/',
        f'{prefix}docs/a.txt',
        f'{prefix}docs/sub/',
    ]


@pytest.mark.integration
def test_copy_and_remove(storage: NamespaceStorage, prefix: str) -> None:
    """Test server-side copy followed by delete.

    Args:
        storage: Storage backend.
        prefix: Tenant prefix for this test.
    """
    storage.put_object(f'{prefix}a.txt', ContentFile(b'a'), 1)

    storage.copy_object(f'{prefix}a.txt', f'{prefix}b.txt')
    storage.remove_object(f'{prefix}a.txt')

    assert not storage.is_occupied(f'{prefix}a.txt')
    assert storage.is_occupied(f'{prefix}b.txt')
