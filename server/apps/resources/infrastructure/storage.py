"""Namespace storage backend for S3-compatible storage.

S3 has no directories, only keys. Folders are represented by
zero-length marker objects whose key ends with a slash.
"""

import logging
from collections.abc import Iterable, Iterator
from typing import Any, BinaryIO, Final, final

from boto3.exceptions import Boto3Error
from botocore.exceptions import BotoCoreError, ClientError
from storages.backends.s3 import S3Storage

from server.apps.resources.dto import ListedObject, ObjectStat
from server.apps.resources.exceptions import (
    ResourceNotFoundError,
    StoreFailureError,
)
from server.apps.resources.infrastructure.metadata import (
    DEFAULT_CONTENT_TYPE,
    detect_mime_type,
)
from server.apps.resources.infrastructure.paths import PATH_SEPARATOR

logger = logging.getLogger(__name__)

# Error codes S3 and MinIO use for a missing object
_NOT_FOUND_CODES: Final = frozenset(('404', 'NoSuchKey', 'NotFound'))

_StoreErrors: Final = (Boto3Error, BotoCoreError, ClientError)


def _is_not_found(error: Exception) -> bool:
    if not isinstance(error, ClientError):
        return False
    return error.response.get('Error', {}).get('Code') in _NOT_FOUND_CODES


def _to_listed_objects(page: dict[str, Any]) -> list[ListedObject]:
    """Merge objects and grouped prefixes of one listing page by key."""
    entries = [
        ListedObject(
            key=raw['Key'],
            size=raw['Size'],
            is_dir=raw['Key'].endswith(PATH_SEPARATOR),
            last_modified=raw.get('LastModified'),
        )
        for raw in page.get('Contents', [])
    ]
    entries.extend(
        ListedObject(key=raw['Prefix'], size=None, is_dir=True)
        for raw in page.get('CommonPrefixes', [])
    )
    entries.sort(key=lambda entry: entry.key)
    return entries


@final
class NamespaceStorage(S3Storage):
    """S3 storage backend with a uniform key namespace API.

    Extends django-storages S3Storage with:
    - Stat that tells "absent" apart from a real failure
    - Prefix listing, shallow or recursive
    - Folder marker maintenance
    - Server-side copy

    Every backend error is logged and re-raised as StoreFailureError.
    """

    @property
    def client(self) -> Any:
        """Get the low-level boto3 client of the current thread."""
        return self.connection.meta.client

    def stat_object(self, key: str) -> ObjectStat | None:
        """Get object metadata.

        Args:
            key: Storage key.

        Returns:
            ObjectStat, or None if nothing is stored at the key.

        Raises:
            StoreFailureError: If S3 request fails for another reason.
        """
        try:
            response = self.client.head_object(
                Bucket=self.bucket_name,
                Key=key,
            )
        except _StoreErrors as error:
            if _is_not_found(error):
                logger.debug('Object not found: %s', key)
                return None
            logger.exception('Failed to stat object: %s', key)
            raise StoreFailureError('stat', key) from error

        return ObjectStat(
            key=key,
            size=response['ContentLength'],
            content_type=response.get('ContentType', DEFAULT_CONTENT_TYPE),
        )

    def is_occupied(self, key: str) -> bool:
        """Check if an object is stored at exactly this key."""
        return self.stat_object(key) is not None

    def has_naming_conflict(self, folder_key: str) -> bool:
        """Check if a plain file already uses a folder's name.

        Args:
            folder_key: Folder key ending with a slash.

        Returns:
            True if a file is stored at the key without its trailing slash.
        """
        return self.is_occupied(folder_key.removesuffix(PATH_SEPARATOR))

    def has_folder_named(self, file_key: str) -> bool:
        """Check if a folder already uses a file's name.

        A folder counts if its marker or anything below it is stored.

        Args:
            file_key: File key without a trailing slash.

        Returns:
            True if any key starts with the file key plus a slash.
        """
        folder_key = f'{file_key}{PATH_SEPARATOR}'
        return any(True for _ in self.list_objects(folder_key))

    def open_object(self, key: str) -> Any:
        """Open object content for streaming.

        Args:
            key: Storage key.

        Returns:
            Streaming body (file-like, must be closed by the caller).

        Raises:
            ResourceNotFoundError: If the object does not exist.
            StoreFailureError: If S3 request fails.
        """
        try:
            response = self.client.get_object(
                Bucket=self.bucket_name,
                Key=key,
            )
        except _StoreErrors as error:
            if _is_not_found(error):
                raise ResourceNotFoundError(key) from error
            logger.exception('Failed to open object: %s', key)
            raise StoreFailureError('get', key) from error
        return response['Body']

    def put_object(self, key: str, content: BinaryIO, size: int) -> None:
        """Upload object content.

        Args:
            key: Storage key.
            content: File-like object to upload.
            size: Content size in bytes (used for logging only).

        Raises:
            StoreFailureError: If S3 upload fails.
        """
        try:
            logger.info('Uploading object: %s (%d bytes)', key, size)
            if hasattr(content, 'seek'):
                content.seek(0)
            self.bucket.upload_fileobj(
                content,
                key,
                ExtraArgs={'ContentType': detect_mime_type(key)},
            )
        except _StoreErrors as error:
            logger.exception('Failed to upload object to storage: %s', key)
            raise StoreFailureError('put', key) from error

    def put_objects(
        self,
        objects: Iterable[tuple[str, BinaryIO, int]],
    ) -> None:
        """Upload a batch of objects.

        S3 has no multi-object put, so objects are written one by one.
        A failure leaves the already written objects in place.

        Args:
            objects: Triples of (storage key, content, size).
        """
        for key, content, size in objects:
            self.put_object(key, content, size)

    def put_folder_marker(self, key: str) -> None:
        """Write a zero-length folder marker.

        Args:
            key: Folder key ending with a slash.

        Raises:
            StoreFailureError: If S3 request fails.
        """
        try:
            logger.info('Creating folder marker: %s', key)
            self.client.put_object(
                Bucket=self.bucket_name,
                Key=key,
                Body=b'',
            )
        except _StoreErrors as error:
            logger.exception('Failed to create folder marker: %s', key)
            raise StoreFailureError('put', key) from error

    def ensure_folder_placeholder(self, key: str) -> None:
        """Write a folder marker unless something already occupies the key."""
        if self.is_occupied(key):
            logger.debug('Folder key already occupied: %s', key)
            return
        self.put_folder_marker(key)

    def copy_object(self, source: str, destination: str) -> None:
        """Copy an object using server-side copy.

        Args:
            source: Source storage key.
            destination: Destination storage key.

        Raises:
            ResourceNotFoundError: If the source does not exist.
            StoreFailureError: If S3 copy fails.
        """
        try:
            logger.info('Copying object: %s -> %s', source, destination)
            copy_source = {
                'Bucket': self.bucket_name,
                'Key': source,
            }
            self.bucket.copy(copy_source, destination)
        except _StoreErrors as error:
            if _is_not_found(error):
                raise ResourceNotFoundError(source) from error
            logger.exception('Copy failed: %s -> %s', source, destination)
            raise StoreFailureError('copy', source) from error

    def remove_object(self, key: str) -> None:
        """Delete an object. Deleting a missing key is not an error.

        Args:
            key: Storage key.

        Raises:
            StoreFailureError: If S3 delete fails.
        """
        try:
            logger.info('Deleting object from storage: %s', key)
            self.client.delete_object(Bucket=self.bucket_name, Key=key)
        except _StoreErrors as error:
            logger.exception('Failed to delete object from storage: %s', key)
            raise StoreFailureError('delete', key) from error

    def list_objects(
        self,
        prefix: str,
        recursive: bool = False,
    ) -> Iterator[ListedObject]:
        """Lazily list objects under a prefix.

        A shallow listing lets S3 group keys by the path separator, so
        sub-folders come back once as directory entries. Every call
        starts a fresh listing.

        Args:
            prefix: Key prefix, usually a folder key.
            recursive: Yield all descendants instead of direct children.

        Yields:
            ListedObject entries in key order within each page.

        Raises:
            StoreFailureError: If S3 listing fails.
        """
        params = {'Bucket': self.bucket_name, 'Prefix': prefix}
        if not recursive:
            params['Delimiter'] = PATH_SEPARATOR

        logger.debug('Listing objects: %s (recursive=%s)', prefix, recursive)
        try:
            paginator = self.client.get_paginator('list_objects_v2')
            for page in paginator.paginate(**params):
                yield from _to_listed_objects(page)
        except _StoreErrors as error:
            logger.exception('Failed to list objects: %s', prefix)
            raise StoreFailureError('list', prefix) from error
