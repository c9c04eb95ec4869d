"""Business logic for downloading files and folders.

Files are streamed straight from storage. Folders are zipped on the
fly by a producer thread, so nothing is buffered on disk and the
archive size is never known up front.
"""

import logging

from django.core.files.storage import default_storage

from server.apps.resources.dto import DownloadableResource, ResourceType
from server.apps.resources.exceptions import (
    InvalidPathError,
    ResourceNotFoundError,
)
from server.apps.resources.infrastructure.archive import (
    ArchivePipe,
    start_zip_producer,
)
from server.apps.resources.infrastructure.metadata import ZIP_CONTENT_TYPE
from server.apps.resources.infrastructure.paths import (
    KeyMapper,
    extract_resource_name,
    get_resource_type,
    is_root,
)
from server.apps.resources.infrastructure.storage import NamespaceStorage

logger = logging.getLogger(__name__)


def _get_storage() -> NamespaceStorage:
    """Get the configured default storage backend."""
    return default_storage  # type: ignore[return-value]


def stream_folder_as_zip(tenant_id: int, path: str) -> DownloadableResource:
    """Stream a folder and everything below it as a zip archive.

    The archive is produced in a background thread while the caller
    iterates over the returned stream. Closing the stream stops the
    producer. An empty folder yields a valid archive with no entries.

    Args:
        tenant_id: Owner of the namespace.
        path: Folder path ending with a slash.

    Returns:
        DownloadableResource named after the folder with a .zip suffix.

    Raises:
        InvalidPathError: If the path is root or not a folder path.
        ResourceNotFoundError: If the folder does not exist.
    """
    if is_root(path):
        raise InvalidPathError(path, 'root folder cannot be downloaded')
    if get_resource_type(path) is not ResourceType.DIRECTORY:
        raise InvalidPathError(path, 'folder path must end with "/"')

    mapper = KeyMapper(tenant_id)
    folder_key = mapper.to_storage_key(path)
    storage = _get_storage()

    # Folder exists if its marker or anything below it is stored
    if next(iter(storage.list_objects(folder_key)), None) is None:
        raise ResourceNotFoundError(path, 'Folder not found')

    pipe = ArchivePipe()
    start_zip_producer(storage, folder_key, pipe)
    logger.info('Started zip stream: %s', folder_key)

    folder_name = extract_resource_name(path[:-1])
    return DownloadableResource(
        stream=pipe,
        filename=f'{folder_name}.zip',
        content_length=None,
        content_type=ZIP_CONTENT_TYPE,
    )


def get_downloadable_resource(
    tenant_id: int,
    path: str,
) -> DownloadableResource:
    """Open a file or folder for download.

    Args:
        tenant_id: Owner of the namespace.
        path: Virtual path of a file, or of a folder ending with a slash.

    Returns:
        DownloadableResource with the file content, or a zip stream
        for folders.

    Raises:
        InvalidPathError: If the path is root or malformed.
        ResourceNotFoundError: If nothing is stored at the path.
    """
    if is_root(path):
        raise InvalidPathError(path, 'root folder cannot be downloaded')
    if get_resource_type(path) is ResourceType.DIRECTORY:
        return stream_folder_as_zip(tenant_id, path)

    key = KeyMapper(tenant_id).to_storage_key(path)
    storage = _get_storage()
    object_stat = storage.stat_object(key)
    if object_stat is None:
        raise ResourceNotFoundError(path)

    logger.debug('Opening file for download: %s', key)
    return DownloadableResource(
        stream=storage.open_object(key),
        filename=extract_resource_name(path),
        content_length=object_stat.size,
        content_type=object_stat.content_type,
    )
