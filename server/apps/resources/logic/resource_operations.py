"""Business logic for hierarchical resource operations.

Folders do not exist in S3. Every directory-like guarantee here is
rebuilt from prefix listings and zero-length folder markers:
- a folder exists if its marker or any key below it exists
- deleting or moving the last item out of a folder leaves a marker
  behind so the folder stays listable
- names are checked file-vs-file and file-vs-folder before writing

Nothing here is transactional. A move or nested upload failing
halfway leaves everything done before the failing step in place.
"""

import logging
from collections.abc import Iterable
from typing import TYPE_CHECKING, BinaryIO

from django.core.files.base import File as DjangoFile
from django.core.files.storage import default_storage

from server.apps.resources.dto import ResourceInfo, ResourceType
from server.apps.resources.exceptions import (
    InvalidPathError,
    InvalidQueryError,
    ResourceAlreadyExistsError,
    ResourceNotFoundError,
    StoreFailureError,
)
from server.apps.resources.infrastructure.metadata import get_content_size
from server.apps.resources.infrastructure.paths import (
    PATH_SEPARATOR,
    KeyMapper,
    extract_resource_name,
    get_parent_path,
    get_resource_type,
    is_root,
    validate_virtual_path,
)

if TYPE_CHECKING:
    from server.apps.resources.dto import ListedObject
    from server.apps.resources.infrastructure.storage import NamespaceStorage

logger = logging.getLogger(__name__)


def _get_storage() -> 'NamespaceStorage':
    """Get the configured default storage backend.

    Returns:
        NamespaceStorage instance with proper S3 configuration.
    """
    return default_storage  # type: ignore[return-value]


def _to_resource_info(
    path: str,
    size: int | None,
    resource_type: ResourceType | None = None,
) -> ResourceInfo:
    resource_type = resource_type or get_resource_type(path)
    return ResourceInfo(
        path=get_parent_path(path),
        name=extract_resource_name(path),
        size=None if resource_type is ResourceType.DIRECTORY else size,
        type=resource_type,
    )


def _listed_to_info(mapper: KeyMapper, listed: 'ListedObject') -> ResourceInfo:
    return _to_resource_info(mapper.to_virtual_path(listed.key), listed.size)


def _has_children(
    storage: 'NamespaceStorage',
    folder_key: str,
) -> bool:
    """Check if anything other than the folder's own marker is below it."""
    return any(
        listed.key != folder_key
        for listed in storage.list_objects(folder_key)
    )


def _ensure_parent_folders(
    storage: 'NamespaceStorage',
    mapper: KeyMapper,
    target_key: str,
    processed_folders: set[str],
) -> None:
    """Create missing folder markers above a target key.

    Folders are handled from the tenant root down, so a conflict
    stops the walk before anything below it is written. Folders
    already handled in the current operation are skipped.

    Raises:
        ResourceAlreadyExistsError: If a file uses the name of a
            required folder.
    """
    pending = [
        folder_key
        for folder_key in mapper.ancestor_keys(target_key)
        if folder_key not in processed_folders
    ]
    for folder_key in reversed(pending):
        if storage.has_naming_conflict(folder_key):
            raise ResourceAlreadyExistsError(
                mapper.to_virtual_path(folder_key),
                'File already exists, cannot create parent folder',
            )
        storage.ensure_folder_placeholder(folder_key)
        processed_folders.add(folder_key)


def _preserve_parent_folder(
    storage: 'NamespaceStorage',
    mapper: KeyMapper,
    path: str,
) -> None:
    """Keep the parent of a removed resource listable.

    Only the direct parent is checked. Failures are logged and never
    replace the outcome of the operation that removed the resource.
    """
    parent_path = get_parent_path(path)
    if is_root(parent_path):
        return

    parent_key = mapper.to_storage_key(parent_path)
    try:
        if not _has_children(storage, parent_key):
            storage.ensure_folder_placeholder(parent_key)
            logger.info('Preserved empty folder: %s', parent_key)
    except StoreFailureError:
        logger.exception('Failed to preserve folder marker: %s', parent_key)


def get_resource_info(tenant_id: int, path: str) -> ResourceInfo:
    """Describe a file or folder.

    A missing file is not an error here: its size is reported as None
    and the caller decides whether that means not found.

    Args:
        tenant_id: Owner of the namespace.
        path: Virtual path.

    Returns:
        ResourceInfo for the path.
    """
    mapper = KeyMapper(tenant_id)
    key = mapper.to_storage_key(path)

    if get_resource_type(path) is ResourceType.DIRECTORY:
        return _to_resource_info(path, None, ResourceType.DIRECTORY)

    object_stat = _get_storage().stat_object(key)
    size = object_stat.size if object_stat is not None else None
    return _to_resource_info(path, size, ResourceType.FILE)


def resource_exists(tenant_id: int, path: str) -> bool:
    """Check if a file or folder exists.

    Args:
        tenant_id: Owner of the namespace.
        path: Virtual path. Root always exists.

    Returns:
        True if a file is stored at the path, or a folder has a marker
        or any content.
    """
    if is_root(path):
        return True

    mapper = KeyMapper(tenant_id)
    key = mapper.to_storage_key(path)
    storage = _get_storage()

    if get_resource_type(path) is ResourceType.FILE:
        return storage.is_occupied(key)
    return any(True for _ in storage.list_objects(key))


def list_folder(tenant_id: int, path: str = '') -> list[ResourceInfo]:
    """List direct children of a folder.

    Args:
        tenant_id: Owner of the namespace.
        path: Folder path ending with a slash, empty for root.

    Returns:
        ResourceInfo for every child file and sub-folder.

    Raises:
        InvalidPathError: If the path is not a folder path.
        ResourceNotFoundError: If a non-root folder does not exist.
    """
    is_folder = get_resource_type(path) is ResourceType.DIRECTORY
    if not (is_root(path) or is_folder):
        raise InvalidPathError(path, 'folder path must end with "/"')

    mapper = KeyMapper(tenant_id)
    folder_key = mapper.to_storage_key(path)
    logger.debug('Listing folder: %s', folder_key)

    listed = list(_get_storage().list_objects(folder_key))
    if not listed and not is_root(path):
        raise ResourceNotFoundError(path, 'Folder not found')

    return [
        _listed_to_info(mapper, child)
        for child in listed
        if child.key != folder_key
    ]


def create_folder(tenant_id: int, path: str) -> ResourceInfo:
    """Create an empty folder.

    Args:
        tenant_id: Owner of the namespace.
        path: Folder path; a missing trailing slash is added.

    Returns:
        ResourceInfo of the new folder.

    Raises:
        InvalidPathError: If the path is root or malformed.
        ResourceAlreadyExistsError: If the folder or a file with the
            same name already exists.
    """
    if is_root(path):
        raise InvalidPathError(path, 'root folder always exists')
    if not path.endswith(PATH_SEPARATOR):
        path = f'{path}{PATH_SEPARATOR}'

    mapper = KeyMapper(tenant_id)
    folder_key = mapper.to_storage_key(path)
    storage = _get_storage()

    if storage.is_occupied(folder_key):
        raise ResourceAlreadyExistsError(path)
    if storage.has_naming_conflict(folder_key):
        raise ResourceAlreadyExistsError(path, 'File already exists')

    storage.put_folder_marker(folder_key)
    logger.info('Folder created: %s', folder_key)
    return _to_resource_info(path, None, ResourceType.DIRECTORY)


def delete_resource(tenant_id: int, path: str) -> None:
    """Delete a file, or a folder with everything below it.

    Args:
        tenant_id: Owner of the namespace.
        path: Virtual path of the resource.

    Raises:
        InvalidPathError: If the path is root or malformed.
        ResourceNotFoundError: If nothing is stored at the path.
    """
    if is_root(path):
        raise InvalidPathError(path, 'root folder cannot be deleted')

    mapper = KeyMapper(tenant_id)
    key = mapper.to_storage_key(path)
    storage = _get_storage()

    if get_resource_type(path) is ResourceType.FILE:
        if not storage.is_occupied(key):
            raise ResourceNotFoundError(path)
        storage.remove_object(key)
    else:
        keys = [
            listed.key
            for listed in storage.list_objects(key, recursive=True)
        ]
        if not keys:
            raise ResourceNotFoundError(path)
        for object_key in keys:
            storage.remove_object(object_key)
        logger.info('Deleted folder %s (%d objects)', key, len(keys))

    _preserve_parent_folder(storage, mapper, path)


def move_resource(
    tenant_id: int,
    source: str,
    destination: str,
) -> ResourceInfo:
    """Move or rename a file or folder.

    Every object below the source is copied to the destination and
    then deleted. Conflicts for an object are checked right before it
    is copied, not up front for the whole tree, and a failure stops
    the move without undoing objects already moved.

    Args:
        tenant_id: Owner of the namespace.
        source: Current virtual path.
        destination: New virtual path of the same type.

    Returns:
        ResourceInfo at the destination.

    Raises:
        InvalidPathError: If paths are malformed, of different types,
            or a folder would move into itself.
        ResourceNotFoundError: If the source does not exist.
        ResourceAlreadyExistsError: If a destination object is taken,
            a file target is named like a folder, or a required folder
            name belongs to a file.
    """
    if is_root(source):
        raise InvalidPathError(source, 'root folder cannot be moved')
    if is_root(destination):
        raise InvalidPathError(
            destination,
            'root folder cannot be a move destination',
        )

    source_type = get_resource_type(source)
    if source_type is not get_resource_type(destination):
        raise InvalidPathError(
            destination,
            'source and destination must both be files or both be folders',
        )

    mapper = KeyMapper(tenant_id)
    source_key = mapper.to_storage_key(source)
    destination_key = mapper.to_storage_key(destination)
    moves_into_itself = destination_key.startswith(source_key)
    if source_type is ResourceType.DIRECTORY and moves_into_itself:
        raise InvalidPathError(
            destination,
            'folder cannot be moved into itself',
        )

    storage = _get_storage()
    items = [
        listed
        for listed in storage.list_objects(source_key, recursive=True)
        if source_type is ResourceType.DIRECTORY or listed.key == source_key
    ]
    if not items:
        raise ResourceNotFoundError(source, 'Source resource not found')

    logger.info(
        'Moving %s -> %s (%d objects)',
        source_key,
        destination_key,
        len(items),
    )
    processed_folders: set[str] = set()

    for item in items:
        target_key = destination_key + item.key[len(source_key):]

        if get_resource_type(target_key) is ResourceType.DIRECTORY:
            if storage.has_naming_conflict(target_key):
                raise ResourceAlreadyExistsError(
                    mapper.to_virtual_path(target_key),
                    'File already exists',
                )
            storage.ensure_folder_placeholder(target_key)
            processed_folders.add(target_key)
        else:
            if storage.is_occupied(target_key):
                raise ResourceAlreadyExistsError(
                    mapper.to_virtual_path(target_key),
                    'Destination already exists',
                )
            if storage.has_folder_named(target_key):
                raise ResourceAlreadyExistsError(
                    mapper.to_virtual_path(target_key),
                    'Folder already exists',
                )
            _ensure_parent_folders(
                storage,
                mapper,
                target_key,
                processed_folders,
            )

        storage.copy_object(item.key, target_key)
        storage.remove_object(item.key)

    _preserve_parent_folder(storage, mapper, source)
    return get_resource_info(tenant_id, destination)


def search_resources(tenant_id: int, query: str) -> list[ResourceInfo]:
    """Find resources whose name or path contains a substring.

    Scans the whole tenant namespace; there is no index.

    Args:
        tenant_id: Owner of the namespace.
        query: Case-sensitive substring.

    Returns:
        Matching ResourceInfo objects at any depth.

    Raises:
        InvalidQueryError: If the query is blank.
    """
    if not query or not query.strip():
        raise InvalidQueryError('Search query must not be empty')

    mapper = KeyMapper(tenant_id)
    results = []
    listing = _get_storage().list_objects(mapper.root_key, recursive=True)
    for listed in listing:
        relative_path = mapper.to_virtual_path(listed.key)
        if not relative_path:
            continue
        info = _to_resource_info(relative_path, listed.size)
        if query in info.name or query in relative_path:
            results.append(info)

    logger.debug('Search %r matched %d resources', query, len(results))
    return results


def upload_resources(
    tenant_id: int,
    path: str,
    files: Iterable[BinaryIO | DjangoFile],
) -> list[ResourceInfo]:
    """Upload files into a folder.

    File names may contain slashes; the intermediate folders are
    created before anything is written. All targets are validated
    first, then the files are written as one batch.

    Args:
        tenant_id: Owner of the namespace.
        path: Destination folder path, empty for root.
        files: File-like objects with a name. Nameless files are skipped.

    Returns:
        ResourceInfo of every uploaded file.

    Raises:
        InvalidPathError: If the folder or a resulting path is malformed.
        ResourceAlreadyExistsError: If a target is taken, repeated in
            the batch, named like a folder, or a required folder name
            belongs to a file.
    """
    if is_root(path):
        path = ''
    elif get_resource_type(path) is not ResourceType.DIRECTORY:
        raise InvalidPathError(path, 'folder path must end with "/"')

    mapper = KeyMapper(tenant_id)
    folder_key = mapper.to_storage_key(path)
    storage = _get_storage()
    processed_folders: set[str] = set()
    batch: list[tuple[str, BinaryIO | DjangoFile, int]] = []
    uploaded: list[ResourceInfo] = []
    seen_keys: set[str] = set()
    # Names of folders required by files earlier in the batch
    seen_folders: set[str] = set()

    for file_obj in files:
        name = getattr(file_obj, 'name', None)
        if not name:
            logger.warning('Skipping upload without a file name')
            continue

        target_path = f'{path}{name}'
        if get_resource_type(target_path) is ResourceType.DIRECTORY:
            raise InvalidPathError(
                target_path,
                'uploaded file name must not end with "/"',
            )
        validate_virtual_path(target_path)
        target_key = mapper.to_storage_key(target_path)

        if target_key in seen_keys or storage.is_occupied(target_key):
            raise ResourceAlreadyExistsError(target_path)
        if target_key in seen_folders or storage.has_folder_named(target_key):
            raise ResourceAlreadyExistsError(
                target_path,
                'Folder already exists',
            )

        folders = list(mapper.ancestor_keys(target_key))
        for folder_key in folders:
            if folder_key.removesuffix(PATH_SEPARATOR) in seen_keys:
                raise ResourceAlreadyExistsError(
                    mapper.to_virtual_path(folder_key),
                    'File already exists, cannot create parent folder',
                )
        seen_keys.add(target_key)
        seen_folders.update(
            folder_key.removesuffix(PATH_SEPARATOR) for folder_key in folders
        )

        if PATH_SEPARATOR in name:
            _ensure_parent_folders(
                storage,
                mapper,
                target_key,
                processed_folders,
            )

        size = get_content_size(file_obj)
        batch.append((target_key, file_obj, size))
        uploaded.append(
            _to_resource_info(target_path, size, ResourceType.FILE),
        )

    storage.put_objects(batch)
    logger.info('Uploaded %d files to %s', len(batch), folder_key)
    return uploaded
