"""Translation between virtual paths and tenant storage keys.

Virtual paths are what users see: documents/report.pdf, documents/.
Storage keys include the tenant prefix: user-{tenant_id}-files/documents/.

A trailing slash is the only thing that makes a path a directory;
the type is never probed from storage.
"""

import re
from collections.abc import Iterator
from typing import Final, final

from server.apps.resources.dto import ResourceType
from server.apps.resources.exceptions import InvalidPathError

# Character used to split virtual paths and storage keys
PATH_SEPARATOR: Final = '/'

# Root marker returned for top-level parents
_ROOT_PATH: Final = '/'

_TENANT_PREFIX_TEMPLATE: Final = 'user-{tenant_id}-files/'

# A standalone `..` segment anywhere in the path
_TRAVERSAL_SEGMENT: Final = re.compile(r'(^|/)\.\.(?:/|$)')


def validate_virtual_path(path: str) -> None:
    """Validate a virtual path before it reaches storage.

    Empty path is valid and means the tenant root.

    Args:
        path: User supplied virtual path.

    Raises:
        InvalidPathError: If the path is absolute, has an empty segment,
            a `..` segment or a null byte.
    """
    if not path:
        return
    if path.startswith(PATH_SEPARATOR):
        raise InvalidPathError(path, 'path must be relative')
    if PATH_SEPARATOR * 2 in path:
        raise InvalidPathError(path, 'path must not contain empty segments')
    if _TRAVERSAL_SEGMENT.search(path):
        raise InvalidPathError(path, 'path must not contain ".." segments')
    if '\x00' in path:
        raise InvalidPathError(path, 'path must not contain null bytes')


def is_root(path: str | None) -> bool:
    """Check if path addresses the tenant root."""
    return not path or path == _ROOT_PATH


def get_resource_type(path: str) -> ResourceType:
    """Classify a path by its syntax.

    Args:
        path: Virtual path or storage key.

    Returns:
        DIRECTORY for non-empty paths ending with a slash, FILE otherwise
        (including the empty path).
    """
    if path and path.endswith(PATH_SEPARATOR):
        return ResourceType.DIRECTORY
    return ResourceType.FILE


def get_parent_path(path: str | None) -> str:
    """Get parent directory of a virtual path.

    Example: 'a/b/c.txt' -> 'a/b/', 'a/b/' -> 'a/', 'file.txt' -> '/'.

    Args:
        path: Virtual path, may be None or empty.

    Returns:
        Parent path with trailing slash, or '/' for top-level items.
    """
    if not path:
        return _ROOT_PATH

    normalized = path
    if path.endswith(PATH_SEPARATOR) and len(path) > 1:
        normalized = path[:-1]

    last_separator = normalized.rfind(PATH_SEPARATOR)
    if last_separator < 0:
        return _ROOT_PATH

    return normalized[:last_separator + 1]


def extract_resource_name(path: str) -> str:
    """Get the last segment of a path.

    Directory names keep their trailing slash: 'a/b/c/' -> 'c/'.

    Args:
        path: Virtual path or storage key.

    Returns:
        Name component.
    """
    if PATH_SEPARATOR not in path:
        return path

    if not path.endswith(PATH_SEPARATOR):
        return path.rsplit(PATH_SEPARATOR, 1)[1]

    second_to_last = path[:-1].rfind(PATH_SEPARATOR)
    return path[second_to_last + 1:]


@final
class KeyMapper:
    """Translates between virtual paths and one tenant's storage keys.

    Instances are immutable and passed explicitly into every operation,
    so the tenant root never lives in shared state.
    """

    __slots__ = ('_root_key', '_tenant_id')

    def __init__(self, tenant_id: int) -> None:
        """Initialize key mapper.

        Args:
            tenant_id: ID of the authenticated tenant.
        """
        self._tenant_id = tenant_id
        self._root_key = _TENANT_PREFIX_TEMPLATE.format(tenant_id=tenant_id)

    @property
    def tenant_id(self) -> int:
        """Get the tenant ID for this mapper."""
        return self._tenant_id

    @property
    def root_key(self) -> str:
        """Get the tenant prefix, which is also the root folder key."""
        return self._root_key

    def to_storage_key(self, path: str) -> str:
        """Convert a virtual path to a storage key.

        Args:
            path: Virtual path (e.g., documents/file.pdf).

        Returns:
            Storage key (e.g., user-1-files/documents/file.pdf).

        Raises:
            InvalidPathError: If the path fails validation.
        """
        if is_root(path):
            return self._root_key
        validate_virtual_path(path)
        return self._root_key + path

    def to_virtual_path(self, key: str) -> str:
        """Convert a storage key back to a virtual path.

        Keys outside this tenant's prefix are returned unchanged.
        """
        if key.startswith(self._root_key):
            return key[len(self._root_key):]
        return key

    def to_zip_entry(self, key: str) -> str:
        """Strip the tenant prefix to get a zip entry name.

        Args:
            key: Absolute storage key.

        Returns:
            Key relative to the tenant root; foreign keys pass through.
        """
        return self.to_virtual_path(key)

    def ancestor_keys(self, key: str) -> Iterator[str]:
        """Yield folder keys above a key, nearest first.

        The tenant root itself is never yielded.

        Example: user-1-files/a/b/c.txt -> user-1-files/a/b/, user-1-files/a/
        """
        current = key.removesuffix(PATH_SEPARATOR)
        while True:
            last_separator = current.rfind(PATH_SEPARATOR)
            parent = current[:last_separator + 1]
            if len(parent) <= len(self._root_key):
                return
            yield parent
            current = parent[:-1]
