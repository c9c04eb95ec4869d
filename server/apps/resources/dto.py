"""Result objects returned by resource operations."""

import enum
from collections.abc import Iterable
from dataclasses import dataclass
from datetime import datetime
from typing import Any, BinaryIO, final


@final
class ResourceType(enum.Enum):
    """Kind of resource, decided by path syntax only."""

    FILE = 'FILE'
    DIRECTORY = 'DIRECTORY'


@final
@dataclass(frozen=True, slots=True)
class ResourceInfo:
    """Externally visible shape of a file or folder.

    Never stored: always recomputed from a virtual path plus an
    optional size reported by storage.
    """

    path: str
    name: str
    size: int | None
    type: ResourceType

    def as_dict(self) -> dict[str, Any]:
        """Serialize for API responses.

        Returns:
            Dictionary without the size key when size is unknown.
        """
        payload: dict[str, Any] = {
            'path': self.path,
            'name': self.name,
            'type': self.type.value,
        }
        if self.size is not None:
            payload['size'] = self.size
        return payload


@final
@dataclass(frozen=True, slots=True)
class ObjectStat:
    """Metadata of a single stored object."""

    key: str
    size: int
    content_type: str


@final
@dataclass(frozen=True, slots=True)
class ListedObject:
    """Entry yielded by a prefix listing.

    Grouped sub-prefixes of a shallow listing have no size.
    """

    key: str
    size: int | None
    is_dir: bool
    last_modified: datetime | None = None


@final
@dataclass(frozen=True, slots=True)
class DownloadableResource:
    """Byte stream ready to be sent to a client."""

    stream: BinaryIO | Iterable[bytes]
    filename: str
    content_length: int | None
    content_type: str
