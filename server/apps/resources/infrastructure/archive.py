"""Zip streaming of a folder through a bounded pipe.

A producer thread lists the folder and writes a zip archive into an
ArchivePipe while the response consumer iterates over it. The pipe
holds at most a few chunks, so a slow consumer suspends the producer.
"""

import logging
import queue
import shutil
import threading
import time
import zipfile
from contextlib import closing
from typing import TYPE_CHECKING, Final, final

from django.conf import settings

from server.apps.resources.exceptions import ArchiveStreamError

if TYPE_CHECKING:
    from server.apps.resources.dto import ListedObject
    from server.apps.resources.infrastructure.storage import NamespaceStorage

logger = logging.getLogger(__name__)

# Zip entry timestamps cannot predate 1980
_MIN_ZIP_DATE_TIME: Final = (1980, 1, 1, 0, 0, 0)


def get_chunk_size() -> int:
    """Get size of chunks handed to the consumer.

    Returns:
        Chunk size from settings or default of 64 KB.
    """
    return getattr(settings, 'RESOURCES_ARCHIVE_CHUNK_SIZE', 64 * 1024)


def get_queue_size() -> int:
    """Get maximum number of chunks buffered between producer and consumer.

    Returns:
        Queue size from settings or default of 1.
    """
    return getattr(settings, 'RESOURCES_ARCHIVE_QUEUE_SIZE', 1)


def get_poll_interval() -> float:
    """Get how often a blocked producer re-checks for consumer disconnect.

    Returns:
        Interval in seconds from settings or default of 0.5.
    """
    return getattr(settings, 'RESOURCES_ARCHIVE_POLL_INTERVAL', 0.5)


def get_idle_timeout() -> float:
    """Get how long a producer waits for an absent consumer.

    Returns:
        Timeout in seconds from settings or default of 60.
    """
    return getattr(settings, 'RESOURCES_ARCHIVE_IDLE_TIMEOUT', 60.0)


@final
class _EndOfStream:
    """Queue item signalling the end of the archive."""

    def __init__(self, error: BaseException | None = None) -> None:
        self.error = error


@final
class ArchivePipe:
    """Bounded blocking pipe from a zip producer to a response consumer.

    Producer side is a write-only, non-seekable file object, so
    zipfile writes entries with data descriptors. Consumer side is an
    iterator of byte chunks suitable for StreamingHttpResponse, which
    calls close() when the client goes away.
    """

    def __init__(
        self,
        chunk_size: int | None = None,
        max_chunks: int | None = None,
    ) -> None:
        """Initialize the pipe.

        Args:
            chunk_size: Bytes buffered before a chunk is queued.
            max_chunks: Queue capacity in chunks.
        """
        self._chunk_size = chunk_size or get_chunk_size()
        self._chunks: queue.Queue[bytes | _EndOfStream] = queue.Queue(
            maxsize=max_chunks or get_queue_size(),
        )
        self._buffer = bytearray()
        self._closed = threading.Event()
        self._finished = False
        self._timed_out = False

    @property
    def closed(self) -> bool:
        """Check if the consumer has closed the pipe."""
        return self._closed.is_set()

    def write(self, data: bytes) -> int:
        """Buffer data and queue full chunks.

        Blocks while the queue is full.

        Args:
            data: Bytes produced by zipfile.

        Returns:
            Number of bytes accepted.

        Raises:
            BrokenPipeError: If the consumer has closed the pipe or
                stopped reading for longer than the idle timeout.
        """
        if self.closed:
            raise BrokenPipeError('Archive consumer disconnected')
        self._buffer.extend(data)
        while len(self._buffer) >= self._chunk_size:
            chunk = bytes(self._buffer[:self._chunk_size])
            del self._buffer[:self._chunk_size]
            self._put(chunk)
        return len(data)

    def flush(self) -> None:
        """Keep partial chunks buffered until finish()."""

    def finish(self) -> None:
        """Queue remaining bytes and end the stream normally."""
        if self._buffer:
            self._put(bytes(self._buffer))
            self._buffer.clear()
        self._put(_EndOfStream())

    def fail(self, error: BaseException) -> None:
        """End the stream abnormally.

        The consumer raises ArchiveStreamError on its next read.
        Does nothing if the consumer is already gone.

        Args:
            error: Exception raised inside the producer.
        """
        self._buffer.clear()
        try:
            self._put(_EndOfStream(error))
        except BrokenPipeError:
            logger.debug('Archive consumer gone before failure was reported')

    def close(self) -> None:
        """Close the consumer side and unblock a waiting producer."""
        if self.closed:
            return
        self._closed.set()
        while True:
            try:
                self._chunks.get_nowait()
            except queue.Empty:
                return

    def __iter__(self) -> 'ArchivePipe':
        return self

    def __next__(self) -> bytes:
        """Get the next chunk of the archive.

        Raises:
            StopIteration: When the archive is complete.
            ArchiveStreamError: If the producer failed or gave up
                waiting for the consumer.
        """
        if self._timed_out:
            raise ArchiveStreamError('Zip stream abandoned by producer')
        if self._finished or self.closed:
            raise StopIteration
        item = self._chunks.get()
        if isinstance(item, _EndOfStream):
            self._finished = True
            if item.error is not None:
                raise ArchiveStreamError(
                    'Failed to create zip stream',
                ) from item.error
            raise StopIteration
        return item

    def _put(self, item: 'bytes | _EndOfStream') -> None:
        poll_interval = get_poll_interval()
        deadline = time.monotonic() + get_idle_timeout()
        while True:
            if self.closed:
                raise BrokenPipeError('Archive consumer disconnected')
            try:
                self._chunks.put(item, timeout=poll_interval)
            except queue.Full:
                if time.monotonic() < deadline:
                    continue
                logger.warning('Archive consumer idle, abandoning stream')
                self._timed_out = True
                self.close()
                raise BrokenPipeError('Archive consumer idle') from None
            return


def _build_entry(entry_name: str, listed: 'ListedObject') -> zipfile.ZipInfo:
    date_time = _MIN_ZIP_DATE_TIME
    if listed.last_modified is not None:
        modified = listed.last_modified.timetuple()[:6]
        date_time = max(modified, _MIN_ZIP_DATE_TIME)

    entry = zipfile.ZipInfo(entry_name, date_time=date_time)
    entry.compress_type = zipfile.ZIP_DEFLATED
    # Known size lets zipfile decide on zip64 up front
    entry.file_size = listed.size or 0
    return entry


def write_folder_archive(
    storage: 'NamespaceStorage',
    folder_key: str,
    pipe: ArchivePipe,
) -> int:
    """Write every file below a folder into a zip archive.

    Entries are written in listing order and named relative to the
    folder. Folder markers are skipped.

    Args:
        storage: Namespace storage backend.
        folder_key: Folder storage key ending with a slash.
        pipe: Producer side of the archive pipe.

    Returns:
        Number of entries written.
    """
    entries = 0
    chunk_size = get_chunk_size()
    with zipfile.ZipFile(pipe, mode='w') as archive:
        for listed in storage.list_objects(folder_key, recursive=True):
            if listed.is_dir:
                continue

            entry = _build_entry(listed.key[len(folder_key):], listed)
            logger.debug('Adding zip entry: %s', entry.filename)
            with closing(storage.open_object(listed.key)) as body:
                with archive.open(entry, mode='w') as target:
                    shutil.copyfileobj(body, target, chunk_size)
            entries += 1
    return entries


def _produce(
    storage: 'NamespaceStorage',
    folder_key: str,
    pipe: ArchivePipe,
) -> None:
    try:
        entries = write_folder_archive(storage, folder_key, pipe)
        pipe.finish()
    except Exception as error:
        if isinstance(error, BrokenPipeError) and pipe.closed:
            logger.info('Zip download cancelled by consumer: %s', folder_key)
            return
        logger.exception('Failed to create zip stream: %s', folder_key)
        pipe.fail(error)
    else:
        logger.info('Zip stream done: %s (%d entries)', folder_key, entries)


def start_zip_producer(
    storage: 'NamespaceStorage',
    folder_key: str,
    pipe: ArchivePipe,
) -> threading.Thread:
    """Start a background thread that streams a folder into the pipe.

    Args:
        storage: Namespace storage backend.
        folder_key: Folder storage key ending with a slash.
        pipe: Pipe the consumer reads from.

    Returns:
        The started producer thread.
    """
    producer = threading.Thread(
        target=_produce,
        args=(storage, folder_key, pipe),
        name=f'zip-producer:{folder_key}',
        daemon=True,
    )
    producer.start()
    return producer
