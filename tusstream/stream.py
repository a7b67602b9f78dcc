"""Readable byte streams that are uploaded to the server.

An :class:`UploadStream` reports the progress of every read through a
callback. Two implementations exist: :class:`FileStream` reads a local file,
:class:`PipeStream` reads data that a background task downloads concurrently
from another source.
"""

from __future__ import annotations

import abc
import asyncio
from typing import TYPE_CHECKING

from . import common
from .log import logger

if TYPE_CHECKING:  # pragma: no cover
    from collections.abc import AsyncGenerator, AsyncIterator
    from typing import BinaryIO


class UploadStream(abc.ABC):
    """Sequential, non-seekable source of the data to upload."""

    def __init__(
        self, total_length: int, progress: common.ProgressCallback | None = None
    ) -> None:
        self.total_length = total_length
        self.bytes_read = 0
        self._progress = progress

    async def read(self, size: int = -1) -> bytes:
        """Read up to 'size' bytes, or everything if 'size' is negative.

        The progress callback is invoked before the read, with the number of
        bytes read prior to this call.

        :return: The data, an empty byte string at the end of the stream.
        """
        if self._progress is not None:
            self._progress(self.bytes_read, self.total_length)

        data = await self._read(size)
        self.bytes_read += len(data)
        return data

    async def chunks(self, length: int, chunk_size: int) -> AsyncGenerator[bytes]:
        """Yield the next 'length' bytes of the stream.

        Used as the body of a request, so that the data is streamed and not
        buffered as a whole.

        :raises common.SourceError: If the stream ends early.
        """
        remaining = length
        while remaining > 0:
            if not (data := await self.read(min(chunk_size, remaining))):
                msg = (
                    f"Stream ended after {length - remaining} of {length} bytes."
                )
                raise common.SourceError(msg)

            remaining -= len(data)
            yield data

    @abc.abstractmethod
    async def _read(self, size: int) -> bytes:
        """Read from the underlying source."""

    @abc.abstractmethod
    async def close(self) -> None:
        """Release the underlying source."""


class FileStream(UploadStream):
    """Upload stream reading from a binary file object."""

    def __init__(
        self,
        file: BinaryIO,
        total_length: int,
        progress: common.ProgressCallback | None = None,
    ) -> None:
        super().__init__(total_length, progress)
        self._file = file

    async def _read(self, size: int) -> bytes:
        try:
            return await asyncio.to_thread(self._file.read, size)
        except OSError as e:
            msg = f"Reading the file failed: {e}"
            raise common.SourceError(msg) from e

    async def close(self) -> None:
        await asyncio.to_thread(self._file.close)


class Pipe:
    """In-memory byte pipe between a producer and a consumer task.

    Data is delivered in the order it was written. The writer is blocked
    while 'capacity' or more bytes wait to be read, the reader is blocked
    while the pipe is empty and the write end is still open.
    """

    def __init__(self, capacity: int) -> None:
        self._capacity = capacity
        self._buffer = bytearray()
        self._condition = asyncio.Condition()
        self._write_closed = False
        self._read_closed = False
        self._error: BaseException | None = None

    @property
    def read_closed(self) -> bool:
        return self._read_closed

    async def write(self, data: bytes) -> None:
        """Append data to the pipe.

        :raises BrokenPipeError: If one of the ends of the pipe is closed.
        """
        async with self._condition:
            await self._condition.wait_for(
                lambda: self._read_closed or len(self._buffer) < self._capacity
            )

            if self._read_closed:
                msg = "Read end of the pipe is closed."
                raise BrokenPipeError(msg)

            if self._write_closed:
                msg = "Write end of the pipe is closed."
                raise BrokenPipeError(msg)

            self._buffer.extend(data)
            self._condition.notify_all()

    async def close_write(self, error: BaseException | None = None) -> None:
        """Signal the end of the stream to the reader.

        :param error: If given, the reader gets a 'SourceError' caused by this
            exception once the buffered data is consumed.
        """
        async with self._condition:
            if self._write_closed:
                return

            self._write_closed = True
            self._error = error
            self._condition.notify_all()

    async def read(self, size: int = -1) -> bytes:
        """Read up to 'size' bytes, or all buffered data if 'size' is negative.

        :return: The data, an empty byte string at the end of the stream.
        :raises common.SourceError: If the producer failed.
        """
        async with self._condition:
            await self._condition.wait_for(
                lambda: bool(self._buffer) or self._write_closed
            )

            if not self._buffer:
                if self._error is not None:
                    msg = f"Upload source failed: {self._error}"
                    raise common.SourceError(msg) from self._error
                return b""

            if size < 0:
                size = len(self._buffer)

            data = bytes(self._buffer[:size])
            del self._buffer[:size]
            self._condition.notify_all()

            return data

    async def close_read(self) -> None:
        """Close the read end, pending and future writes fail."""
        async with self._condition:
            self._read_closed = True
            self._buffer.clear()
            self._condition.notify_all()


class PipeStream(UploadStream):
    """Upload stream fed by a background task.

    The task pulls chunks from 'source' and writes them into a :class:`Pipe`,
    so the data can be uploaded while it is still being downloaded. The write
    end of the pipe is closed whenever the task ends, also if it fails or is
    cancelled; the reader therefore never waits forever.
    """

    def __init__(
        self,
        source: AsyncIterator[bytes],
        total_length: int,
        progress: common.ProgressCallback | None = None,
        capacity: int = common.DEFAULT_PIPE_CAPACITY,
    ) -> None:
        super().__init__(total_length, progress)
        self._source = source
        self._pipe = Pipe(capacity)
        self._worker: asyncio.Task[None] | None = None

    def start(self) -> None:
        """Start the background task producing the data."""
        if self._worker is not None:
            msg = "Producer already started."
            raise RuntimeError(msg)

        self._worker = asyncio.create_task(self._produce())

    async def _produce(self) -> None:
        error: BaseException | None = None
        try:
            async for chunk in self._source:
                await self._pipe.write(chunk)
        except Exception as e:  # noqa: BLE001
            if self._pipe.read_closed:
                logger.debug("Upload stopped reading, stopping download.")
            else:
                logger.warning(f"Download of upload source failed: {e}")
                error = e
        finally:
            try:
                if (aclose := getattr(self._source, "aclose", None)) is not None:
                    await asyncio.shield(aclose())
            finally:
                await asyncio.shield(self._pipe.close_write(error))

    async def _read(self, size: int) -> bytes:
        if self._worker is None:
            msg = "Producer not started."
            raise RuntimeError(msg)

        return await self._pipe.read(size)

    async def close(self) -> None:
        """Stop the background task and release the pipe."""
        await self._pipe.close_read()

        if self._worker is not None and not self._worker.done():
            self._worker.cancel()

        if self._worker is not None:
            await asyncio.gather(self._worker, return_exceptions=True)
