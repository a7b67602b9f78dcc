"""Upload of a complete file to a tus server."""

from __future__ import annotations

import asyncio
import io
import os
from typing import TYPE_CHECKING, Any

import aiohttp

from . import common, creation, remote, transport
from .log import logger
from .stream import FileStream, PipeStream

if TYPE_CHECKING:  # pragma: no cover
    from collections.abc import Mapping
    from types import TracebackType
    from typing import BinaryIO

    import yarl

    from .stream import UploadStream


def _check_positive_integer(value: Any, name: str) -> None:
    # 'bool' is a subclass of 'int', but not a valid value here.
    if isinstance(value, bool) or not isinstance(value, int) or value <= 0:
        msg = f"{value!r} is not a valid {name}, expected a positive integer."
        raise common.ValidationError(msg)


def _check_configuration(config: Any) -> common.ClientConfiguration:
    if not isinstance(config, common.ClientConfiguration):
        msg = f"Expected a ClientConfiguration, got {type(config).__name__}."
        raise common.ValidationError(msg)

    _check_positive_integer(config.retries, "number of retries")
    _check_positive_integer(config.chunk_size, "chunk size")
    _check_positive_integer(config.pipe_capacity, "pipe capacity")

    return config


def _file_size(file: BinaryIO) -> int:
    """Return the number of bytes from the current position to the end of 'file'."""
    position = file.tell()
    end = file.seek(0, io.SEEK_END)
    file.seek(position, io.SEEK_SET)
    return end - position


class Client:
    """Client for uploading files to a tus server.

    The arguments are validated when the object is created, the server is
    contacted the first time by :meth:`open` to discover its capabilities.
    A client performs one upload at a time.

    Example::

        async with tusstream.Client("https://tus.example.com/files") as client:
            location = await client.upload_file("data.bin")

    :param url: The creation endpoint of the server.
    :param metadata: Additional metadata for the uploads.
    :param headers: Optional headers used in all requests.
    :param config: Settings to customize retrying and streaming.
    :param client_session: An aiohttp ClientSession to use for the requests
        to the tus server.
    :raises common.ValidationError: If one of the arguments is invalid.
    """

    def __init__(
        self,
        url: str | yarl.URL,
        metadata: common.Metadata | None = None,
        headers: Mapping[str, str] | None = None,
        config: common.ClientConfiguration | None = None,
        client_session: aiohttp.ClientSession | None = None,
    ) -> None:
        self.config = _check_configuration(config or common.ClientConfiguration())
        self.headers = dict(creation.check_headers(headers or {}))
        self.metadata = creation.encode_metadata(
            creation.check_metadata(metadata if metadata is not None else {})
        )
        self.capabilities: frozenset[str] = frozenset()

        self._transport = transport.Transport(url, self.config, client_session)

    async def open(self) -> None:
        """Connect to the server and query the supported protocol extensions."""
        await self._transport.open()
        try:
            self.capabilities = await self._transport.query_capabilities()
        except BaseException:
            await self._transport.close()
            raise

        logger.debug(
            f"Server supports the extensions: {', '.join(sorted(self.capabilities))}"
        )

    async def close(self) -> None:
        """Close the connection to the server."""
        await self._transport.close()

    async def __aenter__(self) -> Client:
        await self.open()
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        await self.close()

    def _tus_headers(self) -> dict[str, str]:
        tus_headers = dict(self.headers)
        tus_headers["Tus-Resumable"] = self.config.protocol_version
        return tus_headers

    async def _create(self, total_length: int) -> None:
        if "creation" not in self.capabilities:
            msg = 'Server does not support the "creation" extension.'
            raise common.UnsupportedOperation(msg)

        tus_headers = self._tus_headers()
        tus_headers["Content-Length"] = "0"
        tus_headers["Upload-Length"] = str(total_length)
        if self.metadata:
            tus_headers["Upload-Metadata"] = self.metadata

        await self._transport.create_resource(tus_headers, self.config.retries)

    async def upload(
        self, total_length: int | None, stream: UploadStream
    ) -> yarl.URL:
        """Upload the data of a stream.

        The upload is created on the server, and all data is sent with a
        single request. The stream is closed when this method returns.

        :param total_length: The number of bytes to upload.
        :param stream: The data to upload.
        :return: The location of the upload.
        :raises common.UnknownLength: If the length is not given.
        :raises common.UnsupportedOperation: If the server can't create uploads.
        :raises common.BrokenUpload: If the data could not be uploaded completely.
        """
        try:
            if total_length is None or total_length < 0:
                msg = "Cannot upload a stream of unknown size!"
                raise common.UnknownLength(msg)

            await self._create(total_length)

            current_offset, length = await self._transport.query_offset(
                self._tus_headers()
            )
            logger.debug(f"Current offset {current_offset}, total bytes {length}.")

            if length != total_length:
                msg = f"Server expects {length} bytes, but {total_length} are uploaded."
                raise common.ProtocolError(msg)

            if current_offset > length:
                # The offset that the server expects next does not exist.
                msg = "Server offset too big."
                raise common.ProtocolError(msg)

            if current_offset < length:
                remaining = length - current_offset
                tus_headers = self._tus_headers()
                tus_headers.update(
                    {
                        "Content-Type": common.OFFSET_CONTENT_TYPE,
                        "Upload-Offset": str(current_offset),
                        "Content-Length": str(remaining),
                    }
                )

                try:
                    current_offset = await self._transport.send_chunk(
                        tus_headers, self.config.retries, stream, remaining
                    )
                except Exception as e:
                    msg = f"Broken upload! Cannot send data: {e}"
                    raise common.BrokenUpload(msg) from e

            if current_offset != length:
                msg = (
                    f"Broken upload! Server reports offset {current_offset} "
                    f"instead of {length}."
                )
                raise common.BrokenUpload(msg)

            logger.info(f'Upload of {length} bytes to "{self.upload_url}" complete.')
            return self.upload_url
        finally:
            await stream.close()

    @property
    def upload_url(self) -> yarl.URL:
        """The location of the last upload created by this client."""
        return self._transport.upload_url

    def _progress_logger(self) -> common.ProgressCallback:
        def log(offset: int, total: int) -> None:
            logger.debug(f"Uploaded {offset} of {total} bytes.")

        return log

    async def upload_file(
        self,
        file: str | os.PathLike[str] | BinaryIO,
        progress: common.ProgressCallback | None = None,
    ) -> yarl.URL:
        """Upload a local file.

        :param file: Path of the file, or a binary file object. The data from
            the current position up to the end is uploaded.
        :param progress: Called before each read with the number of bytes read
            so far and the total number of bytes.
        :return: The location of the upload.
        :raises FileNotFoundError: If the path is not a regular file.
        """
        if isinstance(file, (str, os.PathLike)):
            if not os.path.isfile(file):
                msg = f"No such file: {os.fspath(file)}"
                raise FileNotFoundError(msg)

            file = await asyncio.to_thread(open, file, "rb")  # noqa: SIM115

        try:
            total_length = await asyncio.to_thread(_file_size, file)
        except OSError as e:
            file.close()
            msg = f"Cannot upload a stream of unknown size: {e}"
            raise common.UnknownLength(msg) from e

        stream = FileStream(file, total_length, progress or self._progress_logger())
        return await self.upload(total_length, stream)

    async def upload_from_url(
        self,
        source_url: str | yarl.URL,
        progress: common.ProgressCallback | None = None,
        source_session: aiohttp.ClientSession | None = None,
    ) -> yarl.URL:
        """Upload a file that is downloaded from another server at the same time.

        The download runs in a background task and is at most
        ``config.pipe_capacity`` bytes ahead of the upload.

        :param source_url: The location of the file to upload.
        :param progress: Called before each read with the number of bytes read
            so far and the total number of bytes.
        :param source_session: An aiohttp ClientSession to use for the download.
        :return: The location of the upload.
        :raises common.UnknownLength: If the source does not report its size.
        """
        session = source_session or aiohttp.ClientSession(timeout=self.config.timeout)
        try:
            total_length = await remote.content_length(
                session, source_url, ssl=self.config.ssl
            )
            logger.debug(f'Size of "{source_url}" is {total_length} bytes.')

            stream = PipeStream(
                remote.download(session, source_url, ssl=self.config.ssl),
                total_length,
                progress or self._progress_logger(),
                capacity=self.config.pipe_capacity,
            )
            stream.start()

            return await self.upload(total_length, stream)
        finally:
            if source_session is None:
                await session.close()
