"""Implementation of the requests of the tus protocol.

The :class:`Transport` issues the
`core protocol <https://tus.io/protocols/resumable-upload.html#core-protocol>`_
requests and the creation request of the
`creation extension <https://tus.io/protocols/resumable-upload.html#creation>`_
over a single persistent connection to one server.
"""

from __future__ import annotations

import asyncio
from typing import TYPE_CHECKING, Any

import aiohttp
import aiohttp.http_exceptions
import tenacity
import yarl

from . import common, retry
from .log import logger

if TYPE_CHECKING:  # pragma: no cover
    from collections.abc import Mapping
    from types import TracebackType

    import multidict

    from .stream import UploadStream


def _parse_integer_header(
    headers: multidict.CIMultiDictProxy[str], header_name: str
) -> int:
    """Convert a HTTP header into a non-negative integer value.

    A missing header is treated as zero. Raises a MalformedResponse if the
    conversion is not posible.
    """
    if header_name not in headers:
        return 0

    header_value = headers[header_name]

    try:
        if (result := int(header_value)) < 0:
            raise RuntimeError  # noqa: TRY301
    except Exception as e:
        msg = (
            f'Unable to convert "{header_name}" header '
            f'"{header_value}" to a positive integer.'
        )
        raise common.MalformedResponse(msg) from e

    return result


def _body_error(e: BaseException) -> BaseException | None:
    """Find the exception raised while the body of a request was produced.

    aiohttp reports such an exception as a connection error and attaches the
    original one as its cause.
    """
    cause = e.__cause__
    while cause is not None:
        if not isinstance(
            cause,
            (
                aiohttp.ClientError,
                aiohttp.http_exceptions.HttpProcessingError,
                OSError,
                asyncio.TimeoutError,
            ),
        ):
            return cause
        cause = cause.__cause__

    return None


class Transport:
    """Send the requests of the tus protocol to a server.

    All requests share one aiohttp session whose connector keeps a single
    connection to the server open. The path of the upload created with
    :meth:`create_resource` is remembered and used by the requests that
    follow.

    :param url: The creation endpoint of the server.
    :param config: Retry, SSL and timeout settings.
    :param client_session: An aiohttp ClientSession to use. If not given, a
        session is created by :meth:`open` and closed by :meth:`close`.
    """

    def __init__(
        self,
        url: str | yarl.URL,
        config: common.ClientConfiguration,
        client_session: aiohttp.ClientSession | None = None,
    ) -> None:
        self.url = yarl.URL(url)
        self.location: str | None = None
        self._config = config
        self._session = client_session
        self._owns_session = client_session is None

    async def open(self) -> None:
        """Create the HTTP session, if none was passed in."""
        if self._session is None:
            self._session = aiohttp.ClientSession(
                connector=aiohttp.TCPConnector(limit=1),
                timeout=self._config.timeout,
            )

    async def close(self) -> None:
        """Close the HTTP session, if it was created by :meth:`open`."""
        if self._owns_session and self._session is not None:
            await self._session.close()
            self._session = None

    async def __aenter__(self) -> Transport:
        await self.open()
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        await self.close()

    @property
    def upload_url(self) -> yarl.URL:
        """The URL of the upload on the server."""
        if self.location is None:
            msg = "Location of the upload is not known."
            raise common.NoRemoteResource(msg)

        return self.url.join(yarl.URL(self.location, encoded=True))

    async def _request(
        self,
        method: str,
        url: yarl.URL,
        headers: Mapping[str, str],
        data: Any = None,
    ) -> tuple[int, multidict.CIMultiDictProxy[str]]:
        """Send a single request and return the status and headers of the response.

        Exceptions raised while 'data' is read are passed on unchanged, so
        they are not mistaken for a connection failure.

        :raises common.TransportFailure: If the connection failed.
        """
        if self._session is None:
            msg = "Transport is not open."
            raise RuntimeError(msg)

        try:
            async with self._session.request(
                method, url, headers=headers, data=data, ssl=self._config.ssl
            ) as response:
                await response.read()
                return response.status, response.headers
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            body_error = _body_error(e)
            if body_error is None:
                msg = f"{method} request to {url} failed: {e!r}"
                raise common.TransportFailure(msg) from e

        logger.debug(f"{method} request to {url} aborted: {body_error!r}")
        raise body_error

    async def query_capabilities(self) -> frozenset[str]:
        """Get the protocol extensions the server supports.

        :return: The names listed in the "Tus-Extension" header.
        :raises common.TransportFailure: If the connection failed.
        """
        logger.debug("Querying server capabilities...")
        _, headers = await self._request("OPTIONS", self.url, {})

        extensions = headers.get("Tus-Extension", "").split(",")
        return frozenset(e.strip() for e in extensions if e.strip())

    async def create_resource(self, headers: Mapping[str, str], retries: int) -> str:
        """Create an upload.

        :param headers: The headers of the creation request.
        :param retries: Number of attempts in case the connection fails.
        :return: The path of the upload on the server.
        :raises common.CreationRejected: If the server did not create the upload.
        :raises common.MalformedResponse: If the "Location" header is missing.
        """
        retrying = retry.make_retrying(
            "upload creation", retries, self._config.max_retry_period_seconds
        )

        logger.debug("Creating upload...")
        try:
            async for attempt in retrying:
                with attempt:
                    status, response_headers = await self._request(
                        "POST", self.url, headers
                    )
        except tenacity.RetryError as e:
            msg = f"Cannot create the upload: {e.last_attempt.exception()}"
            raise common.CreationRejected(msg) from e.last_attempt.exception()

        if status != 201:  # noqa: PLR2004
            msg = f"Cannot create the upload, wrong status code {status}."
            raise common.CreationRejected(msg, status)

        if "Location" not in response_headers:
            msg = 'Upload created, but no "Location" header in response.'
            raise common.MalformedResponse(msg)

        try:
            location = yarl.URL(response_headers["Location"])
        except ValueError as e:
            msg = f'Unable to parse "Location" header: {e}'
            raise common.MalformedResponse(msg) from e

        if not location.is_absolute() and not location.path.startswith("/"):
            location = (self.url / location.path).with_query(location.query_string)
            logger.debug(f"Upload URL was relative, changed to '{location}'.")

        if not location.path or location.path == "/":
            msg = f'"Location" header "{location}" does not contain a path.'
            raise common.MalformedResponse(msg)

        self.location = location.raw_path_qs
        logger.debug(f"Upload created, upload URL is '{self.upload_url}'.")

        return self.location

    async def query_offset(self, headers: Mapping[str, str]) -> tuple[int, int]:
        """Get the number of uploaded bytes and the length of the upload.

        :param headers: The headers of the request.
        :return: The values of the "Upload-Offset" and "Upload-Length" headers.
        :raises common.NoRemoteResource: If no upload was created yet.
        :raises common.OffsetQueryFailed: On an unexpected status code.
        """
        url = self.upload_url

        logger.debug(f'Getting offset of "{url}"...')
        status, response_headers = await self._request("HEAD", url, headers)

        if status != 200:  # noqa: PLR2004
            msg = f"Cannot fetch offset and length, wrong status code {status}."
            raise common.OffsetQueryFailed(msg, status)

        return (
            _parse_integer_header(response_headers, "Upload-Offset"),
            _parse_integer_header(response_headers, "Upload-Length"),
        )

    async def send_chunk(
        self,
        headers: Mapping[str, str],
        retries: int,
        stream: UploadStream,
        length: int,
    ) -> int:
        """Upload data to the server.

        The body is read from 'stream' while it is sent. A retried attempt
        continues reading where the failed one stopped, as the stream can not
        be rewound.

        :param headers: The headers of the request.
        :param retries: Number of attempts in case the connection fails.
        :param stream: The data to upload.
        :param length: The number of bytes to send.
        :return: The offset reported by the server after the upload.
        :raises common.NoRemoteResource: If no upload was created yet.
        :raises common.PatchRejected: If the server did not accept the data.
        """
        url = self.upload_url
        retrying = retry.make_retrying(
            "upload", retries, self._config.max_retry_period_seconds
        )

        logger.debug(f'Uploading {length} bytes to "{url}"...')
        try:
            async for attempt in retrying:
                with attempt:
                    body = stream.chunks(length, self._config.chunk_size)
                    status, response_headers = await self._request(
                        "PATCH", url, headers, body
                    )
        except tenacity.RetryError as e:
            msg = f"Cannot upload data: {e.last_attempt.exception()}"
            raise common.PatchRejected(msg) from e.last_attempt.exception()

        if status != 204:  # noqa: PLR2004
            msg = f"Cannot upload data, wrong status code {status}."
            raise common.PatchRejected(msg, status)

        return _parse_integer_header(response_headers, "Upload-Offset")
