"""Common constants and classes used in the tusstream package."""

from __future__ import annotations

import dataclasses
import ssl
from collections.abc import Callable, Mapping
from typing import Final, TypeAlias

import aiohttp

# The version of the tus protocol we implement.
TUS_PROTOCOL_VERSION: Final = "1.0.0"

# Media type of the body of PATCH requests.
OFFSET_CONTENT_TYPE: Final = "application/offset+octet-stream"

DEFAULT_RETRIES: Final = 5
DEFAULT_CHUNK_SIZE: Final = 50 * 1024 * 1024
DEFAULT_PIPE_CAPACITY: Final = 8 * 1024 * 1024

SSLArgument: TypeAlias = bool | ssl.SSLContext | aiohttp.Fingerprint

Metadata: TypeAlias = Mapping[str, bytes | None]

ProgressCallback: TypeAlias = Callable[[int, int], None]
"""Called with the number of bytes read so far and the total length."""


def _default_timeout() -> aiohttp.ClientTimeout:
    return aiohttp.ClientTimeout(total=None, sock_connect=30, sock_read=300)


@dataclasses.dataclass
class ClientConfiguration:
    """Class to hold the settings of a :class:`tusstream.Client`."""

    retries: int = DEFAULT_RETRIES
    """
    Number of attempts made for the creation and the data transfer request
    when the connection to the server fails.
    """

    max_retry_period_seconds: float = 60.0
    """
    Maximum time between retries, in seconds.

    Exponential backoff is used in case of communication errors,
    but the time between retries is caped by this value.
    """

    chunk_size: int = DEFAULT_CHUNK_SIZE
    """
    Maximum number of bytes read from the upload stream at once.
    """

    pipe_capacity: int = DEFAULT_PIPE_CAPACITY
    """
    Number of bytes a remote source may be downloaded ahead of the upload.
    """

    protocol_version: str = TUS_PROTOCOL_VERSION
    """
    Value of the "Tus-Resumable" header.
    """

    ssl: SSLArgument = True
    """
    'ssl' argument passed on to the aiohttp calls.
    """

    timeout: aiohttp.ClientTimeout = dataclasses.field(default_factory=_default_timeout)
    """
    Timeouts of the HTTP session. These are the only bound on how long a
    single request may block.
    """


class TusError(Exception):
    """Base class of all errors raised by tusstream."""


class ValidationError(TusError, ValueError):
    """An argument passed to the client is invalid."""


class UnknownLength(TusError):
    """The length of the data to upload is not known."""


class UnsupportedOperation(TusError):
    """The server does not advertise a required protocol extension."""


class NoRemoteResource(TusError):
    """An upload operation was attempted before the upload was created."""


class TransportFailure(TusError):
    """The connection to the server failed during a single request."""


class SourceError(TusError):
    """The stream that is uploaded failed or ended prematurely."""


class BrokenUpload(TusError):
    """The data transfer failed, or the server did not receive all of it.

    The original exception, if any, is available as ``__cause__``.
    """


class ProtocolError(TusError):
    """Server response did not follow the tus protocol."""


class MalformedResponse(ProtocolError):
    """A required header of the server response is missing or invalid."""


class _StatusError(ProtocolError):
    def __init__(self, message: str, status: int | None = None) -> None:
        super().__init__(message)
        self.status = status
        """HTTP status of the last response, or None if there was none."""


class CreationRejected(_StatusError):
    """The server did not create the upload."""


class OffsetQueryFailed(_StatusError):
    """The server did not report the offset of the upload."""


class PatchRejected(_StatusError):
    """The server did not accept the uploaded data."""
