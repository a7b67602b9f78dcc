"""
Top-level module of the tusstream package.
"""

from __future__ import annotations

from .client import Client
from .common import (
    BrokenUpload,
    ClientConfiguration,
    CreationRejected,
    MalformedResponse,
    Metadata,
    NoRemoteResource,
    OffsetQueryFailed,
    PatchRejected,
    ProgressCallback,
    ProtocolError,
    SourceError,
    SSLArgument,
    TransportFailure,
    TusError,
    UnknownLength,
    UnsupportedOperation,
    ValidationError,
)
from .stream import FileStream, Pipe, PipeStream, UploadStream

__all__ = (
    "BrokenUpload",
    "Client",
    "ClientConfiguration",
    "CreationRejected",
    "FileStream",
    "MalformedResponse",
    "Metadata",
    "NoRemoteResource",
    "OffsetQueryFailed",
    "PatchRejected",
    "Pipe",
    "PipeStream",
    "ProgressCallback",
    "ProtocolError",
    "SSLArgument",
    "SourceError",
    "TransportFailure",
    "TusError",
    "UnknownLength",
    "UnsupportedOperation",
    "UploadStream",
    "ValidationError",
)
