"""Helpers for the creation extension.

The
`creation extension <https://tus.io/protocols/resumable-upload.html#creation>`_
defines how to reserve space on the server for uploading data to. The
metadata sent along with the creation request is encoded here.
"""

from __future__ import annotations

import base64
from collections.abc import Mapping
from typing import Any

from . import common


def _check_metadata_keys(metadata: common.Metadata) -> None:
    """Check if the metadata keys are valid.

    Raises a 'ValidationError' exception if a key is invalid.
    """
    for k in metadata:
        if not isinstance(k, str):
            msg = f"Metadata keys must be strings, got {type(k).__name__}."
            raise common.ValidationError(msg)

        if not k:
            msg = "Metadata keys must not be empty."
            raise common.ValidationError(msg)

        if not k.isascii():
            msg = "Metadata keys must only contain ASCII characters."
            raise common.ValidationError(msg)

        if " " in k:
            msg = "Metadata keys must not contain spaces."
            raise common.ValidationError(msg)

        if "," in k:
            msg = "Metadata keys must not contain commas."
            raise common.ValidationError(msg)


def check_metadata(metadata: Any) -> common.Metadata:
    """Make sure the given metadata object is valid.

    :param metadata: The object to check.
    :return: The metadata, unchanged.
    :raises common.ValidationError: If the metadata is malformed.
    """
    if not isinstance(metadata, Mapping):
        msg = f"Metadata must be a mapping, got {type(metadata).__name__}."
        raise common.ValidationError(msg)

    _check_metadata_keys(metadata)

    for k, v in metadata.items():
        if v is not None and not isinstance(v, (bytes, bytearray, memoryview)):
            msg = f'Value of metadata key "{k}" must be bytes or None.'
            raise common.ValidationError(msg)

    return metadata


def check_headers(headers: Any) -> Mapping[str, str]:
    """Make sure the given additional headers are valid.

    :param headers: The object to check.
    :return: The headers, unchanged.
    :raises common.ValidationError: If the headers are malformed.
    """
    if not isinstance(headers, Mapping):
        msg = f"Headers must be a mapping, got {type(headers).__name__}."
        raise common.ValidationError(msg)

    for k in headers:
        if not isinstance(k, str):
            msg = f"Header names must be strings, got {type(k).__name__}."
            raise common.ValidationError(msg)

    return headers


def encode_metadata(metadata: common.Metadata) -> str:
    """Encode the metadata to the value of the metadata header.

    :param metadata: The metadata to encode.
    :return: The value for the "Upload-Metadata" header.
    """
    _check_metadata_keys(metadata)

    def encode_value(value: bytes | None) -> str:
        if value is None:
            return ""

        encoded_bytes = base64.b64encode(value)
        encoded_string = encoded_bytes.decode()
        return " " + encoded_string

    pairs = [f"{k}{encode_value(v)}" for k, v in metadata.items()]
    return ",".join(pairs)
