"""Access to a file on a HTTP server that is used as the upload source."""

from __future__ import annotations

from typing import TYPE_CHECKING

import aiohttp

from . import common
from .log import logger

if TYPE_CHECKING:  # pragma: no cover
    from collections.abc import AsyncGenerator

    import yarl


async def content_length(
    session: aiohttp.ClientSession,
    url: str | yarl.URL,
    ssl: common.SSLArgument = True,  # noqa: FBT002
) -> int:
    """Get the size of a remote file.

    :param session: HTTP session to use for connections.
    :param url: The location of the file.
    :param ssl: SSL validation mode, passed on to aiohttp.
    :return: The value of the "Content-Length" header.
    :raises common.UnknownLength: If the size is not reported or not positive,
        or if the server answers with an error status.
    """
    logger.debug(f'Getting size of "{url}"...')
    async with session.head(url, ssl=ssl, allow_redirects=True) as response:
        try:
            response.raise_for_status()
        except aiohttp.ClientResponseError as e:
            msg = f'Cannot get the size of "{url}": {e.status} {e.message}'
            raise common.UnknownLength(msg) from e

        header_value = response.headers.get("Content-Length")

    try:
        length = int(header_value) if header_value is not None else 0
    except ValueError:
        length = 0

    if length <= 0:
        msg = f'Cannot upload a stream of unknown size, "{url}" has none.'
        raise common.UnknownLength(msg)

    return length


async def download(
    session: aiohttp.ClientSession,
    url: str | yarl.URL,
    ssl: common.SSLArgument = True,  # noqa: FBT002
) -> AsyncGenerator[bytes]:
    """Download a remote file.

    :param session: HTTP session to use for connections.
    :param url: The location of the file.
    :param ssl: SSL validation mode, passed on to aiohttp.
    :return: The body of the response, in chunks of arbitrary size as they
        are received.
    """
    logger.debug(f'Downloading "{url}"...')
    async with session.get(url, ssl=ssl) as response:
        response.raise_for_status()

        async for chunk in response.content.iter_any():
            yield chunk

    logger.debug(f'Download of "{url}" finished.')
