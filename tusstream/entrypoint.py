"""Defines the commands for executing the module directly."""

from __future__ import annotations

import argparse
import asyncio
import logging
import mimetypes
import pathlib
import sys
from typing import TYPE_CHECKING

import yarl

from . import common
from .client import Client

if TYPE_CHECKING:  # pragma: no cover
    from collections.abc import Sequence


def _is_url(source: str) -> bool:
    return yarl.URL(source).scheme in ("http", "https")


def _parse_metadata(args: argparse.Namespace) -> dict[str, bytes | None]:
    """Build the metadata from the source name and the '--metadata' arguments."""
    if _is_url(args.source):
        name = yarl.URL(args.source).name
    else:
        name = pathlib.Path(args.source).name

    metadata: dict[str, bytes | None] = {}
    if name:
        metadata["filename"] = name.encode()

    if mime_type := mimetypes.guess_type(name)[0]:
        metadata["mime_type"] = mime_type.encode()

    for meta in args.metadata:
        kv = meta.split("=", maxsplit=1)
        metadata[kv[0]] = kv[1].encode() if (len(kv) == 2) else None  # noqa: PLR2004

    return metadata


def _parse_headers(args: argparse.Namespace) -> dict[str, str]:
    headers = {}
    for header in args.header:
        name, sep, value = header.partition(":")
        if not sep:
            msg = f"Invalid header '{header}', expected 'Name: Value'."
            raise common.ValidationError(msg)
        headers[name.strip()] = value.strip()

    return headers


async def _run_upload(args: argparse.Namespace) -> yarl.URL:
    config = common.ClientConfiguration(retries=args.retries)
    client = Client(
        args.endpoint,
        metadata=_parse_metadata(args),
        headers=_parse_headers(args),
        config=config,
    )

    async with client:
        if _is_url(args.source):
            return await client.upload_from_url(args.source)

        return await client.upload_file(args.source)


def _upload(args: argparse.Namespace) -> int:
    """Implement the "upload" command.

    Returns the exit status for the program.
    """
    try:
        location = asyncio.run(_run_upload(args))
        print(str(location))  # noqa: T201
        return 0
    except KeyboardInterrupt:  # pragma: no cover
        pass
    except Exception as e:  # noqa: BLE001
        logging.error("Unable to upload file: %s", e)  # noqa: LOG015 TRY400

    return 1


def main(argv: Sequence[str] | None = None) -> int:
    """Entrypoint function for when the module is executed directly.

    :param argv: The command line arguments, 'sys.argv' if not given.
    :return: Exit status for the program.
    """
    interpreter = pathlib.Path(sys.executable).name if sys.executable else "python3"

    parser = argparse.ArgumentParser(prog=f"{interpreter} -m tusstream")
    parser.add_argument("--debug", action="store_true", help="log debug messages")
    subparsers = parser.add_subparsers()

    parser_upload = subparsers.add_parser(
        "upload",
        help="Upload a local file or the file at a URL to a tus (tus.io) server.",
    )
    parser_upload.add_argument(
        "--metadata",
        action="append",
        default=[],
        help="additional metadata to upload ('key[=value]')",
    )
    parser_upload.add_argument(
        "--header",
        action="append",
        default=[],
        help="additional header for all requests ('Name: Value')",
    )
    parser_upload.add_argument(
        "--retries",
        type=int,
        default=common.DEFAULT_RETRIES,
        help="number of attempts if the connection fails",
    )
    parser_upload.add_argument(
        "endpoint", type=str, help="creation URL of the tus server"
    )
    parser_upload.add_argument(
        "source", type=str, help="file to upload, a path or a http(s) URL"
    )
    parser_upload.set_defaults(func=_upload)

    args = parser.parse_args(argv)

    if args.debug:
        logging.basicConfig(level=logging.DEBUG)
    else:
        logging.basicConfig(level=logging.INFO)

    if not hasattr(args, "func"):
        sys.stderr.write("No command specified.\n\n")
        parser.print_help(file=sys.stderr)
        return 1

    return args.func(args)  # type: ignore[no-any-return]
