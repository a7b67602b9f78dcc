from __future__ import annotations

import dataclasses
import io
import math
from typing import Any, Mapping, Optional

import aiohttp
import aiohttp.web
import pytest
import pytest_aiohttp
import pytest_asyncio
import yarl

import tusstream
import tusstream.transport


@dataclasses.dataclass
class MockTusServer:
    # Value of the "Tus-Extension" header.
    extensions: str

    # Number of times the respective handlers will return an error status.
    errors_create: int
    errors_upload: int

    # URL of the creation endpoint and value of the "Location" header.
    create_endpoint: yarl.URL
    location: str

    # The uploaded data will be accumulated here.
    data: Optional[bytearray]

    # Value of the "Upload-Length" header of the creation request.
    upload_length: Optional[int]

    # Metadata included in the creation will be placed here.
    metadata: Optional[str]

    # Complete HTTP headers used in the last request of each kind.
    post_headers: Optional[Mapping[str, str]]
    head_headers: Optional[Mapping[str, str]]
    patch_headers: Optional[Mapping[str, str]]

    # Methods of all requests, in the order they were received.
    requests: list[str]

    # "Upload-Offset" value of every successful PATCH response.
    patch_offsets: list[int]

    # Drop some bytes while uploading, but don't return an error.
    drop_upload: bool

    # Report this value instead of the real length of the upload.
    length_override: Optional[int]

    # The aiohttp test server object.
    server: aiohttp.test_utils.TestServer

    @property
    def upload_endpoint(self) -> yarl.URL:
        return self.create_endpoint.with_path("/files/abc")


@pytest_asyncio.fixture
async def tus_server(aiohttp_server: pytest_aiohttp.AiohttpServer) -> MockTusServer:
    """Return a fake tus server that can consume a single file."""

    async def handler_options(request: aiohttp.web.Request) -> aiohttp.web.Response:
        server: MockTusServer = request.app["state"]["server"]
        server.requests.append(request.method)

        headers = {
            "Tus-Resumable": "1.0.0",
            "Tus-Version": "1.0.0",
            "Tus-Extension": server.extensions,
        }

        raise aiohttp.web.HTTPNoContent(headers=headers)

    async def handler_create(request: aiohttp.web.Request) -> aiohttp.web.Response:
        server: MockTusServer = request.app["state"]["server"]
        server.requests.append(request.method)

        if server.errors_create > 0:
            server.errors_create -= 1
            raise aiohttp.web.HTTPInternalServerError()

        if "Upload-Metadata" in request.headers:
            server.metadata = request.headers["Upload-Metadata"]

        server.post_headers = request.headers
        server.upload_length = int(request.headers["Upload-Length"])

        # "Create" the upload.
        server.data = bytearray()

        headers = {"Location": server.location}
        raise aiohttp.web.HTTPCreated(headers=headers)

    async def handler_head(request: aiohttp.web.Request) -> aiohttp.web.Response:
        server: MockTusServer = request.app["state"]["server"]
        server.requests.append(request.method)

        server.head_headers = request.headers

        if server.data is None:
            raise aiohttp.web.HTTPNotFound()

        headers = {
            "Upload-Offset": str(len(server.data)),
            "Upload-Length": str(
                server.length_override
                if server.length_override is not None
                else server.upload_length
            ),
        }
        raise aiohttp.web.HTTPOk(headers=headers)

    async def handler_upload(request: aiohttp.web.Request) -> aiohttp.web.Response:
        server: MockTusServer = request.app["state"]["server"]
        server.requests.append(request.method)

        body = await request.read()

        server.patch_headers = request.headers

        if server.data is None:
            raise aiohttp.web.HTTPNotFound()

        if request.headers["Content-Type"] != "application/offset+octet-stream":
            raise aiohttp.web.HTTPUnsupportedMediaType()

        if int(request.headers["Upload-Offset"]) != len(server.data):
            raise aiohttp.web.HTTPConflict()

        if server.errors_upload > 0:
            server.errors_upload -= 1
            raise aiohttp.web.HTTPInternalServerError()

        if server.drop_upload:
            # Simulate the situation where the server can only store a subset
            # of the data that was uploaded.
            body = body[: math.ceil(len(body) / 2.0)]

        server.data.extend(body)
        server.patch_offsets.append(len(server.data))
        headers = {"Tus-Resumable": "1.0.0", "Upload-Offset": str(len(server.data))}
        raise aiohttp.web.HTTPNoContent(headers=headers)

    app = aiohttp.web.Application()
    app["state"] = {}
    app.router.add_route("OPTIONS", "/files", handler_options)
    app.router.add_route("POST", "/files", handler_create)
    app.router.add_route("HEAD", "/files/abc", handler_head)
    app.router.add_route("PATCH", "/files/abc", handler_upload)

    http_server = await aiohttp_server(app)

    server = MockTusServer(
        extensions="creation,termination",
        errors_create=0,
        errors_upload=0,
        create_endpoint=http_server.make_url("/files"),
        location="/files/abc",
        data=None,
        upload_length=None,
        metadata=None,
        post_headers=None,
        head_headers=None,
        patch_headers=None,
        requests=[],
        patch_offsets=[],
        drop_upload=False,
        length_override=None,
        server=http_server,
    )

    app["state"]["server"] = server

    return server


@dataclasses.dataclass
class SourceServer:
    # The data served by the server.
    data: bytes

    # Serves 'data' completely.
    url: yarl.URL

    # Does not report the size of the data.
    unknown_length_url: yarl.URL

    # Aborts the response after half of 'data' was sent.
    broken_url: yarl.URL


@pytest_asyncio.fixture
async def source_server(aiohttp_server: pytest_aiohttp.AiohttpServer) -> SourceServer:
    """Return a server that provides a file to upload."""

    data = bytes(range(256)) * 1024

    async def handler_source(_: aiohttp.web.Request) -> aiohttp.web.Response:
        return aiohttp.web.Response(body=data)

    async def handler_unknown_length(_: aiohttp.web.Request) -> aiohttp.web.Response:
        return aiohttp.web.Response()

    async def handler_broken(request: aiohttp.web.Request) -> aiohttp.web.StreamResponse:
        response = aiohttp.web.StreamResponse()
        response.content_length = len(data)
        await response.prepare(request)
        await response.write(data[: len(data) // 2])

        msg = "Source server failed."
        raise RuntimeError(msg)

    app = aiohttp.web.Application()
    app.router.add_get("/source", handler_source)
    app.router.add_get("/unknown_length", handler_unknown_length)
    app.router.add_route("HEAD", "/broken", handler_source)
    app.router.add_route("GET", "/broken", handler_broken)

    http_server = await aiohttp_server(app)

    return SourceServer(
        data=data,
        url=http_server.make_url("/source"),
        unknown_length_url=http_server.make_url("/unknown_length"),
        broken_url=http_server.make_url("/broken"),
    )


@pytest.fixture
def config() -> tusstream.ClientConfiguration:
    """Client settings that do not wait between retries."""
    return tusstream.ClientConfiguration(retries=3, max_retry_period_seconds=0.001)


@pytest.fixture
def memory_file() -> io.BytesIO:
    """Dummy data to use during tests."""
    return io.BytesIO(b"0123456789")


@pytest.fixture
def connection_failures(monkeypatch: pytest.MonkeyPatch) -> dict[str, int]:
    """Make requests fail with a connection error.

    The returned dictionary maps a HTTP method to the number of requests
    with that method that shall fail.
    """
    failures: dict[str, int] = {}
    request = tusstream.transport.Transport._request

    async def failing_request(
        self: tusstream.transport.Transport, method: str, *args: Any, **kwargs: Any
    ) -> Any:
        if failures.get(method, 0) > 0:
            failures[method] -= 1
            msg = f"{method} request failed: connection reset by peer"
            raise tusstream.TransportFailure(msg)

        return await request(self, method, *args, **kwargs)

    monkeypatch.setattr(tusstream.transport.Transport, "_request", failing_request)

    return failures
