r"""Unit tests for streaming requests."""

from __future__ import annotations

import asyncio
from unittest.mock import Mock

import httpx
import pytest

from apiary import StreamingRequest, request_stream
from apiary.exceptions import ApiaryError, NetError, RedirectError, ResponseError
from apiary.streaming import DuplexPipe
from tests.helpers import TEST_URL, MockServer, echo, hang, reply, streamed

################################
#     Tests for DuplexPipe     #
################################


@pytest.mark.asyncio
async def test_duplex_pipe_writable() -> None:
    pipe = DuplexPipe(high_water_mark=4, writable=True)
    await pipe.write(b"a")
    await pipe.write("b")
    await pipe.end()

    assert [chunk async for chunk in pipe.iter_writable()] == [b"a", b"b"]


@pytest.mark.asyncio
async def test_duplex_pipe_not_attached() -> None:
    pipe = DuplexPipe(high_water_mark=1, writable=False)

    with pytest.raises(ApiaryError, match="writeable stream is not attached"):
        await pipe.write(b"a")


@pytest.mark.asyncio
async def test_duplex_pipe_write_after_end() -> None:
    pipe = DuplexPipe(high_water_mark=1, writable=True)
    await pipe.end()
    await pipe.end()

    with pytest.raises(ApiaryError, match="write after end"):
        await pipe.write(b"a")


@pytest.mark.asyncio
async def test_duplex_pipe_backpressure() -> None:
    """Test that a full queue suspends the producer."""
    pipe = DuplexPipe(high_water_mark=1, writable=True)
    await pipe.write(b"a")
    blocked = asyncio.ensure_future(pipe.write(b"b"))
    await asyncio.sleep(0)

    assert not blocked.done()

    assert await pipe.writable.get() == b"a"
    await blocked
    assert await pipe.writable.get() == b"b"


@pytest.mark.asyncio
async def test_duplex_pipe_readable_error() -> None:
    pipe = DuplexPipe(high_water_mark=2, writable=False)
    chunks = []

    async def consume() -> None:
        async for chunk in pipe.iter_readable():
            chunks.append(chunk)

    task = asyncio.ensure_future(consume())
    await pipe.push(b"a")
    await pipe.push(ValueError("broken"))

    with pytest.raises(ValueError, match="broken"):
        await task
    assert chunks == [b"a"]


######################################
#     Tests for StreamingRequest     #
######################################


@pytest.mark.asyncio
async def test_stream_get() -> None:
    server = MockServer(reply(200, content=b"hello world", headers={"X-Id": "1"}))
    async with server.client() as client:
        stream = request_stream(TEST_URL, conn=client)
        assert isinstance(stream, StreamingRequest)
        response = await stream.response()
        body = b"".join([chunk async for chunk in stream])

    assert response.status == 200
    assert response.headers.get("x-id") == "1"
    assert body == b"hello world"
    assert server.requests[0].method == "GET"


@pytest.mark.asyncio
async def test_stream_get_rejects_writes() -> None:
    server = MockServer(reply(200, content=b"ok"))
    async with server.client() as client:
        async with request_stream(TEST_URL, conn=client) as stream:
            with pytest.raises(ApiaryError, match="did you mean to POST/PUT/PATCH instead"):
                await stream.write(b"data")


@pytest.mark.asyncio
async def test_stream_post_body() -> None:
    """Test that written chunks are forwarded as the request body."""
    server = MockServer(echo)
    async with server.client() as client:
        stream = request_stream(TEST_URL, method="POST", conn=client)
        await stream.write(b"chunk 1, ")
        await stream.write("chunk 2")
        await stream.end()
        response = await stream.response()
        body = b"".join([chunk async for chunk in stream])

    assert response.status == 200
    assert body == b"chunk 1, chunk 2"
    assert server.requests[0].content == b"chunk 1, chunk 2"


@pytest.mark.asyncio
async def test_stream_follows_redirect_for_get() -> None:
    on_response = Mock()
    server = MockServer(reply(302, headers={"Location": "/next"}), reply(200, content=b"done"))
    async with server.client() as client:
        stream = request_stream(TEST_URL, conn=client)
        stream.on_response(on_response)
        response = await stream.response()
        body = b"".join([chunk async for chunk in stream])

    assert response.status == 200
    assert body == b"done"
    assert [r.url.path for r in server.requests] == ["/data", "/next"]
    assert [c.args[0].status for c in on_response.call_args_list] == [302, 200]


@pytest.mark.asyncio
async def test_stream_redirect_drains_streamed_body() -> None:
    server = MockServer(
        streamed(301, chunks=(b"moved ", b"permanently"), headers={"Location": "/next"}),
        streamed(200, chunks=(b"do", b"ne")),
    )
    async with server.client() as client:
        stream = request_stream(TEST_URL, conn=client)
        response = await stream.response()
        body = b"".join([chunk async for chunk in stream])

    assert response.status == 200
    assert body == b"done"
    assert server.calls == 2


@pytest.mark.asyncio
async def test_stream_post_303_becomes_get() -> None:
    server = MockServer(reply(303, headers={"Location": "/result"}), reply(200, content=b"ok"))
    async with server.client() as client:
        stream = request_stream(TEST_URL, method="POST", conn=client)
        await stream.write(b"data")
        await stream.end()
        response = await stream.response()
        body = b"".join([chunk async for chunk in stream])

    assert response.status == 200
    assert body == b"ok"
    assert [r.method for r in server.requests] == ["POST", "GET"]
    assert server.requests[1].content == b""


@pytest.mark.asyncio
async def test_stream_post_307_is_refused() -> None:
    """Test that an unbuffered body cannot follow a method-preserving
    redirect."""
    on_error = Mock()
    server = MockServer(reply(307, headers={"Location": "/other"}))
    async with server.client() as client:
        stream = request_stream(TEST_URL, method="PUT", conn=client)
        stream.on_error(on_error)
        await stream.write(b"data")
        await stream.end()
        with pytest.raises(RedirectError, match="try the non-streaming api"):
            await stream.response()
        with pytest.raises(RedirectError):
            async for _ in stream:
                pass

    assert server.calls == 1
    err, res = on_error.call_args.args
    assert isinstance(err, RedirectError)
    assert res.status == 307


@pytest.mark.asyncio
async def test_stream_error_status() -> None:
    """Test that a non-2xx response is delivered, with the error raised
    by the body iterator."""
    on_error = Mock()
    server = MockServer(reply(404, json={"error": "missing"}))
    async with server.client() as client:
        stream = request_stream(TEST_URL, conn=client)
        stream.on_error(on_error)
        response = await stream.response()
        with pytest.raises(ResponseError) as exc_info:
            async for _ in stream:
                pass

    assert response.status == 404
    assert exc_info.value.status == 404
    assert exc_info.value.body == {"error": "missing"}
    on_error.assert_called_once_with(exc_info.value, response)


@pytest.mark.asyncio
async def test_stream_no_retry() -> None:
    server = MockServer(reply(429))
    async with server.client() as client:
        stream = request_stream(TEST_URL, max_attempts=5, conn=client)
        response = await stream.response()
        with pytest.raises(ResponseError):
            async for _ in stream:
                pass

    assert response.status == 429
    assert server.calls == 1


@pytest.mark.asyncio
async def test_stream_applies_auth_header() -> None:
    class Agent:
        def to_header(self) -> str:
            return "Bearer token"

    server = MockServer(reply(200, content=b""))
    async with server.client() as client:
        stream = request_stream(TEST_URL, auth=Agent(), conn=client)
        await stream.response()
        assert [chunk async for chunk in stream] == []

    assert server.requests[0].headers["authorization"] == "Bearer token"


@pytest.mark.asyncio
async def test_stream_no_content() -> None:
    server = MockServer(reply(204))
    async with server.client() as client:
        stream = request_stream(TEST_URL, method="DELETE", conn=client)
        response = await stream.response()
        assert [chunk async for chunk in stream] == []

    assert response.status == 204


@pytest.mark.asyncio
async def test_stream_net_error() -> None:
    on_error = Mock()
    server = MockServer(httpx.ConnectError("connection refused"))
    async with server.client() as client:
        stream = request_stream(TEST_URL, conn=client)
        stream.on_error(on_error)
        with pytest.raises(NetError, match="connection refused"):
            await stream.response()
        with pytest.raises(NetError):
            async for _ in stream:
                pass

    assert on_error.call_args.args[1] is None


@pytest.mark.asyncio
async def test_stream_aclose_cancels() -> None:
    async with httpx.AsyncClient(transport=httpx.MockTransport(hang)) as client:
        stream = request_stream(TEST_URL, conn=client)
        await asyncio.sleep(0)
        await stream.aclose()

        with pytest.raises(asyncio.CancelledError):
            await stream.response()


@pytest.mark.asyncio
async def test_stream_context_manager_cancels_on_exit() -> None:
    async with httpx.AsyncClient(transport=httpx.MockTransport(hang)) as client:
        async with request_stream(TEST_URL, conn=client) as stream:
            await asyncio.sleep(0)

        assert stream.token.cancelled
