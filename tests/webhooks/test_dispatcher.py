"""Tests for the outbound webhook dispatcher."""

from __future__ import annotations

import asyncio
import json

import httpx
import pytest

from aicap.errors import InvalidRequest, PrivateNetworkBlocked, ProtocolViolation
from aicap.webhooks.dispatcher import (
    SECRET_HEADER,
    USER_AGENT,
    DeliveryOutcome,
    DeliveryResult,
    WebhookDispatcher,
)


class RecordingTransport(httpx.MockTransport):
    """MockTransport that keeps every request it was handed."""

    def __init__(self, status_code: int = 200, text: str = "ok", exc: Exception | None = None) -> None:
        self.requests: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            self.requests.append(request)
            if exc is not None:
                raise exc
            return httpx.Response(status_code, text=text)

        super().__init__(handler)


def _dispatcher(transport: httpx.MockTransport, **kwargs) -> WebhookDispatcher:
    return WebhookDispatcher(http_client=httpx.AsyncClient(transport=transport), **kwargs)


class TestDeliveryResult:
    def test_messages(self) -> None:
        assert DeliveryResult(DeliveryOutcome.DELIVERED, 200).message == "Webhook delivered successfully."
        assert (
            DeliveryResult(DeliveryOutcome.REMOTE_REJECTED, 500).message
            == "Webhook failed. Target responded with status: 500."
        )
        assert DeliveryResult(
            DeliveryOutcome.TRANSPORT_FAILURE, error="timed out"
        ).message.startswith("Network connection failed or timed out")

    def test_only_delivered_is_success(self) -> None:
        assert DeliveryResult(DeliveryOutcome.DELIVERED).success
        assert not DeliveryResult(DeliveryOutcome.REMOTE_REJECTED, 404).success
        assert not DeliveryResult(DeliveryOutcome.TRANSPORT_FAILURE).success


class TestDispatch:
    """WebhookDispatcher.dispatch() end to end against a mock transport."""

    async def test_delivered(self, fake_dns) -> None:
        transport = RecordingTransport(status_code=200)
        dispatcher = _dispatcher(transport)

        result = await dispatcher.dispatch(
            "https://hooks.example.com/in", "s3cret", {"event": "content.complete", "id": 7}
        )

        assert result.success is True
        assert result.outcome is DeliveryOutcome.DELIVERED
        assert result.target_status == 200
        assert len(transport.requests) == 1

        sent = transport.requests[0]
        assert sent.method == "POST"
        assert sent.headers[SECRET_HEADER] == "s3cret"
        assert sent.headers["Content-Type"] == "application/json"
        assert sent.headers["User-Agent"] == USER_AGENT
        assert json.loads(sent.content) == {"event": "content.complete", "id": 7}

    async def test_connection_pinned_to_approved_address(self, fake_dns) -> None:
        transport = RecordingTransport()
        dispatcher = _dispatcher(transport)

        await dispatcher.dispatch("https://hooks.example.com/in?a=1", "s", {"k": "v"})

        sent = transport.requests[0]
        assert sent.url.host == "93.184.216.34"
        assert sent.url.path == "/in"
        assert sent.url.query == b"a=1"
        assert sent.headers["Host"] == "hooks.example.com"
        assert sent.extensions["sni_hostname"] == "hooks.example.com"

    async def test_unpinned_uses_original_url(self, fake_dns) -> None:
        transport = RecordingTransport()
        dispatcher = _dispatcher(transport, pin_resolved_ip=False)

        await dispatcher.dispatch("https://hooks.example.com/in", "s", {"k": "v"})

        assert transport.requests[0].url.host == "hooks.example.com"

    @pytest.mark.parametrize("status_code", [400, 404, 500, 503])
    async def test_remote_rejection_is_soft_failure(self, fake_dns, status_code: int) -> None:
        dispatcher = _dispatcher(RecordingTransport(status_code=status_code, text="nope"))

        result = await dispatcher.dispatch("https://hooks.example.com/in", "s", {"k": "v"})

        assert result.success is False
        assert result.outcome is DeliveryOutcome.REMOTE_REJECTED
        assert result.target_status == status_code
        assert result.error == f"Target responded with status: {status_code}"

    async def test_redirect_not_followed(self, fake_dns) -> None:
        transport = RecordingTransport(status_code=302)
        dispatcher = _dispatcher(transport)

        result = await dispatcher.dispatch("https://hooks.example.com/in", "s", {"k": "v"})

        assert result.outcome is DeliveryOutcome.REMOTE_REJECTED
        assert result.target_status == 302
        assert len(transport.requests) == 1

    @pytest.mark.parametrize(
        "exc",
        [httpx.ConnectError("connection refused"), httpx.ReadTimeout("timed out")],
    )
    async def test_transport_failure_is_soft_failure(self, fake_dns, exc: Exception) -> None:
        dispatcher = _dispatcher(RecordingTransport(exc=exc))

        result = await dispatcher.dispatch("https://hooks.example.com/in", "s", {"k": "v"})

        assert result.success is False
        assert result.outcome is DeliveryOutcome.TRANSPORT_FAILURE
        assert result.target_status is None
        assert result.error

    @pytest.mark.parametrize(
        ("url", "secret", "payload"),
        [
            (None, "s", {"k": "v"}),
            ("", "s", {"k": "v"}),
            ("https://hooks.example.com/in", None, {"k": "v"}),
            ("https://hooks.example.com/in", "", {"k": "v"}),
            ("https://hooks.example.com/in", "s", None),
        ],
    )
    async def test_missing_fields_rejected(self, fake_dns, url, secret, payload) -> None:
        transport = RecordingTransport()
        with pytest.raises(InvalidRequest, match="Missing destinationUrl"):
            await _dispatcher(transport).dispatch(url, secret, payload)
        assert transport.requests == []

    async def test_unserializable_payload_rejected(self, fake_dns) -> None:
        with pytest.raises(InvalidRequest):
            await _dispatcher(RecordingTransport()).dispatch(
                "https://hooks.example.com/in", "s", {"when": object()}
            )

    @pytest.mark.parametrize("payload", [{}, [], 0, False, ""])
    async def test_falsy_payload_still_sent(self, fake_dns, payload) -> None:
        transport = RecordingTransport()
        result = await _dispatcher(transport).dispatch("https://hooks.example.com/in", "s", payload)
        assert result.success
        assert json.loads(transport.requests[0].content) == payload

    async def test_ssrf_rejection_sends_nothing(self, fake_dns, addr_info) -> None:
        fake_dns.return_value = addr_info("10.0.0.5")
        transport = RecordingTransport()

        with pytest.raises(PrivateNetworkBlocked):
            await _dispatcher(transport).dispatch("https://internal.example.com/", "s", {"k": "v"})
        with pytest.raises(ProtocolViolation):
            await _dispatcher(transport).dispatch("http://hooks.example.com/", "s", {"k": "v"})

        assert transport.requests == []


class TrickleStream(httpx.AsyncByteStream):
    """Response body that sends one byte, then stalls."""

    async def __aiter__(self):
        yield b"x"
        await asyncio.sleep(30)
        yield b"y"


class EndlessStream(httpx.AsyncByteStream):
    """Response body that never ends."""

    def __init__(self) -> None:
        self.chunks_sent = 0

    async def __aiter__(self):
        while True:
            self.chunks_sent += 1
            yield b"e" * 1024


class TestDeliveryBounds:
    """Total deadline and bounded reads on the outbound call."""

    async def test_stalled_response_headers_time_out(self, fake_dns) -> None:
        async def handler(request: httpx.Request) -> httpx.Response:
            await asyncio.sleep(30)
            return httpx.Response(200)

        dispatcher = _dispatcher(httpx.MockTransport(handler), http_timeout=0.1)
        result = await dispatcher.dispatch("https://hooks.example.com/in", "s", {"k": "v"})

        assert result.outcome is DeliveryOutcome.TRANSPORT_FAILURE
        assert "time limit" in result.error

    async def test_trickling_error_body_times_out(self, fake_dns) -> None:
        transport = httpx.MockTransport(lambda request: httpx.Response(500, stream=TrickleStream()))
        dispatcher = _dispatcher(transport, http_timeout=0.1)

        result = await dispatcher.dispatch("https://hooks.example.com/in", "s", {"k": "v"})

        assert result.outcome is DeliveryOutcome.TRANSPORT_FAILURE
        assert result.target_status is None

    async def test_error_body_read_only_up_to_excerpt(self, fake_dns) -> None:
        stream = EndlessStream()
        transport = httpx.MockTransport(lambda request: httpx.Response(502, stream=stream))

        result = await _dispatcher(transport).dispatch(
            "https://hooks.example.com/in", "s", {"k": "v"}
        )

        assert result.outcome is DeliveryOutcome.REMOTE_REJECTED
        assert result.target_status == 502
        assert stream.chunks_sent == 1

    async def test_success_body_not_read(self, fake_dns) -> None:
        stream = EndlessStream()
        transport = httpx.MockTransport(lambda request: httpx.Response(200, stream=stream))

        result = await _dispatcher(transport).dispatch(
            "https://hooks.example.com/in", "s", {"k": "v"}
        )

        assert result.success
        assert stream.chunks_sent == 0


class TestInternationalHostnames:
    async def test_pinned_request_uses_idna_host(self, fake_dns) -> None:
        transport = RecordingTransport()

        result = await _dispatcher(transport).dispatch(
            "https://b\u00fccher.example/hook", "s", {"k": "v"}
        )

        assert result.success
        sent = transport.requests[0]
        assert sent.url.host == "93.184.216.34"
        assert sent.headers["Host"] == "xn--bcher-kva.example"
        assert sent.extensions["sni_hostname"] == "xn--bcher-kva.example"

    async def test_idna_host_with_port(self, fake_dns) -> None:
        transport = RecordingTransport()
        await _dispatcher(transport).dispatch("https://b\u00fccher.example:8443/hook", "s", {"k": "v"})
        assert transport.requests[0].headers["Host"] == "xn--bcher-kva.example:8443"

    async def test_unbuildable_request_is_transport_failure(self, fake_dns, monkeypatch) -> None:
        transport = RecordingTransport()
        dispatcher = _dispatcher(transport)

        def refuse(*args, **kwargs):
            raise httpx.InvalidURL("Invalid host")

        monkeypatch.setattr(dispatcher._client, "build_request", refuse)
        result = await dispatcher.dispatch("https://hooks.example.com/in", "s", {"k": "v"})

        assert result.outcome is DeliveryOutcome.TRANSPORT_FAILURE
        assert result.error == "Invalid host"
        assert transport.requests == []


class TestClose:
    async def test_shared_client_left_open(self) -> None:
        client = httpx.AsyncClient(transport=RecordingTransport())
        await WebhookDispatcher(http_client=client).close()
        assert not client.is_closed
        await client.aclose()

    async def test_owned_client_closed(self) -> None:
        dispatcher = WebhookDispatcher()
        await dispatcher.close()
        assert dispatcher._client.is_closed
