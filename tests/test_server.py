"""Tests for the FastAPI webhooks and the telephony WebSocket endpoint."""

import pytest
from fastapi import WebSocketDisconnect
from fastapi.testclient import TestClient

from tablebridge.bridge import CallBridge
from tablebridge.config import BridgeConfig
from tablebridge.server import EMPTY_TWIML, create_app, sms_reply_body, stream_url

from conftest import FakeMenu, FakeMessenger, FakeTransport


class CountingMenu(FakeMenu):
    def __init__(self):
        super().__init__()
        self.ingested = 0

    async def ingest(self):
        self.ingested += 1
        return 0


@pytest.fixture
def menu():
    return CountingMenu()


@pytest.fixture
def messenger():
    return FakeMessenger()


@pytest.fixture
def app(config, menu, messenger, tmp_path):
    return create_app(config, menu=menu, messenger=messenger, static_dir=tmp_path / "missing")


class TestHelpers:

    def test_stream_url_from_host(self, config):
        assert stream_url(config, "abc.ngrok.app") == "wss://abc.ngrok.app/twilio-stream"

    def test_stream_url_public_base_overrides_host(self):
        config = BridgeConfig.from_dict({"public_base_url": "https://bridge.example.com/"})
        assert stream_url(config, "internal:3000") == "wss://bridge.example.com/twilio-stream"

    def test_sms_reply_lists_configured_links_only(self, config):
        body = sms_reply_body(config)
        assert body.startswith("Thanks for contacting Sip & Sizzle!")
        assert "Reservations: https://example.com/reserve" in body
        assert "Pickup: https://example.com/order" in body
        assert "Beverage Menu" not in body


class TestHttpRoutes:

    def test_root(self, app):
        with TestClient(app) as client:
            response = client.get("/")
        assert response.status_code == 200
        assert response.text == "OK"

    def test_health(self, app):
        with TestClient(app) as client:
            response = client.get("/health")
        assert response.json() == {"status": "ok", "active_calls": 0}

    def test_menus_ingested_at_startup(self, app, menu):
        with TestClient(app):
            pass
        assert menu.ingested == 1

    def test_voice_returns_stream_twiml(self, app):
        with TestClient(app) as client:
            response = client.post("/voice")
        assert response.status_code == 200
        assert response.headers["content-type"].startswith("text/xml")
        assert "<Connect>" in response.text
        assert 'url="wss://testserver/twilio-stream"' in response.text

    def test_voice_get_is_accepted(self, app):
        with TestClient(app) as client:
            assert client.get("/voice").status_code == 200

    def test_voice_falls_back_to_empty_twiml(self, app, monkeypatch):
        def broken(config, host):
            raise RuntimeError("no host")

        monkeypatch.setattr("tablebridge.server.stream_url", broken)
        with TestClient(app) as client:
            response = client.post("/voice")
        assert response.status_code == 200
        assert response.text == EMPTY_TWIML

    def test_voice_test_says_name(self, app):
        with TestClient(app) as client:
            response = client.get("/voice-test")
        assert "<Say" in response.text
        assert "Sip &amp; Sizzle test line" in response.text

    def test_sms_auto_reply(self, app, messenger):
        with TestClient(app) as client:
            response = client.post("/sms", data={"From": "+15550002222", "Body": "hi"})
        assert response.status_code == 204
        assert len(messenger.delivered) == 1
        to, body = messenger.delivered[0]
        assert to == "+15550002222"
        assert body.startswith("Thanks for contacting")

    def test_sms_failure_still_acknowledged(self, config, menu, tmp_path):
        app = create_app(
            config, menu=menu, messenger=FakeMessenger(fail=True), static_dir=tmp_path
        )
        with TestClient(app) as client:
            response = client.post("/sms", data={"From": "+15550002222"})
        assert response.status_code == 204

    def test_static_files(self, config, menu, messenger, tmp_path):
        (tmp_path / "logo.txt").write_text("sizzle")
        app = create_app(config, menu=menu, messenger=messenger, static_dir=tmp_path)
        with TestClient(app) as client:
            response = client.get("/public/logo.txt")
        assert response.status_code == 200
        assert response.text == "sizzle"


class TestTelephonySocket:

    def test_closed_when_agent_unreachable(self, config, menu, messenger, tmp_path):
        bridge = CallBridge(
            config,
            menu=menu,
            messenger=messenger,
            agent_transport_factory=lambda: FakeTransport(fail_connect=True),
        )
        app = create_app(config, bridge=bridge, menu=menu, messenger=messenger, static_dir=tmp_path)
        with TestClient(app) as client:
            with client.websocket_connect("/twilio-stream") as ws:
                with pytest.raises(WebSocketDisconnect):
                    ws.receive_text()
        assert bridge.sessions.active_count == 0
