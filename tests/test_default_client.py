"""既定クライアントのユニットテスト"""

from collections.abc import Iterator

import pytest
from conftest import STORE_URL, make_client
from k1s0_error_reporter import NoOpTransport, Packet, default_client


@pytest.fixture
def transport() -> Iterator[NoOpTransport]:
    transport = NoOpTransport()
    client = make_client(transport)
    default_client.set_default_client(client)
    yield transport
    client.wait(5)
    client.close()
    default_client.set_default_client(None)


def test_forwarding_functions(transport: NoOpTransport) -> None:
    """自由関数が既定クライアントに転送されること。"""
    default_client.set_release("3.0.0")
    default_client.set_environment("qa")
    default_client.set_default_logger_name("svc")
    assert default_client.url() == STORE_URL
    assert default_client.project_id() == "42"
    assert default_client.release() == "3.0.0"

    event_id, error = default_client.capture_message_and_wait("hello")
    assert error is None
    packet = transport.packets[0]
    assert packet.event_id == event_id
    assert packet.environment == "qa"
    assert packet.logger == "svc"


def test_forward_capture_error_and_panic(transport: NoOpTransport) -> None:
    """capture_error と capture_panic が転送されること。"""
    default_client.set_include_paths([__name__])
    assert default_client.include_paths() == [__name__]
    _, error = default_client.capture_error_and_wait(ValueError("bad"))
    assert error is None

    def explode() -> None:
        raise KeyError("k")

    exc, _, error = default_client.capture_panic_and_wait(explode)
    assert isinstance(exc, KeyError)
    assert error is None
    assert default_client.wait(5)
    assert [p.message for p in transport.packets] == ["bad", "'k'"]


def test_forward_ignore_errors_and_context(transport: NoOpTransport) -> None:
    """除外設定とコンテキストが既定クライアントに反映されること。"""
    default_client.set_ignore_errors("skip me")
    default_client.set_tags_context({"ctx": "1"})
    assert default_client.capture_message("please skip me") == ""
    default_client.capture_message("kept")
    default_client.clear_context()
    default_client.set_sample_rate(1.0)
    assert default_client.wait(5)
    assert [p.message for p in transport.packets] == ["kept"]


def test_disabled_default_client_is_noop() -> None:
    """無効化された既定クライアントでは capture が成功済みの no-op になること。"""
    default_client.set_default_client(None)
    event_id, result = default_client.capture(Packet(message="m"))
    assert event_id == ""
    assert result.wait(0) is None
    assert default_client.capture_message("m") == ""
    assert default_client.capture_error_and_wait(ValueError("x")) == ("", None)

    def explode() -> None:
        raise ValueError("x")

    exc, event_id = default_client.capture_panic(explode)
    assert isinstance(exc, ValueError)
    assert event_id == ""
    assert default_client.wait(0)
    with pytest.raises(RuntimeError):
        default_client.set_dsn("https://public@sentry.example.com/1")


def test_get_default_client_created_lazily(monkeypatch: pytest.MonkeyPatch) -> None:
    """未設定の場合は環境変数から既定クライアントを生成すること。"""
    monkeypatch.setenv("SENTRY_DSN", "https://public@env.example.com/5")
    monkeypatch.setattr(default_client, "_default", default_client._UNSET)
    client = default_client.get_default_client()
    assert client is not None
    assert client.project_id == "5"
    assert default_client.get_default_client() is client


def test_invalid_env_dsn_does_not_break_capture(monkeypatch: pytest.MonkeyPatch) -> None:
    """SENTRY_DSN が不正でも既定クライアントのキャプチャは例外を送出しないこと。"""
    monkeypatch.setenv("SENTRY_DSN", "https://sentry.example.com/42")
    monkeypatch.setattr(default_client, "_default", default_client._UNSET)
    event_id, error = default_client.capture_message_and_wait("hello")
    assert event_id
    assert error is None
    assert default_client.url() == ""
    event_id, error = default_client.capture_message_and_wait("again")
    assert event_id
    assert error is None
    default_client.close()
