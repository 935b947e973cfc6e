"""ファクト（インターフェース）のユニットテスト"""

import pytest
from k1s0_error_reporter.interfaces import (
    ExceptionInterface,
    Http,
    Interface,
    Message,
    RawInterface,
    Stacktrace,
    StacktraceFrame,
    User,
    decode_interface,
    register_interface,
    registered_interfaces,
)


def test_class_names() -> None:
    """各ファクトのクラス名が正しいこと。"""
    assert Message("m").class_name() == "logentry"
    assert ExceptionInterface(value="v").class_name() == "exception"
    assert Stacktrace().class_name() == "stacktrace"
    assert User().class_name() == "user"
    assert Http(url="http://x").class_name() == "request"


def test_registry_contains_builtin_interfaces() -> None:
    """組み込みファクトがレジストリに登録されていること。"""
    registry = registered_interfaces()
    assert registry["logentry"] is Message
    assert registry["request"] is Http


def test_register_duplicate_name_rejected() -> None:
    """同じクラス名の二重登録は ValueError になること。"""
    with pytest.raises(ValueError):

        @register_interface("user")
        class _Other(Interface):
            def to_dict(self) -> dict:
                return {}


def test_decode_unknown_interface() -> None:
    """未登録のクラス名は RawInterface として復元されること。"""
    inter = decode_interface("custom", {"a": 1})
    assert isinstance(inter, RawInterface)
    assert inter.class_name() == "custom"
    assert inter.to_dict() == {"a": 1}


def test_user_omits_empty_fields() -> None:
    """User の空フィールドは出力されないこと。"""
    assert User(id="1", email="a@example.com").to_dict() == {"id": "1", "email": "a@example.com"}


def test_stacktrace_culprit_uses_innermost_in_app_frame() -> None:
    """culprit は最も内側のアプリケーションフレームになること。"""
    stacktrace = Stacktrace(
        frames=[
            StacktraceFrame(function="main", module="app", in_app=True),
            StacktraceFrame(function="handle", module="app.handler", in_app=True),
            StacktraceFrame(function="get", module="httpx", in_app=False),
        ]
    )
    assert stacktrace.culprit() == "app.handler.handle"


def test_stacktrace_culprit_empty_without_in_app_frame() -> None:
    """アプリケーションフレームが無ければ culprit は空であること。"""
    stacktrace = Stacktrace(frames=[StacktraceFrame(function="get", module="httpx")])
    assert stacktrace.culprit() == ""
    assert ExceptionInterface(value="v").culprit() == ""


def test_exception_from_exception() -> None:
    """例外オブジェクトから型名とモジュールが取られること。"""
    inter = ExceptionInterface.from_exception(KeyError("missing"))
    assert inter.type == "KeyError"
    assert inter.module == ""
    assert inter.value == "'missing'"


def test_http_round_trip() -> None:
    """Http が辞書から復元できること。"""
    http = Http(
        url="https://example.com/path",
        method="POST",
        query_string="a=1",
        headers={"Accept": "application/json"},
        data={"k": "v"},
    )
    assert Http.from_dict(http.to_dict()) == http


def test_register_requires_from_dict() -> None:
    """from_dict を持たないクラスは登録できないこと。"""
    with pytest.raises(TypeError):

        @register_interface("no_decoder")
        class _NoDecoder(Interface):
            def to_dict(self) -> dict:
                return {}

    assert "no_decoder" not in registered_interfaces()
