"""パケットモデルのユニットテスト"""

import re
from datetime import UTC, datetime

from k1s0_error_reporter.interfaces import ExceptionInterface, Message, Stacktrace, StacktraceFrame
from k1s0_error_reporter.models import (
    HOSTNAME,
    Packet,
    Severity,
    Tag,
    format_timestamp,
    new_event_id,
    parse_timestamp,
)

EVENT_ID_RE = re.compile(r"^[0-9a-f]{12}4[0-9a-f]{3}[89ab][0-9a-f]{15}$")


def test_severity_values() -> None:
    """Severity の値が正しいこと。"""
    assert Severity.DEBUG.value == "debug"
    assert Severity.INFO.value == "info"
    assert Severity.WARNING.value == "warning"
    assert Severity.ERROR.value == "error"
    assert Severity.FATAL.value == "fatal"


def test_new_event_id_format() -> None:
    """イベント ID が UUIDv4 形式の 32 桁小文字 16 進であること。"""
    assert EVENT_ID_RE.match(new_event_id())


def test_new_event_id_unique() -> None:
    """10,000 回生成しても ID が重複しないこと。"""
    ids = {new_event_id() for _ in range(10_000)}
    assert len(ids) == 10_000


def test_init_fills_required_fields() -> None:
    """init で必須フィールドが補完されること。"""
    packet = Packet(message="hello")
    packet.init("42")
    assert packet.project == "42"
    assert EVENT_ID_RE.match(packet.event_id)
    assert packet.timestamp is not None
    assert packet.level == Severity.ERROR
    assert packet.logger == "root"
    assert packet.platform == "python"
    assert packet.server_name == HOSTNAME


def test_init_keeps_existing_fields() -> None:
    """既に設定されたフィールドは上書きしないこと。"""
    ts = datetime(2024, 1, 2, 3, 4, 5, tzinfo=UTC)
    packet = Packet(
        message="hello",
        event_id="abc",
        project="7",
        timestamp=ts,
        level=Severity.INFO,
        logger="app",
        platform="other",
    )
    packet.init("42")
    assert packet.event_id == "abc"
    assert packet.project == "7"
    assert packet.timestamp == ts
    assert packet.level == Severity.INFO
    assert packet.logger == "app"
    assert packet.platform == "other"


def test_init_event_id_generated_once() -> None:
    """init を繰り返してもイベント ID は変わらないこと。"""
    packet = Packet(message="hello")
    packet.init("42")
    first = packet.event_id
    packet.init("42")
    assert packet.event_id == first


def test_init_culprit_from_interfaces() -> None:
    """culprit が最初に culprit を持つファクトから導出されること。"""
    stacktrace = Stacktrace(
        frames=[
            StacktraceFrame(function="outer", module="app.views", in_app=True),
            StacktraceFrame(function="inner", module="lib.util", in_app=False),
        ]
    )
    packet = Packet(
        message="boom",
        interfaces=[Message("boom"), ExceptionInterface(value="boom", stacktrace=stacktrace)],
    )
    packet.init("42")
    assert packet.culprit == "app.views.outer"


def test_add_tags_keeps_duplicates_in_order() -> None:
    """add_tags は重複キーを許し、挿入順を保つこと。"""
    packet = Packet(message="m")
    packet.add_tags({"env": "a", "region": "x"})
    packet.add_tags({"env": "b"})
    packet.add_tags(None)
    assert packet.tags == [Tag("env", "a"), Tag("region", "x"), Tag("env", "b")]


def test_new_adds_runtime_extra() -> None:
    """Packet.new が実行環境情報を extra に加えること。"""
    packet = Packet.new("m", Message("m"), extra={"user_key": 1})
    assert packet.extra["user_key"] == 1
    assert "runtime.version" in packet.extra
    assert "runtime.thread_count" in packet.extra
    assert len(packet.interfaces) == 1


def test_timestamp_millisecond_precision() -> None:
    """タイムスタンプがミリ秒精度の UTC 文字列になること。"""
    ts = datetime(2024, 5, 6, 7, 8, 9, 123456, tzinfo=UTC)
    assert format_timestamp(ts) == "2024-05-06T07:08:09.123"
    assert parse_timestamp("2024-05-06T07:08:09.123") == datetime(
        2024, 5, 6, 7, 8, 9, 123000, tzinfo=UTC
    )


def test_init_timestamp_truncated_to_milliseconds() -> None:
    """init が補完するタイムスタンプは送信形式と同じミリ秒精度であること。"""
    packet = Packet(message="hello")
    packet.init("42")
    assert packet.timestamp is not None
    assert packet.timestamp.microsecond % 1000 == 0
    assert parse_timestamp(format_timestamp(packet.timestamp)) == packet.timestamp
