"""イベント（パケット）データモデル"""

from __future__ import annotations

import os
import platform
import socket
import threading
import uuid
from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import StrEnum
from typing import Any

from .exceptions import ErrorReporterError, ErrorReporterErrorCodes
from .interfaces import Interface

PLATFORM = "python"
DEFAULT_LOGGER = "root"

_TIMESTAMP_FORMAT = "%Y-%m-%dT%H:%M:%S.%f"

try:
    HOSTNAME = socket.gethostname()
except OSError:
    HOSTNAME = ""


class Severity(StrEnum):
    """イベントの重大度。"""

    DEBUG = "debug"
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"
    FATAL = "fatal"


def format_timestamp(ts: datetime) -> str:
    """UTC のミリ秒精度タイムスタンプ文字列に変換する。"""
    if ts.tzinfo is not None:
        ts = ts.astimezone(UTC)
    return ts.strftime(_TIMESTAMP_FORMAT)[:-3]


def parse_timestamp(value: str) -> datetime:
    """format_timestamp の出力を UTC の datetime に戻す。"""
    return datetime.strptime(value, _TIMESTAMP_FORMAT).replace(tzinfo=UTC)


def new_event_id() -> str:
    """UUIDv4 形式の 32 桁小文字 16 進イベント ID を生成する。

    Raises:
        ErrorReporterError: 乱数源から読み取れなかった場合
    """
    try:
        return uuid.uuid4().hex
    except (OSError, NotImplementedError) as e:
        raise ErrorReporterError(
            code=ErrorReporterErrorCodes.EVENT_ID_GENERATION,
            message=f"Failed to generate event id: {e}",
            cause=e,
        ) from e


def runtime_extra() -> dict[str, Any]:
    """実行環境の情報を extra 用の辞書で返す。"""
    return {
        "runtime.version": platform.python_version(),
        "runtime.implementation": platform.python_implementation(),
        "runtime.cpu_count": os.cpu_count() or 0,
        "runtime.thread_count": threading.active_count(),
    }


@dataclass
class Tag:
    """キーと値のタグ。"""

    key: str
    value: str


@dataclass
class Packet:
    """1 件の診断イベント。"""

    message: str = ""

    # 空の場合は Packet.init で補完される
    event_id: str = ""
    project: str = ""
    timestamp: datetime | None = None
    level: Severity | str = ""
    logger: str = ""

    platform: str = ""
    culprit: str = ""
    server_name: str = ""
    release: str = ""
    environment: str = ""
    tags: list[Tag] = field(default_factory=list)
    modules: dict[str, str] = field(default_factory=dict)
    fingerprint: list[str] = field(default_factory=list)
    extra: dict[str, Any] = field(default_factory=dict)

    interfaces: list[Interface] = field(default_factory=list)

    @classmethod
    def new(
        cls,
        message: str,
        *interfaces: Interface,
        extra: Mapping[str, Any] | None = None,
    ) -> Packet:
        """メッセージとファクトからパケットを生成する。extra には実行環境情報が加わる。"""
        merged = dict(extra) if extra else {}
        merged.update(runtime_extra())
        return cls(message=message, interfaces=list(interfaces), extra=merged)

    def init(self, project: str) -> None:
        """必須フィールドを補完する。

        Raises:
            ErrorReporterError: イベント ID の生成に失敗した場合
        """
        if not self.project:
            self.project = project
        if not self.event_id:
            self.event_id = new_event_id()
        if self.timestamp is None:
            # 送信形式に合わせてミリ秒精度に切り詰める
            now = datetime.now(UTC)
            self.timestamp = now.replace(microsecond=now.microsecond // 1000 * 1000)
        if not self.level:
            self.level = Severity.ERROR
        if not self.logger:
            self.logger = DEFAULT_LOGGER
        if not self.server_name:
            self.server_name = HOSTNAME
        if not self.platform:
            self.platform = PLATFORM

        if not self.culprit:
            for inter in self.interfaces:
                if inter is None:
                    continue
                culprit = inter.culprit()
                if culprit:
                    self.culprit = culprit
                    break

    def add_tags(self, tags: Mapping[str, str] | None) -> None:
        """タグを追加する。既存の同名キーは上書きしない。"""
        if not tags:
            return
        for key, value in tags.items():
            self.tags.append(Tag(key, value))
