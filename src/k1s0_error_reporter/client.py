"""エラーレポートクライアント: キャプチャゲートとクライアント状態"""

from __future__ import annotations

import logging
import random
import re
from collections.abc import Callable, Mapping, Sequence
from dataclasses import dataclass, field
from typing import Any

from ._rwlock import RWLock
from .config import ClientOptions, compile_ignore_pattern
from .dsn import parse_dsn
from .exceptions import ErrorReporterError, ErrorReporterErrorCodes
from .interfaces import ExceptionInterface, Http, Interface, Message, User
from .models import Packet
from .pending import CaptureResult, PendingCounter
from .stacktrace import new_stacktrace, root_cause, stacktrace_from_traceback
from .transport import HttpTransport, Transport
from .worker import DeliveryWorker, OutgoingPacket

logger = logging.getLogger(__name__)

DropHandler = Callable[[Packet], None]


@dataclass
class _Context:
    """全イベントに付与するコンテキスト。"""

    user: User | None = None
    http: Http | None = None
    tags: dict[str, str] = field(default_factory=dict)

    def interfaces(self) -> list[Interface]:
        result: list[Interface] = []
        if self.user is not None:
            result.append(self.user)
        if self.http is not None:
            result.append(self.http)
        return result

    def clear(self) -> None:
        self.user = None
        self.http = None
        self.tags = {}


def _extract_extra(err: BaseException) -> dict[str, Any]:
    extra = getattr(err, "extra", None)
    if isinstance(extra, Mapping):
        return dict(extra)
    return {}


class Client:
    """エラーレポートクライアント。

    ``capture`` 系の操作は呼び出し元をブロックせず、送信結果は ``CaptureResult``
    でのみ通知する。設定の変更はキャプチャと並行して安全に行える。

    Attributes:
        tags: 全イベントに付与する既定タグ
        drop_handler: キューが満杯でイベントを破棄したときに呼ばれるコールバック
    """

    def __init__(
        self,
        options: ClientOptions | None = None,
        transport: Transport | None = None,
        environ: Mapping[str, str] | None = None,
    ) -> None:
        options = options or ClientOptions()
        self.tags: dict[str, str] = dict(options.tags)
        self.drop_handler: DropHandler | None = None

        self._lock = RWLock()
        self._context = _Context()
        self._url = ""
        self._project_id = ""
        self._auth_header = ""
        self._release = ""
        self._environment = ""
        self._default_logger_name = ""
        self._sample_rate = 1.0
        self._include_paths: list[str] = []
        self._ignore_pattern: re.Pattern[str] | None = None

        self._owns_transport = transport is None
        self._transport = transport or HttpTransport(options.transport)
        self._pending = PendingCounter()
        self._worker = DeliveryWorker(
            self._transport, self._destination, self._pending, options.queue_size
        )

        env = ClientOptions.from_env(environ)
        try:
            self.set_dsn(env.dsn)
        except ErrorReporterError as e:
            # 環境変数の DSN が不正でも送信先を空のまま生成を続ける
            logger.warning("Ignoring invalid SENTRY_DSN", extra={"error": str(e)})
        self.set_release(env.release)
        self.set_environment(env.environment)

        self.set_dsn(options.dsn)
        if options.release:
            self.set_release(options.release)
        if options.environment:
            self.set_environment(options.environment)
        self.set_default_logger_name(options.default_logger_name)
        self.set_sample_rate(options.sample_rate)
        self.set_ignore_errors(options.ignore_errors)
        self.set_include_paths(options.include_paths)

    @classmethod
    def from_dsn(
        cls,
        dsn: str,
        tags: Mapping[str, str] | None = None,
        transport: Transport | None = None,
    ) -> Client:
        """DSN と既定タグからクライアントを生成する。

        Raises:
            ErrorReporterError: DSN が不正な場合
        """
        client = cls(transport=transport)
        client.set_dsn(dsn)
        if tags:
            client.tags = dict(tags)
        return client

    # ------------------------------------------------------------------
    # 設定

    def set_dsn(self, dsn: str) -> None:
        """送信先を更新する。空文字列の場合は何もしない。

        Raises:
            ErrorReporterError: DSN が不正な場合
        """
        if not dsn:
            return
        parsed = parse_dsn(dsn)
        with self._lock.write():
            self._url = parsed.url
            self._auth_header = parsed.auth_header
            self._project_id = parsed.project_id

    def set_release(self, release: str) -> None:
        with self._lock.write():
            self._release = release

    def set_environment(self, environment: str) -> None:
        with self._lock.write():
            self._environment = environment

    def set_default_logger_name(self, name: str) -> None:
        """ロガー名が未設定のイベントに使う名前を設定する。"""
        with self._lock.write():
            self._default_logger_name = name

    def set_sample_rate(self, rate: float) -> None:
        """クライアント側のサンプリング率を設定する。

        Raises:
            ErrorReporterError: 0 以上 1 以下でない場合
        """
        if not 0.0 <= rate <= 1.0:
            raise ErrorReporterError(
                code=ErrorReporterErrorCodes.INVALID_SAMPLE_RATE,
                message=f"sample rate should be between 0 and 1, got {rate}",
            )
        with self._lock.write():
            self._sample_rate = rate

    def set_ignore_errors(self, errs: Sequence[str]) -> None:
        """メッセージがいずれかの正規表現に一致するイベントを送信しないようにする。

        Raises:
            ErrorReporterError: 正規表現が不正な場合
        """
        pattern = compile_ignore_pattern(errs)
        with self._lock.write():
            self._ignore_pattern = pattern

    def set_include_paths(self, paths: Sequence[str]) -> None:
        """アプリケーションフレームとみなすモジュール接頭辞を設定する。"""
        with self._lock.write():
            self._include_paths = list(paths)

    def set_user_context(self, user: User | None) -> None:
        with self._lock.write():
            self._context.user = user

    def set_http_context(self, http: Http | None) -> None:
        with self._lock.write():
            self._context.http = http

    def set_tags_context(self, tags: Mapping[str, str]) -> None:
        """コンテキストタグを追加する。同じキーは上書きされる。"""
        with self._lock.write():
            self._context.tags.update(tags)

    def clear_context(self) -> None:
        with self._lock.write():
            self._context.clear()

    @property
    def url(self) -> str:
        with self._lock.read():
            return self._url

    @property
    def project_id(self) -> str:
        with self._lock.read():
            return self._project_id

    @property
    def release(self) -> str:
        with self._lock.read():
            return self._release

    @property
    def environment(self) -> str:
        with self._lock.read():
            return self._environment

    @property
    def sample_rate(self) -> float:
        with self._lock.read():
            return self._sample_rate

    @property
    def include_paths(self) -> list[str]:
        with self._lock.read():
            return list(self._include_paths)

    # ------------------------------------------------------------------
    # キャプチャ

    def _destination(self) -> tuple[str, str]:
        with self._lock.read():
            return self._url, self._auth_header

    def _should_exclude(self, message: str) -> bool:
        with self._lock.read():
            pattern = self._ignore_pattern
        return pattern is not None and pattern.search(message) is not None

    def _context_interfaces(self) -> list[Interface]:
        with self._lock.read():
            return self._context.interfaces()

    def capture(
        self,
        packet: Packet | None,
        capture_tags: Mapping[str, str] | None = None,
    ) -> tuple[str, CaptureResult]:
        """パケットを非同期で送信キューに投入する。

        サンプリングや除外パターンで対象外となった場合は空の ID と成功済みの
        ハンドルを返す。キューが満杯の場合はパケットを破棄し、ハンドルを
        PACKET_DROPPED で解決する。呼び出し元には例外を送出しない。

        Returns:
            イベント ID と結果ハンドル
        """
        with self._lock.read():
            sample_rate = self._sample_rate
        if sample_rate < 1.0 and random.random() > sample_rate:
            return "", CaptureResult.resolved()

        if packet is None:
            return "", CaptureResult.resolved(
                ErrorReporterError(
                    code=ErrorReporterErrorCodes.INVALID_PACKET,
                    message="packet is None",
                )
            )

        if self._should_exclude(packet.message):
            return "", CaptureResult.resolved()

        # 以降のすべての完了経路で _pending.done() を呼ぶこと
        result = CaptureResult()
        self._pending.add()

        packet.add_tags(capture_tags)
        packet.add_tags(dict(self.tags))

        with self._lock.read():
            packet.add_tags(self._context.tags)
            project_id = self._project_id
            release = self._release
            environment = self._environment
            default_logger_name = self._default_logger_name

        if not packet.logger and default_logger_name:
            packet.logger = default_logger_name

        try:
            packet.init(project_id)
        except ErrorReporterError as e:
            result.resolve(e)
            self._pending.done()
            return "", result

        if not packet.release:
            packet.release = release
        if not packet.environment:
            packet.environment = environment

        try:
            self._worker.start()
            queued = self._worker.submit(OutgoingPacket(packet, result))
        except RuntimeError:
            self._pending.done()
            raise

        if not queued:
            self._handle_drop(packet)
            result.resolve(
                ErrorReporterError(
                    code=ErrorReporterErrorCodes.PACKET_DROPPED,
                    message="packet dropped",
                )
            )
            self._pending.done()

        return packet.event_id, result

    def _handle_drop(self, packet: Packet) -> None:
        logger.debug("Delivery queue full, packet dropped", extra={"event_id": packet.event_id})
        handler = self.drop_handler
        if handler is None:
            return
        try:
            handler(packet)
        except Exception as e:
            logger.warning(
                "Drop handler failed",
                extra={"event_id": packet.event_id, "error": str(e)},
            )

    def _capture_message(
        self,
        message: str,
        interfaces: Sequence[Interface],
        tags: Mapping[str, str] | None,
    ) -> tuple[str, CaptureResult]:
        if self._should_exclude(message):
            return "", CaptureResult.resolved()
        packet = Packet.new(
            message, *interfaces, *self._context_interfaces(), Message(message)
        )
        return self.capture(packet, tags)

    def capture_message(
        self,
        message: str,
        *interfaces: Interface,
        tags: Mapping[str, str] | None = None,
    ) -> str:
        """文字列メッセージをイベントとして送信する。"""
        event_id, _ = self._capture_message(message, interfaces, tags)
        return event_id

    def capture_message_and_wait(
        self,
        message: str,
        *interfaces: Interface,
        tags: Mapping[str, str] | None = None,
    ) -> tuple[str, Exception | None]:
        """capture_message と同じだが、送信完了まで待機してエラーを返す。"""
        event_id, result = self._capture_message(message, interfaces, tags)
        return event_id, result.wait()

    def _capture_error(
        self,
        err: BaseException | None,
        interfaces: Sequence[Interface],
        tags: Mapping[str, str] | None,
    ) -> tuple[str, CaptureResult]:
        if err is None:
            return "", CaptureResult.resolved()
        message = str(err)
        if self._should_exclude(message):
            return "", CaptureResult.resolved()

        cause = root_cause(err)
        include_paths = self.include_paths
        tb = cause.__traceback__ or err.__traceback__
        if tb is not None:
            stacktrace = stacktrace_from_traceback(tb, include_paths=include_paths)
        else:
            stacktrace = new_stacktrace(include_paths=include_paths)

        packet = Packet.new(
            message,
            *interfaces,
            *self._context_interfaces(),
            ExceptionInterface.from_exception(cause, stacktrace),
            extra=_extract_extra(err),
        )
        return self.capture(packet, tags)

    def capture_error(
        self,
        err: BaseException | None,
        *interfaces: Interface,
        tags: Mapping[str, str] | None = None,
    ) -> str:
        """例外をスタックトレース付きで送信する。

        根本原因は ``__cause__`` / ``__context__`` を辿って求める。送出されていない
        例外の場合は呼び出し元のスタックを使う（本ライブラリのフレームは除く）。
        """
        event_id, _ = self._capture_error(err, interfaces, tags)
        return event_id

    def capture_error_and_wait(
        self,
        err: BaseException | None,
        *interfaces: Interface,
        tags: Mapping[str, str] | None = None,
    ) -> tuple[str, Exception | None]:
        event_id, result = self._capture_error(err, interfaces, tags)
        return event_id, result.wait()

    def _capture_panic(
        self,
        fn: Callable[[], object],
        interfaces: Sequence[Interface],
        tags: Mapping[str, str] | None,
    ) -> tuple[Exception | None, str, CaptureResult]:
        try:
            fn()
        except Exception as exc:
            message = str(exc)
            if self._should_exclude(message):
                return exc, "", CaptureResult.resolved()
            # 最外側のトレースバックは本メソッド自身
            tb = exc.__traceback__.tb_next if exc.__traceback__ is not None else None
            stacktrace = stacktrace_from_traceback(tb, include_paths=self.include_paths)
            packet = Packet.new(
                message,
                *interfaces,
                *self._context_interfaces(),
                ExceptionInterface.from_exception(exc, stacktrace),
            )
            event_id, result = self.capture(packet, tags)
            return exc, event_id, result
        return None, "", CaptureResult.resolved()

    def capture_panic(
        self,
        fn: Callable[[], object],
        *interfaces: Interface,
        tags: Mapping[str, str] | None = None,
    ) -> tuple[Exception | None, str]:
        """fn を呼び出し、送出された例外を捕捉して送信する。

        例外は再送出しない。

        Returns:
            捕捉した例外（無ければ None）とイベント ID
        """
        exc, event_id, _ = self._capture_panic(fn, interfaces, tags)
        return exc, event_id

    def capture_panic_and_wait(
        self,
        fn: Callable[[], object],
        *interfaces: Interface,
        tags: Mapping[str, str] | None = None,
    ) -> tuple[Exception | None, str, Exception | None]:
        exc, event_id, result = self._capture_panic(fn, interfaces, tags)
        return exc, event_id, result.wait()

    # ------------------------------------------------------------------
    # ライフサイクル

    def wait(self, timeout: float | None = None) -> bool:
        """登録済みのすべてのイベントが完了するまで待機する。キューは閉じない。

        Returns:
            タイムアウトした場合は False
        """
        return self._pending.wait(timeout)

    def close(self) -> None:
        """送信キューを閉じる。以降の capture は RuntimeError になる。

        投入済みのパケットを送信し終えるまでブロックし、クライアントが生成した
        トランスポートはその後に閉じる。
        """
        self._worker.close()
        self._worker.join()
        if self._owns_transport:
            self._transport.close()

    def __enter__(self) -> Client:
        return self

    def __exit__(self, *args: object) -> None:
        self.wait()
        self.close()
