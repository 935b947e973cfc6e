"""配送ワーカー: 有界キューを単一スレッドで排出する"""

from __future__ import annotations

import logging
import queue
import threading
from collections.abc import Callable
from dataclasses import dataclass

from .config import DEFAULT_QUEUE_SIZE
from .exceptions import ErrorReporterError, ErrorReporterErrorCodes
from .models import Packet
from .pending import CaptureResult, PendingCounter
from .transport import Transport

logger = logging.getLogger(__name__)

_CLOSE = object()


@dataclass
class OutgoingPacket:
    """キューを流れる単位。確定済みパケットと結果ハンドルの組。"""

    packet: Packet
    result: CaptureResult


class DeliveryWorker:
    """キューからパケットを取り出して 1 件ずつ送信するワーカー。

    スレッドは最初の ``start`` 呼び出しで 1 度だけ起動し、``close`` まで動き続ける。
    送信は 1 イベントにつき 1 回だけ行い、再送はしない。
    """

    def __init__(
        self,
        transport: Transport,
        destination: Callable[[], tuple[str, str]],
        pending: PendingCounter,
        queue_size: int = DEFAULT_QUEUE_SIZE,
    ) -> None:
        self._transport = transport
        self._destination = destination
        self._pending = pending
        self._queue: queue.Queue[object] = queue.Queue(maxsize=queue_size)
        self._start_lock = threading.Lock()
        self._thread: threading.Thread | None = None
        self._closed = False

    def start(self) -> None:
        """ワーカースレッドを起動する。2 回目以降の呼び出しは何もしない。

        Raises:
            RuntimeError: 起動前に close された場合
        """
        if self._thread is not None:
            return
        with self._start_lock:
            if self._thread is not None:
                return
            if self._closed:
                raise RuntimeError("start on a closed delivery queue")
            thread = threading.Thread(
                target=self._run, name="k1s0-error-reporter-worker", daemon=True
            )
            thread.start()
            self._thread = thread
        logger.debug("Delivery worker started")

    def submit(self, outgoing: OutgoingPacket) -> bool:
        """ブロックせずにキューへ投入する。キューが満杯なら False を返す。

        Raises:
            RuntimeError: close 後に呼び出された場合
        """
        if self._closed:
            raise RuntimeError("submit on a closed delivery queue")
        try:
            self._queue.put_nowait(outgoing)
        except queue.Full:
            return False
        return True

    def close(self) -> None:
        """キューを閉じる。投入済みのパケットは送信されてからワーカーが終了する。"""
        with self._start_lock:
            if self._closed:
                return
            self._closed = True
            if self._thread is None:
                return
        self._queue.put(_CLOSE)

    def join(self, timeout: float | None = None) -> None:
        """ワーカースレッドの終了を待つ。"""
        thread = self._thread
        if thread is not None:
            thread.join(timeout)

    def _run(self) -> None:
        while True:
            item = self._queue.get()
            if item is _CLOSE:
                break
            assert isinstance(item, OutgoingPacket)
            self._deliver(item)
        # close と競合して終了マーカーの後ろに入ったパケットも送信する
        while True:
            try:
                item = self._queue.get_nowait()
            except queue.Empty:
                break
            if isinstance(item, OutgoingPacket):
                self._deliver(item)
        logger.debug("Delivery worker stopped")

    def _deliver(self, outgoing: OutgoingPacket) -> None:
        url, auth_header = self._destination()
        error: Exception | None = None
        try:
            self._transport.send(url, auth_header, outgoing.packet)
        except ErrorReporterError as e:
            error = e
        except Exception as e:
            error = ErrorReporterError(
                code=ErrorReporterErrorCodes.SEND_FAILED,
                message=f"Transport failed: {e}",
                cause=e,
            )
        if error is not None:
            logger.warning(
                "Failed to deliver packet",
                extra={"event_id": outgoing.packet.event_id, "error": str(error)},
            )
        outgoing.result.resolve(error)
        self._pending.done()
