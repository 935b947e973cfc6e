"""送信完了の追跡（結果ハンドルと未完了カウンター）"""

from __future__ import annotations

import asyncio
import threading


class CaptureResult:
    """1 件のキャプチャに対する一度きりの結果ハンドル。

    配送・エラー・ドロップのいずれかで 1 回だけ解決される。エラーが無ければ
    ``wait`` は None を返す。
    """

    def __init__(self) -> None:
        self._done = threading.Event()
        self._lock = threading.Lock()
        self._error: Exception | None = None

    @classmethod
    def resolved(cls, error: Exception | None = None) -> CaptureResult:
        """解決済みのハンドルを返す。"""
        result = cls()
        result.resolve(error)
        return result

    def resolve(self, error: Exception | None = None) -> None:
        """結果を確定する。

        Raises:
            RuntimeError: 既に解決済みの場合
        """
        with self._lock:
            if self._done.is_set():
                raise RuntimeError("capture result already resolved")
            self._error = error
            self._done.set()

    def done(self) -> bool:
        return self._done.is_set()

    @property
    def error(self) -> Exception | None:
        """解決済みのエラー。未解決または成功時は None。"""
        return self._error

    def wait(self, timeout: float | None = None) -> Exception | None:
        """解決されるまで待機してエラーを返す。

        Raises:
            TimeoutError: timeout 秒以内に解決されなかった場合
        """
        if not self._done.wait(timeout):
            raise TimeoutError("capture result was not resolved in time")
        return self._error

    async def wait_async(self, timeout: float | None = None) -> Exception | None:
        """イベントループをブロックせずに解決を待つ。"""
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(None, self.wait, timeout)


class PendingCounter:
    """未完了イベント数のカウンター。0 になるまで待機できる。"""

    def __init__(self) -> None:
        self._cond = threading.Condition()
        self._count = 0

    @property
    def count(self) -> int:
        with self._cond:
            return self._count

    def add(self, n: int = 1) -> None:
        with self._cond:
            self._count += n

    def done(self) -> None:
        """1 件を完了とする。

        Raises:
            RuntimeError: カウンターが負になる場合
        """
        with self._cond:
            if self._count <= 0:
                raise RuntimeError("pending counter went negative")
            self._count -= 1
            if self._count == 0:
                self._cond.notify_all()

    def wait(self, timeout: float | None = None) -> bool:
        """カウンターが 0 になるまで待機する。タイムアウト時は False を返す。"""
        with self._cond:
            return self._cond.wait_for(lambda: self._count == 0, timeout)
