"""テスト用 NoOp トランスポート"""

from __future__ import annotations

import threading

from .models import Packet
from .transport import Transport


class NoOpTransport(Transport):
    """ネットワーク I/O を行わず、送信されたパケットを記録するトランスポート。"""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self.sent: list[tuple[str, str, Packet]] = []
        self.closed = False

    def send(self, url: str, auth_header: str, packet: Packet) -> None:
        with self._lock:
            self.sent.append((url, auth_header, packet))

    @property
    def packets(self) -> list[Packet]:
        """記録されたパケットを送信順に返す。"""
        with self._lock:
            return [p for _, _, p in self.sent]

    def close(self) -> None:
        self.closed = True
