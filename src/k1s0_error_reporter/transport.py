"""パケット送信トランスポート"""

from __future__ import annotations

import logging
import threading
from abc import ABC, abstractmethod

import httpx

from .config import TransportOptions
from .encoding import serialize_packet
from .exceptions import ErrorReporterError, ErrorReporterErrorCodes
from .models import Packet

VERSION = "0.1.0"
USER_AGENT = f"k1s0-error-reporter/{VERSION}"

AUTH_HEADER = "X-Sentry-Auth"
ERROR_HEADER = "X-Sentry-Error"

logger = logging.getLogger(__name__)


class Transport(ABC):
    """トランスポート抽象基底クラス。"""

    @abstractmethod
    def send(self, url: str, auth_header: str, packet: Packet) -> None:
        """パケットを送信する。url が空の場合は何もしない。

        Raises:
            ErrorReporterError: 送信に失敗した場合
        """
        ...

    def close(self) -> None:
        """保持しているリソースを解放する。"""

    def __enter__(self) -> Transport:
        return self

    def __exit__(self, *args: object) -> None:
        self.close()


class HttpTransport(Transport):
    """httpx を使った HTTP トランスポート。"""

    def __init__(
        self,
        options: TransportOptions | None = None,
        client: httpx.Client | None = None,
    ) -> None:
        self._options = options or TransportOptions()
        self._client = client
        self._lock = threading.Lock()

    def _get_client(self) -> httpx.Client:
        with self._lock:
            if self._client is None:
                self._client = httpx.Client(
                    timeout=self._options.timeout_seconds,
                    verify=self._options.verify,
                )
            return self._client

    def send(self, url: str, auth_header: str, packet: Packet) -> None:
        if not url:
            return

        body, content_type = serialize_packet(packet)
        headers = {
            AUTH_HEADER: auth_header,
            "User-Agent": USER_AGENT,
            "Content-Type": content_type,
        }
        try:
            resp = self._get_client().post(url, content=body, headers=headers)
        except httpx.HTTPError as e:
            raise ErrorReporterError(
                code=ErrorReporterErrorCodes.SEND_FAILED,
                message=f"Failed to send packet {packet.event_id}: {e}",
                cause=e,
            ) from e

        if not resp.is_success:
            raise ErrorReporterError(
                code=ErrorReporterErrorCodes.HTTP_ERROR,
                message=(
                    f"got http status {resp.status_code} - "
                    f"x-sentry-error: {resp.headers.get(ERROR_HEADER, '')}"
                ),
            )
        logger.debug("Packet delivered", extra={"event_id": packet.event_id})

    def close(self) -> None:
        """HTTP クライアントを閉じる。"""
        with self._lock:
            if self._client is not None:
                self._client.close()
                self._client = None
