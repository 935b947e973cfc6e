"""error_reporter ライブラリの例外型定義"""

from __future__ import annotations


class ErrorReporterError(Exception):
    """error_reporter ライブラリのエラー基底クラス。"""

    def __init__(
        self,
        code: str,
        message: str,
        cause: Exception | None = None,
    ) -> None:
        super().__init__(message)
        self.code = code
        if cause is not None:
            self.__cause__ = cause

    def __str__(self) -> str:
        return f"{self.code}: {super().__str__()}"


class ErrorReporterErrorCodes:
    """ErrorReporterError のエラーコード定数。"""

    # キャプチャ時（結果ハンドル経由でのみ通知）
    PACKET_DROPPED: str = "PACKET_DROPPED"
    INVALID_PACKET: str = "INVALID_PACKET"
    EVENT_ID_GENERATION: str = "EVENT_ID_GENERATION"

    # 送信・エンコード
    SERIALIZATION_ERROR: str = "SERIALIZATION_ERROR"
    UNABLE_TO_UNMARSHAL_JSON: str = "UNABLE_TO_UNMARSHAL_JSON"
    HTTP_ERROR: str = "HTTP_ERROR"
    SEND_FAILED: str = "SEND_FAILED"

    # 設定時（同期的に送出）
    MISSING_USER: str = "MISSING_USER"
    MISSING_PROJECT_ID: str = "MISSING_PROJECT_ID"
    INVALID_DSN: str = "INVALID_DSN"
    INVALID_SAMPLE_RATE: str = "INVALID_SAMPLE_RATE"
    INVALID_IGNORE_PATTERN: str = "INVALID_IGNORE_PATTERN"
    INVALID_CONFIG: str = "INVALID_CONFIG"
    READ_FILE: str = "READ_FILE_ERROR"
    PARSE_YAML: str = "PARSE_YAML_ERROR"
