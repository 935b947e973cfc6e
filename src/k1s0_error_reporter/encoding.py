"""パケットのワイヤーフォーマット変換"""

from __future__ import annotations

import base64
import binascii
import json
import zlib
from typing import Any

from .exceptions import ErrorReporterError, ErrorReporterErrorCodes
from .interfaces import Interface, decode_interface
from .models import Packet, Severity, Tag, format_timestamp, parse_timestamp

CONTENT_TYPE_JSON = "application/json"
CONTENT_TYPE_COMPRESSED = "application/octet-stream"

# この長さを超える JSON は圧縮して送る
COMPRESSION_THRESHOLD = 1000

_REQUIRED_FIELDS = ("message", "event_id", "project", "timestamp", "level", "logger")
_OPTIONAL_FIELDS = (
    "platform",
    "culprit",
    "server_name",
    "release",
    "environment",
    "tags",
    "modules",
    "fingerprint",
    "extra",
)


def packet_to_dict(packet: Packet) -> dict[str, Any]:
    """パケットを JSON 化可能な辞書に変換する。ファクトはクラス名のフィールドとして平坦化する。"""
    data: dict[str, Any] = {
        "message": packet.message,
        "event_id": packet.event_id,
        "project": packet.project,
        "timestamp": format_timestamp(packet.timestamp) if packet.timestamp else "",
        "level": str(packet.level),
        "logger": packet.logger,
    }
    optional: dict[str, Any] = {
        "platform": packet.platform,
        "culprit": packet.culprit,
        "server_name": packet.server_name,
        "release": packet.release,
        "environment": packet.environment,
        "tags": [[t.key, t.value] for t in packet.tags],
        "modules": dict(packet.modules),
        "fingerprint": list(packet.fingerprint),
        "extra": dict(packet.extra),
    }
    data.update({k: v for k, v in optional.items() if v})

    # 同じクラス名のファクトは後のものが優先される
    for inter in packet.interfaces:
        if inter is not None:
            data[inter.class_name()] = inter.to_dict()
    return data


def packet_json(packet: Packet) -> bytes:
    """パケットを JSON バイト列に変換する。

    Raises:
        ErrorReporterError: JSON 化できない値が含まれる場合
    """
    try:
        return json.dumps(
            packet_to_dict(packet), separators=(",", ":"), ensure_ascii=False
        ).encode("utf-8")
    except (TypeError, ValueError) as e:
        raise ErrorReporterError(
            code=ErrorReporterErrorCodes.SERIALIZATION_ERROR,
            message=f"Failed to marshal packet {packet.event_id} to JSON: {e}",
            cause=e,
        ) from e


def serialize_packet(packet: Packet) -> tuple[bytes, str]:
    """送信用のボディと Content-Type を返す。

    JSON が閾値を超える場合は最大圧縮率の zlib で圧縮し、標準 base64 でエンコードする。
    """
    body = packet_json(packet)
    if len(body) > COMPRESSION_THRESHOLD:
        return base64.b64encode(zlib.compress(body, 9)), CONTENT_TYPE_COMPRESSED
    return body, CONTENT_TYPE_JSON


def _decode_tags(raw: Any) -> list[Tag]:  # noqa: ANN401
    if isinstance(raw, list):
        tags = []
        for item in raw:
            if not isinstance(item, list) or len(item) != 2:
                raise ErrorReporterError(
                    code=ErrorReporterErrorCodes.UNABLE_TO_UNMARSHAL_JSON,
                    message=f"invalid tag: {item!r}",
                )
            tags.append(Tag(str(item[0]), str(item[1])))
        return tags
    if isinstance(raw, dict):
        return [Tag(str(k), str(v)) for k, v in raw.items()]
    raise ErrorReporterError(
        code=ErrorReporterErrorCodes.UNABLE_TO_UNMARSHAL_JSON,
        message=f"tags must be a list or an object, got {type(raw).__name__}",
    )


def _decode_level(raw: str) -> Severity | str:
    try:
        return Severity(raw)
    except ValueError:
        return raw


def packet_from_dict(data: dict[str, Any]) -> Packet:
    """packet_to_dict の出力からパケットを復元する。"""
    known = set(_REQUIRED_FIELDS) | set(_OPTIONAL_FIELDS)
    interfaces: list[Interface] = [
        decode_interface(name, value) for name, value in data.items() if name not in known
    ]
    raw_timestamp = data.get("timestamp", "")
    try:
        timestamp = parse_timestamp(raw_timestamp) if raw_timestamp else None
    except ValueError as e:
        raise ErrorReporterError(
            code=ErrorReporterErrorCodes.UNABLE_TO_UNMARSHAL_JSON,
            message=f"invalid timestamp: {raw_timestamp!r}",
            cause=e,
        ) from e
    return Packet(
        message=data.get("message", ""),
        event_id=data.get("event_id", ""),
        project=data.get("project", ""),
        timestamp=timestamp,
        level=_decode_level(data.get("level", "")),
        logger=data.get("logger", ""),
        platform=data.get("platform", ""),
        culprit=data.get("culprit", ""),
        server_name=data.get("server_name", ""),
        release=data.get("release", ""),
        environment=data.get("environment", ""),
        tags=_decode_tags(data.get("tags", [])),
        modules=dict(data.get("modules", {})),
        fingerprint=list(data.get("fingerprint", [])),
        extra=dict(data.get("extra", {})),
        interfaces=interfaces,
    )


def decode_packet(body: bytes, content_type: str) -> Packet:
    """serialize_packet の出力からパケットを復元する。

    Raises:
        ErrorReporterError: ボディを復元できない場合
    """
    try:
        if content_type == CONTENT_TYPE_COMPRESSED:
            body = zlib.decompress(base64.b64decode(body, validate=True))
        data = json.loads(body)
    except (binascii.Error, zlib.error, ValueError) as e:
        raise ErrorReporterError(
            code=ErrorReporterErrorCodes.UNABLE_TO_UNMARSHAL_JSON,
            message=f"Failed to decode packet body: {e}",
            cause=e,
        ) from e
    if not isinstance(data, dict):
        raise ErrorReporterError(
            code=ErrorReporterErrorCodes.UNABLE_TO_UNMARSHAL_JSON,
            message="packet body must be a JSON object",
        )
    return packet_from_dict(data)
