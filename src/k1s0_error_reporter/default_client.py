"""プロセス共通の既定クライアントと転送関数

既定クライアントは最初の利用時に環境変数から 1 度だけ生成される。起動時に
``set_default_client`` で差し替えるか ``None`` で無効化できるが、キャプチャが
並行して進んでいる最中に差し替えてはならない。無効化中の capture 系関数は
何もせず、成功済みの結果を返す。
"""

from __future__ import annotations

import threading
from collections.abc import Callable, Mapping, Sequence

from .client import Client
from .interfaces import Http, Interface, User
from .models import Packet
from .pending import CaptureResult

_lock = threading.Lock()
_UNSET = object()
_default: Client | None | object = _UNSET


def get_default_client() -> Client | None:
    """既定クライアントを返す。無効化されている場合は None。"""
    global _default
    if _default is _UNSET:
        with _lock:
            if _default is _UNSET:
                _default = Client()
    return _default  # type: ignore[return-value]


def set_default_client(client: Client | None) -> None:
    """既定クライアントを差し替える。None で無効化する。"""
    global _default
    with _lock:
        _default = client


def capture(
    packet: Packet | None, capture_tags: Mapping[str, str] | None = None
) -> tuple[str, CaptureResult]:
    client = get_default_client()
    if client is None:
        return "", CaptureResult.resolved()
    return client.capture(packet, capture_tags)


def capture_message(
    message: str, *interfaces: Interface, tags: Mapping[str, str] | None = None
) -> str:
    client = get_default_client()
    if client is None:
        return ""
    return client.capture_message(message, *interfaces, tags=tags)


def capture_message_and_wait(
    message: str, *interfaces: Interface, tags: Mapping[str, str] | None = None
) -> tuple[str, Exception | None]:
    client = get_default_client()
    if client is None:
        return "", None
    return client.capture_message_and_wait(message, *interfaces, tags=tags)


def capture_error(
    err: BaseException | None, *interfaces: Interface, tags: Mapping[str, str] | None = None
) -> str:
    client = get_default_client()
    if client is None:
        return ""
    return client.capture_error(err, *interfaces, tags=tags)


def capture_error_and_wait(
    err: BaseException | None, *interfaces: Interface, tags: Mapping[str, str] | None = None
) -> tuple[str, Exception | None]:
    client = get_default_client()
    if client is None:
        return "", None
    return client.capture_error_and_wait(err, *interfaces, tags=tags)


def capture_panic(
    fn: Callable[[], object], *interfaces: Interface, tags: Mapping[str, str] | None = None
) -> tuple[Exception | None, str]:
    """fn を呼び出す。無効化中も例外は捕捉されるが送信はされない。"""
    client = get_default_client()
    if client is None:
        try:
            fn()
        except Exception as exc:
            return exc, ""
        return None, ""
    return client.capture_panic(fn, *interfaces, tags=tags)


def capture_panic_and_wait(
    fn: Callable[[], object], *interfaces: Interface, tags: Mapping[str, str] | None = None
) -> tuple[Exception | None, str, Exception | None]:
    client = get_default_client()
    if client is None:
        exc, event_id = capture_panic(fn)
        return exc, event_id, None
    return client.capture_panic_and_wait(fn, *interfaces, tags=tags)


def _require() -> Client:
    client = get_default_client()
    if client is None:
        raise RuntimeError("default client is disabled")
    return client


def set_dsn(dsn: str) -> None:
    _require().set_dsn(dsn)


def set_release(release: str) -> None:
    _require().set_release(release)


def set_environment(environment: str) -> None:
    _require().set_environment(environment)


def set_default_logger_name(name: str) -> None:
    _require().set_default_logger_name(name)


def set_sample_rate(rate: float) -> None:
    _require().set_sample_rate(rate)


def set_ignore_errors(*errs: str) -> None:
    _require().set_ignore_errors(errs)


def set_include_paths(paths: Sequence[str]) -> None:
    _require().set_include_paths(paths)


def set_user_context(user: User | None) -> None:
    _require().set_user_context(user)


def set_http_context(http: Http | None) -> None:
    _require().set_http_context(http)


def set_tags_context(tags: Mapping[str, str]) -> None:
    _require().set_tags_context(tags)


def clear_context() -> None:
    _require().clear_context()


def close() -> None:
    client = get_default_client()
    if client is not None:
        client.close()


def wait(timeout: float | None = None) -> bool:
    client = get_default_client()
    if client is None:
        return True
    return client.wait(timeout)


def url() -> str:
    return _require().url


def project_id() -> str:
    return _require().project_id


def release() -> str:
    return _require().release


def include_paths() -> list[str]:
    return _require().include_paths
