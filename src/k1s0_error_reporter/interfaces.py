"""イベントに添付するファクト（Sentry インターフェース）定義

各ファクトはクラス名（エンコード時のフィールド名）と JSON 化可能な辞書表現を持つ。
具象クラスは ``register_interface`` でクラス名ごとに登録し、デコード時は
このレジストリから型を引き当てる。
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any, ClassVar, TypeVar

_registry: dict[str, type[Interface]] = {}

_InterfaceT = TypeVar("_InterfaceT", bound="type[Interface]")


def register_interface(name: str) -> Callable[[_InterfaceT], _InterfaceT]:
    """ファクト型をクラス名で登録するデコレーター。

    Raises:
        ValueError: 同じクラス名が既に登録されている場合
        TypeError: クラスが from_dict を定義していない場合
    """

    def decorator(cls: _InterfaceT) -> _InterfaceT:
        if name in _registry:
            raise ValueError(f"interface already registered: {name}")
        if not callable(getattr(cls, "from_dict", None)):
            raise TypeError(f"{cls.__name__} must define from_dict to be registered")
        cls.interface_name = name
        _registry[name] = cls
        return cls

    return decorator


def registered_interfaces() -> dict[str, type[Interface]]:
    """登録済みファクト型のコピーを返す。"""
    return dict(_registry)


def decode_interface(name: str, data: Any) -> Interface:  # noqa: ANN401
    """クラス名と辞書からファクトを復元する。未登録の名前は RawInterface になる。"""
    cls = _registry.get(name)
    if cls is None or not isinstance(data, dict):
        return RawInterface(name=name, data=data)
    return cls.from_dict(data)  # type: ignore[attr-defined]


class Interface(ABC):
    """名前付き JSON ファクトの基底クラス。"""

    interface_name: ClassVar[str] = ""

    def class_name(self) -> str:
        """エンコード時のフィールド名を返す。"""
        return self.interface_name

    @abstractmethod
    def to_dict(self) -> dict[str, Any]:
        """JSON 化可能な辞書を返す。"""
        ...

    def culprit(self) -> str:
        """原因箇所を返す。持たない場合は空文字列。"""
        return ""


@dataclass
class RawInterface(Interface):
    """レジストリに存在しないクラス名のファクト。"""

    name: str
    data: Any = None

    def class_name(self) -> str:
        return self.name

    def to_dict(self) -> Any:  # noqa: ANN401
        return self.data


@register_interface("logentry")
@dataclass
class Message(Interface):
    """ログメッセージ。"""

    message: str
    params: list[Any] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {"message": self.message}
        if self.params:
            data["params"] = list(self.params)
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Message:
        return cls(message=data.get("message", ""), params=list(data.get("params", [])))


@dataclass
class StacktraceFrame:
    """スタックトレースの 1 フレーム。"""

    filename: str = ""
    function: str = ""
    module: str = ""
    lineno: int = 0
    abs_path: str = ""
    context_line: str = ""
    pre_context: list[str] = field(default_factory=list)
    post_context: list[str] = field(default_factory=list)
    in_app: bool = False

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "filename": self.filename,
            "function": self.function,
            "module": self.module,
            "lineno": self.lineno,
            "in_app": self.in_app,
        }
        if self.abs_path:
            data["abs_path"] = self.abs_path
        if self.context_line:
            data["context_line"] = self.context_line
        if self.pre_context:
            data["pre_context"] = list(self.pre_context)
        if self.post_context:
            data["post_context"] = list(self.post_context)
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> StacktraceFrame:
        return cls(
            filename=data.get("filename", ""),
            function=data.get("function", ""),
            module=data.get("module", ""),
            lineno=data.get("lineno", 0),
            abs_path=data.get("abs_path", ""),
            context_line=data.get("context_line", ""),
            pre_context=list(data.get("pre_context", [])),
            post_context=list(data.get("post_context", [])),
            in_app=data.get("in_app", False),
        )


@register_interface("stacktrace")
@dataclass
class Stacktrace(Interface):
    """スタックトレース。frames は外側から内側の順に並ぶ。"""

    frames: list[StacktraceFrame] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {"frames": [f.to_dict() for f in self.frames]}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Stacktrace:
        return cls(frames=[StacktraceFrame.from_dict(f) for f in data.get("frames", [])])

    def culprit(self) -> str:
        """最も内側のアプリケーションフレームを ``module.function`` 形式で返す。"""
        for frame in reversed(self.frames):
            if frame.in_app:
                if frame.module:
                    return f"{frame.module}.{frame.function}"
                return frame.function
        return ""


@register_interface("exception")
@dataclass
class ExceptionInterface(Interface):
    """例外情報。"""

    value: str
    type: str = ""
    module: str = ""
    stacktrace: Stacktrace | None = None

    @classmethod
    def from_exception(
        cls, exc: BaseException, stacktrace: Stacktrace | None = None
    ) -> ExceptionInterface:
        """例外オブジェクトから ExceptionInterface を生成する。"""
        exc_type = type(exc)
        module = exc_type.__module__
        return cls(
            value=str(exc),
            type=exc_type.__qualname__,
            module="" if module == "builtins" else module,
            stacktrace=stacktrace,
        )

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {"value": self.value}
        if self.type:
            data["type"] = self.type
        if self.module:
            data["module"] = self.module
        if self.stacktrace is not None:
            data["stacktrace"] = self.stacktrace.to_dict()
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ExceptionInterface:
        raw_stacktrace = data.get("stacktrace")
        return cls(
            value=data.get("value", ""),
            type=data.get("type", ""),
            module=data.get("module", ""),
            stacktrace=Stacktrace.from_dict(raw_stacktrace) if raw_stacktrace else None,
        )

    def culprit(self) -> str:
        if self.stacktrace is None:
            return ""
        return self.stacktrace.culprit()


@register_interface("user")
@dataclass
class User(Interface):
    """ユーザー識別情報。"""

    id: str = ""
    username: str = ""
    email: str = ""
    ip_address: str = ""

    def to_dict(self) -> dict[str, Any]:
        data = {
            "id": self.id,
            "username": self.username,
            "email": self.email,
            "ip_address": self.ip_address,
        }
        return {k: v for k, v in data.items() if v}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> User:
        return cls(
            id=data.get("id", ""),
            username=data.get("username", ""),
            email=data.get("email", ""),
            ip_address=data.get("ip_address", ""),
        )


@register_interface("request")
@dataclass
class Http(Interface):
    """HTTP リクエストのスナップショット。"""

    url: str
    method: str = "GET"
    query_string: str = ""
    cookies: str = ""
    headers: dict[str, str] = field(default_factory=dict)
    env: dict[str, str] = field(default_factory=dict)
    data: Any = None

    def to_dict(self) -> dict[str, Any]:
        result: dict[str, Any] = {"url": self.url, "method": self.method}
        if self.query_string:
            result["query_string"] = self.query_string
        if self.cookies:
            result["cookies"] = self.cookies
        if self.headers:
            result["headers"] = dict(self.headers)
        if self.env:
            result["env"] = dict(self.env)
        if self.data is not None:
            result["data"] = self.data
        return result

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Http:
        return cls(
            url=data.get("url", ""),
            method=data.get("method", "GET"),
            query_string=data.get("query_string", ""),
            cookies=data.get("cookies", ""),
            headers=dict(data.get("headers", {})),
            env=dict(data.get("env", {})),
            data=data.get("data"),
        )
