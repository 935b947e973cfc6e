"""クライアント設定（pydantic BaseModel）と設定ファイル読み込み"""

from __future__ import annotations

import os
import re
from collections.abc import Mapping, Sequence
from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, Field, ValidationError, field_validator

from .exceptions import ErrorReporterError, ErrorReporterErrorCodes

ENV_DSN = "SENTRY_DSN"
ENV_RELEASE = "SENTRY_RELEASE"
ENV_ENVIRONMENT = "SENTRY_ENVIRONMENT"

# 設定ファイル内でクライアント設定を置くセクション名
CONFIG_SECTION = "error_reporter"

DEFAULT_QUEUE_SIZE = 100


def compile_ignore_pattern(errs: Sequence[str]) -> re.Pattern[str] | None:
    """除外パターンを ``|`` で連結してコンパイルする。空の場合は None。

    Raises:
        ErrorReporterError: 正規表現として不正な場合
    """
    if not errs:
        return None
    joined = "|".join(errs)
    try:
        return re.compile(joined)
    except re.error as e:
        raise ErrorReporterError(
            code=ErrorReporterErrorCodes.INVALID_IGNORE_PATTERN,
            message=f"Failed to compile regexp {joined!r} for {list(errs)!r}: {e}",
            cause=e,
        ) from e


class TransportOptions(BaseModel):
    """HTTP トランスポート設定。"""

    timeout_seconds: float = Field(default=10.0, gt=0)
    # CA バンドルのパスまたは検証の有無
    verify: bool | str = True


class ClientOptions(BaseModel):
    """クライアント設定。"""

    dsn: str = ""
    tags: dict[str, str] = Field(default_factory=dict)
    release: str = ""
    environment: str = ""
    default_logger_name: str = ""
    sample_rate: float = Field(default=1.0, ge=0.0, le=1.0)
    ignore_errors: list[str] = Field(default_factory=list)
    include_paths: list[str] = Field(default_factory=list)
    queue_size: int = Field(default=DEFAULT_QUEUE_SIZE, ge=1)
    transport: TransportOptions = Field(default_factory=TransportOptions)

    @field_validator("ignore_errors")
    @classmethod
    def _validate_ignore_errors(cls, value: list[str]) -> list[str]:
        try:
            compile_ignore_pattern(value)
        except ErrorReporterError as e:
            raise ValueError(str(e)) from e
        return value

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> ClientOptions:
        """環境変数から DSN・リリース・環境名を読み込んだ設定を返す。"""
        env = os.environ if environ is None else environ
        return cls(
            dsn=env.get(ENV_DSN, ""),
            release=env.get(ENV_RELEASE, ""),
            environment=env.get(ENV_ENVIRONMENT, ""),
        )


def _read_yaml(path: Path) -> dict[str, Any]:
    """YAML ファイルを読み込む。"""
    try:
        text = path.read_text(encoding="utf-8")
    except OSError as e:
        raise ErrorReporterError(
            code=ErrorReporterErrorCodes.READ_FILE,
            message=f"Failed to read config file: {path}",
            cause=e,
        ) from e
    try:
        data = yaml.safe_load(text) or {}
    except yaml.YAMLError as e:
        raise ErrorReporterError(
            code=ErrorReporterErrorCodes.PARSE_YAML,
            message=f"Failed to parse YAML: {path}",
            cause=e,
        ) from e
    if not isinstance(data, dict):
        raise ErrorReporterError(
            code=ErrorReporterErrorCodes.PARSE_YAML,
            message=f"Config root must be a mapping: {path}",
        )
    return data


def validate_options(data: Mapping[str, Any]) -> ClientOptions:
    """辞書を検証して ClientOptions を返す。

    Raises:
        ErrorReporterError: 検証に失敗した場合 (INVALID_CONFIG)
    """
    try:
        return ClientOptions.model_validate(data)
    except ValidationError as e:
        raise ErrorReporterError(
            code=ErrorReporterErrorCodes.INVALID_CONFIG,
            message=f"Config validation failed: {e}",
            cause=e,
        ) from e


def load_options(path: Path) -> ClientOptions:
    """設定ファイルを読み込んで ClientOptions を返す。

    ファイルに ``error_reporter`` セクションがあればその内容を、無ければ
    ルート全体をクライアント設定として扱う。
    """
    data = _read_yaml(path)
    section = data.get(CONFIG_SECTION, data)
    if not isinstance(section, dict):
        raise ErrorReporterError(
            code=ErrorReporterErrorCodes.INVALID_CONFIG,
            message=f"'{CONFIG_SECTION}' section must be a mapping: {path}",
        )
    return validate_options(section)
