"""スタックトレースの取得"""

from __future__ import annotations

import linecache
import os
import sys
import traceback
from collections.abc import Iterable, Iterator, Sequence
from types import FrameType, TracebackType

from .interfaces import Stacktrace, StacktraceFrame

_PACKAGE = __name__.rpartition(".")[0]


def _is_own_frame(frame: FrameType) -> bool:
    module = frame.f_globals.get("__name__", "")
    return module == _PACKAGE or module.startswith(_PACKAGE + ".")


def _is_in_app(module: str, include_paths: Sequence[str]) -> bool:
    if module == "__main__":
        return True
    return any(module == p or module.startswith(p + ".") for p in include_paths)


def _context(filename: str, lineno: int, context_lines: int) -> tuple[list[str], str, list[str]]:
    linecache.checkcache(filename)
    line = linecache.getline(filename, lineno)
    if not line or context_lines <= 0:
        return [], line.rstrip("\n"), []
    pre = [
        linecache.getline(filename, n).rstrip("\n")
        for n in range(max(1, lineno - context_lines), lineno)
    ]
    post = []
    for n in range(lineno + 1, lineno + context_lines + 1):
        text = linecache.getline(filename, n)
        if not text:
            break
        post.append(text.rstrip("\n"))
    return pre, line.rstrip("\n"), post


def _build_frame(
    frame: FrameType, lineno: int, context_lines: int, include_paths: Sequence[str]
) -> StacktraceFrame:
    code = frame.f_code
    module = frame.f_globals.get("__name__", "")
    pre, line, post = _context(code.co_filename, lineno, context_lines)
    return StacktraceFrame(
        filename=os.path.basename(code.co_filename),
        abs_path=code.co_filename,
        function=code.co_name,
        module=module,
        lineno=lineno,
        context_line=line,
        pre_context=pre,
        post_context=post,
        in_app=_is_in_app(module, include_paths),
    )


def _build(
    frames: Iterable[tuple[FrameType, int]], context_lines: int, include_paths: Sequence[str]
) -> Stacktrace | None:
    result = [_build_frame(f, n, context_lines, include_paths) for f, n in frames]
    if not result:
        return None
    return Stacktrace(frames=result)


def new_stacktrace(
    skip: int = 0,
    context_lines: int = 3,
    include_paths: Sequence[str] = (),
) -> Stacktrace | None:
    """呼び出し元のスタックトレースを生成する。

    本ライブラリ自身のフレームは最内側から取り除かれる。

    Args:
        skip: さらに取り除く呼び出し元フレーム数
        context_lines: 前後に含めるソース行数
        include_paths: アプリケーションフレームとみなすモジュール接頭辞

    Returns:
        フレームが残らない場合は None
    """
    walked: Iterator[tuple[FrameType, int]] = traceback.walk_stack(sys._getframe(1))
    inner_first = list(walked)
    while inner_first and _is_own_frame(inner_first[0][0]):
        inner_first.pop(0)
    inner_first = inner_first[skip:]
    return _build(reversed(inner_first), context_lines, include_paths)


def stacktrace_from_traceback(
    tb: TracebackType | None,
    context_lines: int = 3,
    include_paths: Sequence[str] = (),
) -> Stacktrace | None:
    """送出済み例外のトレースバックからスタックトレースを生成する。"""
    if tb is None:
        return None
    return _build(traceback.walk_tb(tb), context_lines, include_paths)


def root_cause(exc: BaseException) -> BaseException:
    """``__cause__`` / ``__context__`` を辿って根本原因の例外を返す。"""
    seen = {id(exc)}
    current = exc
    while True:
        nxt = current.__cause__
        if nxt is None and not current.__suppress_context__:
            nxt = current.__context__
        if nxt is None or id(nxt) in seen:
            return current
        seen.add(id(nxt))
        current = nxt
