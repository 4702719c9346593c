"""Server-Sent Events 行解码。

Gemini 的 streamGenerateContent?alt=sse 每条数据行形如 `data: {...}`，
且每行都是完整的 JSON 对象，因此不需要跨行缓冲。
无法解码的行直接跳过。
"""

import json
from typing import Any, Callable, Iterable, Iterator, Union

from gemini_bridge.infrastructure.logging.logger import logger


SSE_DATA_PREFIX = "data: "

_SKIP = object()


def decode_sse_line(line: Union[str, bytes]) -> Any:
    """解码单行；不是数据行或 JSON 无效时返回 _SKIP 哨兵。"""

    if isinstance(line, bytes):
        line = line.decode("utf-8", errors="replace")
    if not line.startswith(SSE_DATA_PREFIX):
        return _SKIP
    try:
        return json.loads(line[len(SSE_DATA_PREFIX):])
    except json.JSONDecodeError:
        logger.debug("Skipping undecodable SSE line")
        return _SKIP


class SseLineDecoder:
    """把逐行输入转换为 chunk 回调，回调按行序同步执行。"""

    def __init__(self, callback: Callable[[Any], None]):
        self._callback = callback
        self.delivered = 0

    def __call__(self, line: Union[str, bytes]) -> None:
        chunk = decode_sse_line(line)
        if chunk is _SKIP:
            return
        self._callback(chunk)
        self.delivered += 1


def iter_sse_chunks(lines: Iterable[Union[str, bytes]]) -> Iterator[Any]:
    """逐个产出解码成功的 chunk。"""

    for line in lines:
        chunk = decode_sse_line(line)
        if chunk is not _SKIP:
            yield chunk


def decode_sse_lines(lines: Iterable[Union[str, bytes]], callback: Callable[[Any], None]) -> int:
    """解码一组已缓冲的行，按行序回调，返回回调次数。"""

    count = 0
    for chunk in iter_sse_chunks(lines):
        callback(chunk)
        count += 1
    return count
