"""stroke_font.py
==================
该模块负责：
1. 解析单线笔画字体文件（每行三个整数）；
2. 构建按字符编码直接索引的 GlyphTable；
3. 按配置推导每个字的前进宽度，交给排版模块使用。

字体文件格式：
- 字头行 ``999 字符编码 笔画数``，999 为固定记录标记；
- 紧随 ``笔画数`` 行笔画 ``dx dy 笔状态``，笔状态 0=抬笔移动，1=落笔书写。

实现策略：
- 字头行不合法视为记录结束（正常截断），笔画行不合法一律抛 FontFormatError；
- 字体一旦加载即只读，Stroke/Glyph 均为 frozen 数据类；
- 读不到文件时直接向上抛 OSError；文件含非 UTF-8 字节时转为 FontFormatError。
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import IntEnum
from pathlib import Path
from typing import Dict, Iterable, Iterator, List, Optional, Tuple, Union
import logging

logger = logging.getLogger(__name__)

RECORD_MARKER = 999
CODE_SPACE = 128  # 仅支持 ASCII
DEFAULT_MAX_GLYPHS = 128
DEFAULT_ADVANCE_UNITS = 18.0
ADVANCE_MODES: Tuple[str, ...] = ("fixed", "geometry")


class FontError(RuntimeError):
    """字体加载失败的基类异常，主流程可一次性捕获。"""


class FontFormatError(FontError):
    """字体文件内容不合法：笔画行缺失/格式错误、笔画数为负等。"""


class FontCapacityError(FontError):
    """字形数量超过 GlyphTable 容量。"""


class Pen(IntEnum):
    """笔状态：与字体文件中的 0/1 一一对应。"""

    UP = 0
    DOWN = 1


@dataclass(frozen=True)
class Stroke:
    """单次笔画：相对字原点的偏移（字体单位）+ 笔状态。"""

    dx: int
    dy: int
    pen: Pen


@dataclass(frozen=True)
class Glyph:
    """单个字符的笔画定义，笔画顺序即书写顺序。"""

    code: int
    strokes: Tuple[Stroke, ...]
    advance: float

    @property
    def char(self) -> str:
        return chr(self.code)

    @property
    def is_blank(self) -> bool:
        return not self.strokes


class GlyphTable:
    """字符编码 -> Glyph 的只读映射，查询为 O(1)。

    迭代顺序与字体文件中的记录顺序一致，方便测试断言。
    """

    def __init__(self, glyphs: Iterable[Glyph] = (), max_glyphs: int = DEFAULT_MAX_GLYPHS) -> None:
        self._glyphs: Dict[int, Glyph] = {}
        self.max_glyphs = max_glyphs
        for glyph in glyphs:
            self._add(glyph)

    def _add(self, glyph: Glyph) -> None:
        if glyph.code < 0:
            raise FontFormatError(f"字符编码 {glyph.code} 不能为负数")
        if glyph.code >= CODE_SPACE:
            raise FontCapacityError(f"字符编码 {glyph.code} 超出字形表容量 [0, {CODE_SPACE})")
        if glyph.code in self._glyphs:
            raise FontFormatError(f"字符编码 {glyph.code} 重复定义")
        if len(self._glyphs) >= self.max_glyphs:
            raise FontCapacityError(f"字形数量超过上限 {self.max_glyphs}")
        self._glyphs[glyph.code] = glyph

    def get(self, key: Union[str, int]) -> Optional[Glyph]:
        """按字符或编码查询，未收录返回 None。"""

        code = ord(key) if isinstance(key, str) else key
        return self._glyphs.get(code)

    def __contains__(self, key: object) -> bool:
        if isinstance(key, str) and len(key) == 1:
            key = ord(key)
        return key in self._glyphs

    def __len__(self) -> int:
        return len(self._glyphs)

    def __iter__(self) -> Iterator[Glyph]:
        return iter(self._glyphs.values())

    def codes(self) -> List[int]:
        return list(self._glyphs)


def load_font(
    font_path: Path,
    advance_mode: str = "fixed",
    advance_units: float = DEFAULT_ADVANCE_UNITS,
    max_glyphs: int = DEFAULT_MAX_GLYPHS,
) -> GlyphTable:
    """读取字体文件并构建 GlyphTable；文件不可读时抛出 OSError。"""

    try:
        with Path(font_path).open("r", encoding="utf-8") as handle:
            table = parse_font(handle, advance_mode=advance_mode, advance_units=advance_units, max_glyphs=max_glyphs)
    except UnicodeDecodeError as exc:
        raise FontFormatError(f"字体文件 {font_path} 含有非法字节：{exc}") from exc
    logger.info("字体 %s 加载完成，共 %d 个字形", font_path, len(table))
    return table


def parse_font(
    lines: Iterable[str],
    advance_mode: str = "fixed",
    advance_units: float = DEFAULT_ADVANCE_UNITS,
    max_glyphs: int = DEFAULT_MAX_GLYPHS,
) -> GlyphTable:
    """逐行解析字体描述，返回按文件顺序排列的 GlyphTable。"""

    if advance_mode not in ADVANCE_MODES:
        raise ValueError(f"advance_mode 必须是 {ADVANCE_MODES} 之一")
    if advance_units <= 0:
        raise ValueError("advance_units 必须为正数")

    table = GlyphTable(max_glyphs=max_glyphs)
    rows = _numbered_rows(lines)
    for line_no, fields in rows:
        header = _parse_ints(fields)
        if header is None or len(header) != 3 or header[0] != RECORD_MARKER:
            logger.debug("第 %d 行不是字头行，字体记录到此结束", line_no)
            break
        _, code, count = header
        if count < 0:
            raise FontFormatError(f"第 {line_no} 行：字符 {code} 的笔画数为负数 {count}")
        if count == 0 and not (0 <= code < CODE_SPACE and chr(code).isspace()):
            raise FontFormatError(f"第 {line_no} 行：字符 {code} 没有任何笔画")
        strokes = tuple(_read_stroke(rows, code) for _ in range(count))
        table._add(Glyph(code=code, strokes=strokes, advance=_advance_for(strokes, advance_mode, advance_units)))

    if not len(table):
        raise FontFormatError("字体文件中未找到任何字形记录")
    logger.debug("加载 %d 个字形", len(table))
    return table


def _numbered_rows(lines: Iterable[str]) -> Iterator[Tuple[int, List[str]]]:
    """跳过空行，产出 (行号, 字段列表)。"""

    for line_no, raw in enumerate(lines, 1):
        fields = raw.split()
        if fields:
            yield line_no, fields


def _parse_ints(fields: List[str]) -> Optional[Tuple[int, ...]]:
    try:
        return tuple(int(field) for field in fields)
    except ValueError:
        return None


def _read_stroke(rows: Iterator[Tuple[int, List[str]]], code: int) -> Stroke:
    """读取一行笔画；缺行、字段数不对或笔状态非法都会抛出 FontFormatError。"""

    try:
        line_no, fields = next(rows)
    except StopIteration:
        raise FontFormatError(f"字符 {code} 的笔画数据不完整，文件提前结束") from None
    values = _parse_ints(fields)
    if values is None or len(values) != 3:
        raise FontFormatError(f"第 {line_no} 行：笔画行应为三个整数，实际为 {' '.join(fields)!r}")
    dx, dy, pen = values
    if pen not in (Pen.UP, Pen.DOWN):
        raise FontFormatError(f"第 {line_no} 行：笔状态只能是 0 或 1，实际为 {pen}")
    return Stroke(dx=dx, dy=dy, pen=Pen(pen))


def _advance_for(strokes: Tuple[Stroke, ...], mode: str, units: float) -> float:
    """fixed 模式统一宽度；geometry 模式取笔画最大 x，空白字或竖线类零宽字退回固定宽度。"""

    if mode == "geometry" and strokes:
        widest = max(stroke.dx for stroke in strokes)
        if widest > 0:
            return float(widest)
    return float(units)
