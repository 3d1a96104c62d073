"""layout.py
=============
该模块负责把文本流排成一串带坐标的字形放置事件：
1. 由用户指定的字高推导缩放系数；
2. 用「寻找单词 / 处理单词」两态分词器把输入切成单词与换行事件；
3. 贪心折行：单词放不下时整体换到下一行，绝不在单词中间断开。

坐标约定：x 向右，y 向上；每换一行 y 减去一个行距（单位 mm）。
排版是惰性的单次遍历，内存占用只与当前单词长度相关。
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Iterator, List, Optional, TextIO, Tuple, Union
import logging

from .stroke_font import Glyph, GlyphTable

logger = logging.getLogger(__name__)

REFERENCE_FONT_HEIGHT = 18.0  # 字体设计单位下的字高
MAX_WORD_LENGTH = 99
FLOAT_EPS = 1e-4
CR_MODES: Tuple[str, ...] = ("reset_x", "newline", "ignore")


def scale_factor(text_height: float, reference_height: float = REFERENCE_FONT_HEIGHT) -> float:
    """字高 (mm) / 参考字高 = 字体单位到 mm 的缩放系数。"""

    if reference_height <= 0:
        raise ValueError("reference_height 必须大于 0")
    if text_height <= 0:
        raise ValueError("text_height 必须大于 0")
    return text_height / reference_height


# --- 分词 -----------------------------------------------------------------


@dataclass(frozen=True)
class Word:
    text: str


class Control(Enum):
    NEWLINE = "newline"
    CARRIAGE_RETURN = "carriage_return"


Token = Union[Word, Control]


class _TokenizerState(Enum):
    SEEKING_WORD = "seeking"
    PROCESSING_WORD = "processing"


def iter_tokens(stream: TextIO, cr_mode: str = "reset_x", chunk_size: int = 4096) -> Iterator[Token]:
    """惰性切分文本流。

    换行符与回车符不属于任何单词：遇到时先结束当前单词，再产出对应控制事件。
    ``cr_mode="ignore"`` 时回车只当普通空白处理。单词超过 ``MAX_WORD_LENGTH``
    的部分直接丢弃，直到遇见下一个空白字符。
    """

    if cr_mode not in CR_MODES:
        raise ValueError(f"cr_mode 必须是 {CR_MODES} 之一")

    state = _TokenizerState.SEEKING_WORD
    buffer: List[str] = []
    dropped = 0

    while True:
        chunk = stream.read(chunk_size)
        if not chunk:
            break
        for char in chunk:
            control = _control_for(char, cr_mode)
            if control is not None or char.isspace():
                if state is _TokenizerState.PROCESSING_WORD:
                    if dropped:
                        logger.debug("单词过长，截断 %d 个字符：%s...", dropped, "".join(buffer[:10]))
                    yield Word("".join(buffer))
                    buffer.clear()
                    dropped = 0
                    state = _TokenizerState.SEEKING_WORD
                if control is not None:
                    yield control
                continue

            state = _TokenizerState.PROCESSING_WORD
            if len(buffer) < MAX_WORD_LENGTH:
                buffer.append(char)
            else:
                dropped += 1

    if state is _TokenizerState.PROCESSING_WORD:
        yield Word("".join(buffer))


def _control_for(char: str, cr_mode: str) -> Optional[Control]:
    if char == "\n":
        return Control.NEWLINE
    if char == "\r" and cr_mode != "ignore":
        return Control.CARRIAGE_RETURN
    return None


# --- 排版 -----------------------------------------------------------------


@dataclass(frozen=True)
class LayoutParams:
    """排版所需的核心参数，长度单位统一为 mm。"""

    scale: float
    max_line_width: float = 100.0
    line_spacing: float = 10.0
    char_spacing: float = 0.0
    word_spacing: float = 5.0
    start_y: float = 0.0
    cr_mode: str = "reset_x"


@dataclass(frozen=True)
class Placement:
    """一个字形的落笔原点。"""

    char: str
    glyph: Glyph
    origin_x: float
    origin_y: float


@dataclass(frozen=True)
class LineBreak:
    """换行事件：forced=文本换行符，wrap=自动折行，return=回车回到行首。"""

    reason: str
    origin_y: float


LayoutEvent = Union[Placement, LineBreak]


@dataclass
class _Cursor:
    """单次排版独占的游标。"""

    x: float
    y: float


def measure_word(word: str, table: GlyphTable, params: LayoutParams) -> float:
    """单词总宽 = Σ(缩放后字宽 + 字距) + 词距；缺字贡献 0。"""

    width = 0.0
    for char in word:
        glyph = table.get(char)
        if glyph is not None:
            width += glyph.advance * params.scale + params.char_spacing
    return width + params.word_spacing


def layout_text(
    stream: TextIO,
    table: GlyphTable,
    params: LayoutParams,
    missing: Optional[List[str]] = None,
) -> Iterator[LayoutEvent]:
    """按文档顺序产出 Placement 与 LineBreak 事件。

    ``missing`` 若传入列表，缺字会按出现顺序追加进去，方便上层统计。
    """

    validate_layout_params(params)
    cursor = _Cursor(x=0.0, y=params.start_y)

    for token in iter_tokens(stream, cr_mode=params.cr_mode):
        if token is Control.NEWLINE:
            yield _break_line(cursor, params, "forced")
            continue
        if token is Control.CARRIAGE_RETURN:
            if params.cr_mode == "newline":
                yield _break_line(cursor, params, "forced")
            else:
                cursor.x = 0.0
                yield LineBreak(reason="return", origin_y=cursor.y)
            continue

        width = measure_word(token.text, table, params)
        # 行首的超长单词直接放置，避免空出一整行
        if cursor.x > 0.0 and cursor.x + width > params.max_line_width + FLOAT_EPS:
            yield _break_line(cursor, params, "wrap")

        for char in token.text:
            glyph = table.get(char)
            if glyph is None:
                if missing is not None:
                    missing.append(char)
                continue
            yield Placement(char=char, glyph=glyph, origin_x=cursor.x, origin_y=cursor.y)
            cursor.x += glyph.advance * params.scale + params.char_spacing
        cursor.x += params.word_spacing


def _break_line(cursor: _Cursor, params: LayoutParams, reason: str) -> LineBreak:
    cursor.x = 0.0
    cursor.y -= params.line_spacing
    return LineBreak(reason=reason, origin_y=cursor.y)


def validate_layout_params(params: LayoutParams) -> None:
    """对所有浮点参数做基础校验，提前失败更易排查。"""

    if params.scale <= 0:
        raise ValueError("scale 必须为正数")
    if params.max_line_width <= 0:
        raise ValueError("max_line_width 必须为正数")
    if params.line_spacing <= 0:
        raise ValueError("line_spacing 必须为正数")
    if params.char_spacing < 0 or params.word_spacing < 0:
        raise ValueError("字距与词距不能为负数")
    if params.cr_mode not in CR_MODES:
        raise ValueError(f"cr_mode 必须是 {CR_MODES} 之一")
