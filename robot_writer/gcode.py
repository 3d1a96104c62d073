"""gcode.py
============
该模块把排版事件翻译成写字机可以直接执行的 G-code：
1. 每个笔画一条指令，抬笔用 G0 快移，落笔用 G1 书写；
2. 坐标 = 字原点 + 笔画偏移 × 缩放系数，统一保留两位小数；
3. 开头插入一次初始化序列，结尾抬笔回原点。

实现约定：
- generate_gcode 是惰性生成器，逐条产出指令，方便设备端逐条应答；
- 磁盘写入集中在 export_gcode，调用方只需传入路径与参数。
"""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Iterator, List, Optional, TextIO, Tuple
import logging

from .layout import LayoutParams, LineBreak, layout_text, validate_layout_params
from .stroke_font import Glyph, GlyphTable, Pen

logger = logging.getLogger(__name__)

DEFAULT_INIT_SEQUENCE: Tuple[str, ...] = ("G1 X0 Y0 F1000", "M3", "S0")
DEFAULT_FINISH_SEQUENCE: Tuple[str, ...] = ("S0", "G0 X0 Y0")
MOTION_CODES = {Pen.UP: "G0", Pen.DOWN: "G1"}


@dataclass(frozen=True)
class GcodeParams:
    """G-code 首尾固定序列。"""

    init_sequence: Tuple[str, ...] = DEFAULT_INIT_SEQUENCE
    finish_sequence: Tuple[str, ...] = DEFAULT_FINISH_SEQUENCE


@dataclass(frozen=True)
class ExportParams:
    """导出 .nc 文件所需的全部外部参数。"""

    text_path: Path
    output_path: Path
    table: GlyphTable
    layout: LayoutParams
    gcode: GcodeParams = field(default_factory=GcodeParams)


@dataclass(frozen=True)
class GcodeResult:
    """统计信息，帮助 CLI 显示排版结果。"""

    total_commands: int
    placed_glyphs: int
    line_count: int
    missing_chars: List[str]
    output_path: Optional[Path]


@dataclass
class GcodeStats:
    """一次生成过程中的计数器。"""

    commands: int = 0
    glyphs: int = 0
    lines: int = 1


def format_move(pen: Pen, x: float, y: float) -> str:
    """渲染单条运动指令，-0.00 统一写成 0.00。"""

    return f"{MOTION_CODES[pen]} X{_coord(x)} Y{_coord(y)}\n"


def _coord(value: float) -> str:
    return f"{round(value, 2) + 0.0:.2f}"


def emit_glyph(glyph: Glyph, origin_x: float, origin_y: float, scale: float) -> Iterator[str]:
    """按笔画顺序逐条产出指令，不重排、不插值。"""

    for stroke in glyph.strokes:
        yield format_move(stroke.pen, origin_x + stroke.dx * scale, origin_y + stroke.dy * scale)


def generate_gcode(
    stream: TextIO,
    table: GlyphTable,
    layout: LayoutParams,
    gcode: GcodeParams = GcodeParams(),
    missing: Optional[List[str]] = None,
    stats: Optional[GcodeStats] = None,
) -> Iterator[str]:
    """串联初始化、正文与收尾三段，逐条产出以换行结尾的指令。"""

    validate_layout_params(layout)
    for line in gcode.init_sequence:
        yield line + "\n"
    for event in layout_text(stream, table, layout, missing=missing):
        if isinstance(event, LineBreak):
            if stats is not None and event.reason != "return":
                stats.lines += 1
            continue
        if stats is not None:
            stats.glyphs += 1
        yield from emit_glyph(event.glyph, event.origin_x, event.origin_y, layout.scale)
    for line in gcode.finish_sequence:
        yield line + "\n"


def export_gcode(params: ExportParams) -> GcodeResult:
    """执行排版并把 G-code 写入文件。"""

    _validate_params(params)
    missing: List[str] = []
    stats = GcodeStats()
    try:
        with params.text_path.open("r", encoding="utf-8") as source, params.output_path.open(
            "w", encoding="utf-8"
        ) as target:
            for command in generate_gcode(source, params.table, params.layout, params.gcode, missing, stats):
                target.write(command)
                stats.commands += 1
    except UnicodeDecodeError:
        # 半截 G-code 不能留给设备执行
        params.output_path.unlink()
        raise
    logger.info("G-code 已写入 %s", params.output_path)
    return GcodeResult(
        total_commands=stats.commands,
        placed_glyphs=stats.glyphs,
        line_count=stats.lines,
        missing_chars=missing,
        output_path=params.output_path,
    )


def _validate_params(params: ExportParams) -> None:
    """集中处理路径与排版参数检查，任何文件被创建之前完成。"""

    validate_layout_params(params.layout)
    if not params.text_path.exists():
        raise FileNotFoundError(f"找不到文本文件：{params.text_path}")
    params.output_path.parent.mkdir(parents=True, exist_ok=True)
