"""共享夹具：小型笔画字体。"""

from __future__ import annotations

import io

import pytest

from robot_writer.stroke_font import GlyphTable, parse_font

# 'A' 取自规格示例；'B' 只用于凑出第二个字形
SAMPLE_FONT = """\
999 32 0
999 65 3
0 0 0
5 10 1
10 0 1
999 66 2
0 0 0
0 18 1
"""


@pytest.fixture
def font_source() -> str:
    return SAMPLE_FONT


@pytest.fixture
def table() -> GlyphTable:
    """每个字固定前进 10 个字体单位，方便手算宽度。"""

    return parse_font(io.StringIO(SAMPLE_FONT), advance_units=10.0)


@pytest.fixture
def font_file(tmp_path):
    path = tmp_path / "font.txt"
    path.write_text(SAMPLE_FONT, encoding="utf-8")
    return path
