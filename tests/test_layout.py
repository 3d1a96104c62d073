"""排版测试：缩放系数、分词、折行边界与缺字处理。

夹具字体中每个字前进 10 个字体单位，scale=1.0 时即 10 mm。
"""

from __future__ import annotations

import io

import pytest

from robot_writer.layout import (
    MAX_WORD_LENGTH,
    Control,
    LayoutParams,
    LineBreak,
    Placement,
    Word,
    iter_tokens,
    layout_text,
    measure_word,
    scale_factor,
)


def _params(**overrides) -> LayoutParams:
    values = dict(scale=1.0, max_line_width=50.0, line_spacing=10.0, char_spacing=0.0, word_spacing=0.0)
    values.update(overrides)
    return LayoutParams(**values)


def _layout(text, table, **overrides):
    return list(layout_text(io.StringIO(text), table, _params(**overrides)))


def _origins(events):
    return [(e.char, e.origin_x, e.origin_y) for e in events if isinstance(e, Placement)]


# --- 缩放系数 ---------------------------------------------------------------


def test_scale_factor_examples():
    assert round(scale_factor(4), 4) == 0.2222
    assert round(scale_factor(10), 4) == 0.5556
    assert scale_factor(18) == 1.0


def test_scale_factor_is_linear_and_increasing():
    heights = [4, 5, 6.5, 8, 10]
    factors = [scale_factor(h) for h in heights]

    assert factors == sorted(factors)
    assert len(set(factors)) == len(factors)
    assert scale_factor(8) == pytest.approx(2 * scale_factor(4))


@pytest.mark.parametrize("height", [0, -4])
def test_scale_factor_rejects_non_positive_height(height):
    with pytest.raises(ValueError):
        scale_factor(height)


# --- 分词 -----------------------------------------------------------------


def test_tokens_split_on_whitespace_and_controls():
    tokens = list(iter_tokens(io.StringIO("ab  cd\nef\r\ngh")))

    assert tokens == [
        Word("ab"),
        Word("cd"),
        Control.NEWLINE,
        Word("ef"),
        Control.CARRIAGE_RETURN,
        Control.NEWLINE,
        Word("gh"),
    ]


def test_tokens_survive_chunk_boundaries():
    tokens = list(iter_tokens(io.StringIO("abcde fgh"), chunk_size=2))

    assert tokens == [Word("abcde"), Word("fgh")]


def test_carriage_return_ignored_mode_is_plain_whitespace():
    tokens = list(iter_tokens(io.StringIO("ab\rcd"), cr_mode="ignore"))

    assert tokens == [Word("ab"), Word("cd")]


def test_long_word_is_truncated_to_cap():
    tokens = list(iter_tokens(io.StringIO("x" * 150 + " y")))

    assert tokens == [Word("x" * MAX_WORD_LENGTH), Word("y")]


def test_word_at_cap_is_kept_whole():
    tokens = list(iter_tokens(io.StringIO("x" * MAX_WORD_LENGTH)))

    assert tokens == [Word("x" * 99)]


def test_unsupported_character_keeps_its_slot_in_word():
    assert list(iter_tokens(io.StringIO("A?A"))) == [Word("A?A")]


# --- 宽度 -----------------------------------------------------------------


def test_measure_word_sums_advances_and_spacing(table):
    params = _params(char_spacing=1.0, word_spacing=5.0)

    assert measure_word("AB", table, params) == 10 + 1 + 10 + 1 + 5


def test_measure_word_scales_advances(table):
    assert measure_word("AA", table, _params(scale=0.5)) == 10.0


def test_unsupported_character_has_zero_width(table):
    params = _params(word_spacing=5.0)

    assert measure_word("A?", table, params) == measure_word("A", table, params)
    assert measure_word("?", table, params) == 5.0


# --- 排版 -----------------------------------------------------------------


def test_single_glyph_placed_at_origin(table):
    events = _layout("A", table)

    assert _origins(events) == [("A", 0.0, 0.0)]


def test_exact_fit_does_not_wrap(table):
    events = _layout("AAA AA", table)

    assert _origins(events)[-2:] == [("A", 30.0, 0.0), ("A", 40.0, 0.0)]
    assert not any(isinstance(e, LineBreak) for e in events)


def test_one_unit_over_wraps(table):
    events = _layout("AAA AA", table, max_line_width=49.0)

    breaks = [e for e in events if isinstance(e, LineBreak)]
    assert breaks == [LineBreak(reason="wrap", origin_y=-10.0)]
    assert _origins(events)[-2:] == [("A", 0.0, -10.0), ("A", 10.0, -10.0)]


def test_two_sixty_wide_words_on_hundred_wide_line(table):
    events = _layout("AAAAAA AAAAAA", table, max_line_width=100.0, word_spacing=5.0)
    origins = _origins(events)

    assert origins[0] == ("A", 0.0, 0.0)
    assert origins[6] == ("A", 0.0, -10.0)
    assert [e.reason for e in events if isinstance(e, LineBreak)] == ["wrap"]


def test_wrap_happens_before_any_glyph_of_the_word(table):
    events = _layout("AA AAAA", table)
    kinds = [type(e).__name__ for e in events]

    assert kinds == ["Placement"] * 2 + ["LineBreak"] + ["Placement"] * 4


def test_overlong_word_is_placed_whole_on_a_fresh_line(table):
    events = _layout("AA " + "A" * 8, table)
    origins = _origins(events)[2:]

    assert len(origins) == 8
    assert [x for _, x, _ in origins] == [float(10 * i) for i in range(8)]
    assert {y for _, _, y in origins} == {-10.0}


def test_overlong_word_at_line_start_is_not_preceded_by_blank_line(table):
    events = _layout("A" * 8, table)

    assert not any(isinstance(e, LineBreak) for e in events)
    assert _origins(events)[0] == ("A", 0.0, 0.0)


def test_word_cap_limits_placements(table):
    events = _layout("A" * 150, table, max_line_width=10000.0)

    assert len(_origins(events)) == 99


def test_newline_forces_break(table):
    events = _layout("A\nB", table)

    assert events == [
        events[0],
        LineBreak(reason="forced", origin_y=-10.0),
        events[2],
    ]
    assert _origins(events) == [("A", 0.0, 0.0), ("B", 0.0, -10.0)]


def test_blank_lines_still_advance(table):
    events = _layout("A\n\nB", table)

    assert _origins(events)[-1] == ("B", 0.0, -20.0)


def test_carriage_return_resets_x_only(table):
    events = _layout("AA\rB", table)

    assert _origins(events)[-1] == ("B", 0.0, 0.0)
    assert LineBreak(reason="return", origin_y=0.0) in events


def test_carriage_return_as_newline(table):
    events = _layout("AA\rB", table, cr_mode="newline")

    assert _origins(events)[-1] == ("B", 0.0, -10.0)


def test_carriage_return_ignored(table):
    events = _layout("AA\rB", table, cr_mode="ignore")

    assert _origins(events)[-1] == ("B", 20.0, 0.0)


def test_unsupported_characters_are_skipped_and_reported(table):
    missing = []
    events = list(layout_text(io.StringIO("A?A"), table, _params(), missing=missing))

    assert _origins(events) == [("A", 0.0, 0.0), ("A", 10.0, 0.0)]
    assert missing == ["?"]


def test_start_y_and_spacing(table):
    events = _layout("A B\nA", table, start_y=-5.0, char_spacing=1.0, word_spacing=4.0)

    assert _origins(events) == [("A", 0.0, -5.0), ("B", 15.0, -5.0), ("A", 0.0, -15.0)]


def test_layout_is_repeatable(table):
    text = "AB BA\nAAAAA BBBBB AB\rBA"

    assert _layout(text, table) == _layout(text, table)


def test_layout_is_lazy(table):
    events = layout_text(io.StringIO("A B"), table, _params())

    assert isinstance(next(events), Placement)


@pytest.mark.parametrize(
    "overrides",
    [{"scale": 0.0}, {"max_line_width": 0.0}, {"line_spacing": -1.0}, {"word_spacing": -1.0}, {"cr_mode": "up"}],
)
def test_invalid_params_are_rejected(table, overrides):
    with pytest.raises(ValueError):
        _layout("A", table, **overrides)
