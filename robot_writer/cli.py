"""cli.py
==========
命令行入口，串联字体加载、排版与设备发送。设计目标：
- 以 argparse 提供自描述式参数；
- 统一加载 config.json 作为默认值，CLI 只覆盖用户显式传入的部分；
- 未给出字高时交互式询问，输入不合法则反复提示。"""

from __future__ import annotations

import argparse
import io
import logging
import sys
from pathlib import Path
from typing import Any, Callable, Dict, Iterable, List, Optional

from .config import ConfigError, ValidationError, load_config, validate_text_height
from .device import DeviceError, SerialChannel, SimulatedChannel, send_commands
from .gcode import ExportParams, GcodeParams, export_gcode, generate_gcode
from .layout import CR_MODES, LayoutParams, scale_factor, validate_layout_params
from .stroke_font import ADVANCE_MODES, FontError, GlyphTable, load_font


def build_parser() -> argparse.ArgumentParser:
    """构造顶级命令解析器。"""

    parser = argparse.ArgumentParser(description="单线字体写字机 CLI")
    parser.add_argument("--verbose", action="store_true", help="输出调试日志，便于排查排版细节")
    parser.add_argument("--config", type=Path, help="配置文件路径，默认使用包旁边的 config.json")
    subparsers = parser.add_subparsers(dest="command", required=True)

    gcode_parser = subparsers.add_parser("gcode", help="把文本排版为 G-code 文件")
    _add_layout_arguments(gcode_parser)
    gcode_parser.add_argument("--output", help="输出 .nc 路径，传 - 则打印到终端，默认读取 config.paths.output")

    send_parser = subparsers.add_parser("send", help="排版后逐条发送到写字机")
    _add_layout_arguments(send_parser)
    send_parser.add_argument("--port", help="串口名，默认读取 config.device.port")
    send_parser.add_argument("--baudrate", type=int, help="波特率，默认 115200")
    send_parser.add_argument("--pause", type=float, help="每条指令之间的停顿秒数")
    send_parser.add_argument("--dry-run", action="store_true", help="不连接设备，把指令打印到终端")

    return parser


def _add_layout_arguments(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("--font", type=Path, help="字体文件路径，默认读取 config.paths.font")
    parser.add_argument("--text", help="直接输入要书写的文字")
    parser.add_argument("--text-file", type=Path, help="从文本文件读取内容，默认读取 config.paths.text")
    parser.add_argument("--height", help="字高 4~10 mm，缺省时交互式询问")
    parser.add_argument("--line-width", type=float, help="最大行宽 mm，默认 100")
    parser.add_argument("--line-spacing", type=float, help="行距 mm")
    parser.add_argument("--cr-mode", choices=CR_MODES, help="回车处理方式")
    parser.add_argument("--advance-mode", choices=ADVANCE_MODES, help="字宽来源：fixed 固定宽度 / geometry 按笔画推导")


def main(argv: Optional[Iterable[str]] = None) -> int:
    """程序入口：解析参数 -> 调用对应子命令。"""

    parser = build_parser()
    args = parser.parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="[%(levelname)s] %(message)s",
    )

    try:
        config = load_config(args.config) if args.config else load_config()
        if args.command == "gcode":
            _handle_gcode(args, config)
        elif args.command == "send":
            _handle_send(args, config)
        else:  # pragma: no cover - 理论上不会走到
            parser.error("未知命令")
    except (ConfigError, FontError, DeviceError, OSError, ValueError) as exc:
        logging.error("%s", exc)
        return 1
    return 0


def _handle_gcode(args: argparse.Namespace, config: Dict[str, Any]) -> None:
    """处理 gcode 子命令：读取字体 + 文本，输出 G-code。"""

    height = _resolve_height(args, config)
    if height is None:
        return
    table = _load_table(args, config)
    layout = _layout_params(args, config, height)
    gcode = _gcode_params(config)
    output = args.output or config["paths"].get("output")
    if output is None:
        raise ConfigError("请通过 --output 指定路径，或在 config.paths 中设置默认值")

    if args.text or output == "-":
        missing: List[str] = []
        if output == "-":
            target = sys.stdout
        else:
            output_path = Path(output).expanduser()
            output_path.parent.mkdir(parents=True, exist_ok=True)
            target = output_path.open("w", encoding="utf-8")
        try:
            with _open_text(args, config) as source:
                for command in generate_gcode(source, table, layout, gcode, missing):
                    target.write(command)
        finally:
            if target is not sys.stdout:
                target.close()
        _print_missing_table(missing)
        return

    result = export_gcode(
        ExportParams(
            text_path=_pick_path(args.text_file, config["paths"].get("text"), "--text-file"),
            output_path=Path(output).expanduser(),
            table=table,
            layout=layout,
            gcode=gcode,
        )
    )
    _print_missing_table(result.missing_chars)
    logging.info(
        "共放置 %d 个字形，%d 行，%d 条指令，缺字 %d 个",
        result.placed_glyphs,
        result.line_count,
        result.total_commands,
        len(result.missing_chars),
    )


def _handle_send(args: argparse.Namespace, config: Dict[str, Any]) -> None:
    """处理 send 子命令：逐条发送到串口（或模拟设备）。"""

    height = _resolve_height(args, config)
    if height is None:
        return
    table = _load_table(args, config)
    layout = _layout_params(args, config, height)
    gcode = _gcode_params(config)
    device_cfg = config["device"]
    pause = args.pause if args.pause is not None else device_cfg["pause_s"]

    if args.dry_run:
        channel = SimulatedChannel(sys.stdout)
    else:
        channel = SerialChannel(
            port=args.port or device_cfg["port"],
            baudrate=args.baudrate or device_cfg["baudrate"],
            timeout=device_cfg["timeout_s"],
            ack_token=device_cfg["ack_token"],
            ack_timeout=device_cfg["ack_timeout_s"],
        )

    missing: List[str] = []
    with channel, _open_text(args, config) as source:
        logging.info("开始逐条发送指令")
        sent = send_commands(channel, generate_gcode(source, table, layout, gcode, missing), pause_s=pause)
    _print_missing_table(missing)
    logging.info("共发送 %d 条指令，设备连接已关闭", sent)


def prompt_text_height(
    input_fn: Callable[[str], str] = input,
    output_fn: Callable[[str], None] = print,
) -> Optional[float]:
    """反复询问字高直到输入合法；输入 q 或遇到 EOF 返回 None。"""

    while True:
        try:
            raw = input_fn("请输入字高（4-10 mm，q 退出）：")
        except EOFError:
            return None
        if raw.strip().lower() in {"q", "quit"}:
            return None
        try:
            return validate_text_height(raw.strip())
        except ValidationError as exc:
            output_fn(str(exc))


def _resolve_height(args: argparse.Namespace, config: Dict[str, Any]) -> Optional[float]:
    """优先使用 --height，其次 config.text.height_mm，最后交互式询问。"""

    raw = args.height if args.height is not None else config["text"].get("height_mm")
    if raw is not None:
        return validate_text_height(raw)
    height = prompt_text_height()
    if height is None:
        print("未输入字高，程序退出。")
    return height


def _load_table(args: argparse.Namespace, config: Dict[str, Any]) -> GlyphTable:
    layout_cfg = config["layout"]
    font_path = _pick_path(args.font, config["paths"].get("font"), "--font")
    return load_font(
        font_path,
        advance_mode=args.advance_mode or layout_cfg["advance_mode"],
        advance_units=layout_cfg["advance_units"],
    )


def _layout_params(args: argparse.Namespace, config: Dict[str, Any], height: float) -> LayoutParams:
    layout_cfg = config["layout"]
    scale = scale_factor(height, config["text"]["reference_height"])
    logging.info("字高 %.1f mm，缩放系数 %.4f", height, scale)
    params = LayoutParams(
        scale=scale,
        max_line_width=args.line_width or layout_cfg["max_line_width_mm"],
        line_spacing=args.line_spacing or layout_cfg["line_spacing_mm"],
        char_spacing=layout_cfg["char_spacing_mm"],
        word_spacing=layout_cfg["word_spacing_mm"],
        start_y=layout_cfg["start_y_mm"],
        cr_mode=args.cr_mode or layout_cfg["cr_mode"],
    )
    validate_layout_params(params)
    return params


def _gcode_params(config: Dict[str, Any]) -> GcodeParams:
    gcode_cfg = config["gcode"]
    return GcodeParams(
        init_sequence=tuple(gcode_cfg["init_sequence"]),
        finish_sequence=tuple(gcode_cfg["finish_sequence"]),
    )


def _open_text(args: argparse.Namespace, config: Dict[str, Any]):
    """--text 包装为内存流，否则打开文本文件。"""

    if args.text:
        return io.StringIO(args.text)
    text_path = _pick_path(args.text_file, config["paths"].get("text"), "--text-file")
    return text_path.open("r", encoding="utf-8")


def _pick_path(cli_value: Path | None, config_value: str | None, flag_name: str) -> Path:
    """优先使用 CLI 传入路径，否则回落到 config 中的默认值。"""

    candidate = cli_value if cli_value is not None else config_value
    if candidate is None:
        raise ConfigError(f"请通过 {flag_name} 指定路径，或在 config.paths 中设置默认值")
    return Path(candidate).expanduser()


def _print_missing_table(missing: Iterable[str]) -> None:
    """将缺字信息以表格样式输出，便于快速对照。"""

    missing_list = list(missing)
    if not missing_list:
        print("所有字符都在字体中找到，无缺字。", file=sys.stderr)
        return

    unique_chars = sorted(set(missing_list))
    print("缺字统计（已跳过）：", file=sys.stderr)
    print("+------+----------+", file=sys.stderr)
    print("| 序号 | 字符     |", file=sys.stderr)
    print("+------+----------+", file=sys.stderr)
    for idx, char in enumerate(unique_chars, 1):
        safe_char = char if char.isprintable() else repr(char)
        print(f"| {idx:>4} | {safe_char:<8} |", file=sys.stderr)
    print("+------+----------+", file=sys.stderr)


if __name__ == "__main__":
    sys.exit(main())
