"""config.py
===============
该模块集中负责配置文件的读写、默认值生成与字高校验，避免业务模块重复关注磁盘状态。
CLI 的 gcode/send 两个子命令共享同一套配置逻辑。
"""

from __future__ import annotations

import copy
import json
from pathlib import Path
from typing import Any, Dict

CONFIG_PATH = Path(__file__).resolve().parent.parent / "config.json"

MIN_TEXT_HEIGHT_MM = 4.0
MAX_TEXT_HEIGHT_MM = 10.0


class ConfigError(RuntimeError):
    """配置相关的统一异常，方便主流程捕获并做友好提示。"""


class ValidationError(ConfigError):
    """用户输入不合法（如字高越界），由 CLI 负责重新提示。"""


DEFAULT_CONFIG: Dict[str, Any] = {
    "text": {
        "height_mm": None,
        "reference_height": 18.0,
    },
    "layout": {
        "max_line_width_mm": 100.0,
        "line_spacing_mm": 10.0,
        "char_spacing_mm": 0.0,
        "word_spacing_mm": 5.0,
        "start_y_mm": 0.0,
        "cr_mode": "reset_x",
        "advance_mode": "fixed",
        "advance_units": 18.0,
    },
    "gcode": {
        "init_sequence": ["G1 X0 Y0 F1000", "M3", "S0"],
        "finish_sequence": ["S0", "G0 X0 Y0"],
    },
    "device": {
        "port": "/dev/ttyUSB0",
        "baudrate": 115200,
        "timeout_s": 1.0,
        "ack_token": "ok",
        "ack_timeout_s": 30.0,
        "pause_s": 0.1,
    },
    "paths": {
        "font": "assets/SingleStrokeFont.txt",
        "text": "assets/test.txt",
        "output": "artifacts/writing.nc",
    },
}


def load_config(path: Path = CONFIG_PATH) -> Dict[str, Any]:
    """加载配置，缺失字段补齐默认值；首次运行时写出默认模板。"""

    if not path.exists():
        save_config(DEFAULT_CONFIG, path)
        return copy.deepcopy(DEFAULT_CONFIG)
    try:
        user_cfg = json.loads(path.read_text(encoding="utf-8"))
    except json.JSONDecodeError as exc:
        raise ConfigError(f"无法解析配置文件 {path}: {exc}") from exc
    if not isinstance(user_cfg, dict):
        raise ConfigError(f"配置文件 {path} 顶层必须是对象")
    return _deep_merge(DEFAULT_CONFIG, user_cfg)


def save_config(data: Dict[str, Any], path: Path = CONFIG_PATH) -> None:
    """将配置写回磁盘；写入前做一次 JSON 序列化校验。"""

    try:
        serialized = json.dumps(data, indent=2, ensure_ascii=False)
    except (TypeError, ValueError) as exc:
        raise ConfigError(f"配置数据无法序列化：{exc}") from exc
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(serialized + "\n", encoding="utf-8")


def validate_text_height(raw: Any) -> float:
    """把用户输入转换为字高 (mm)，只接受 [4, 10] 闭区间内的数值。"""

    if isinstance(raw, bool):
        raise ValidationError(f"字高必须是数字：{raw!r}")
    try:
        value = float(raw)
    except (TypeError, ValueError) as exc:
        raise ValidationError(f"字高必须是数字：{raw!r}") from exc
    if not MIN_TEXT_HEIGHT_MM <= value <= MAX_TEXT_HEIGHT_MM:
        raise ValidationError(f"字高必须在 {MIN_TEXT_HEIGHT_MM:g}~{MAX_TEXT_HEIGHT_MM:g} mm 之间，实际为 {value:g}")
    return value


def _deep_merge(defaults: Dict[str, Any], overrides: Dict[str, Any]) -> Dict[str, Any]:
    """以默认配置为骨架逐节覆盖；值为 null 的字段保留默认值，返回值不与 DEFAULT_CONFIG 共享对象。"""

    merged = copy.deepcopy(defaults)
    for key, value in overrides.items():
        if value is None:
            continue
        if isinstance(merged.get(key), dict) and isinstance(value, dict):
            merged[key] = _deep_merge(merged[key], value)
        else:
            merged[key] = copy.deepcopy(value)
    return merged
