"""robot_writer
=================
该包聚合了单线字体写字机的核心模块：
1. 笔画字体加载
2. 文本排版与 G-code 生成
3. 串口设备通道与命令行入口
"""

from __future__ import annotations

__all__ = ["__version__"]

__version__ = "0.1.0"
