"""device.py
=============
写字机设备通道：负责把 G-code 一条一条交给设备。
1. SerialChannel 通过 pyserial 与 GRBL 类控制器通信，每条指令都等待 ``ok`` 应答；
2. SimulatedChannel 把指令写入文本流，用于离线预览与测试；
3. send_commands 保证逐条发送、逐条应答，绝不批量塞给设备。
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Iterable, Optional, TextIO
import logging
import sys
import time

import serial

logger = logging.getLogger(__name__)

DEFAULT_BAUDRATE = 115200
DEFAULT_ACK_TOKEN = "ok"
ERROR_PREFIXES = ("error", "alarm")


class DeviceError(RuntimeError):
    """设备通信失败时的统一异常。"""


class DeviceChannel(ABC):
    """设备通道接口；子类必须实现全部五个方法才能实例化。"""

    @abstractmethod
    def open(self) -> None:
        """建立连接。"""

    @abstractmethod
    def is_ready(self) -> bool:
        """设备是否可以接收指令。"""

    @abstractmethod
    def transmit(self, command: str) -> None:
        """发送一条指令。"""

    @abstractmethod
    def await_acknowledgment(self) -> None:
        """阻塞等待上一条指令的应答。"""

    @abstractmethod
    def close(self) -> None:
        """释放连接。"""

    def __enter__(self) -> "DeviceChannel":
        self.open()
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()


class SerialChannel(DeviceChannel):
    """基于 pyserial 的串口通道。"""

    def __init__(
        self,
        port: str,
        baudrate: int = DEFAULT_BAUDRATE,
        timeout: float = 1.0,
        ack_token: str = DEFAULT_ACK_TOKEN,
        ack_timeout: float = 30.0,
        wake_delay: float = 2.0,
    ) -> None:
        self.port = port
        self.baudrate = baudrate
        self.timeout = timeout
        self.ack_token = ack_token
        self.ack_timeout = ack_timeout
        self.wake_delay = wake_delay
        self._serial: Optional[serial.Serial] = None

    def open(self) -> None:
        try:
            self._serial = serial.Serial(self.port, self.baudrate, timeout=self.timeout)
        except serial.SerialException as exc:
            raise DeviceError(f"无法打开串口 {self.port}：{exc}") from exc
        logger.info("串口 %s 已打开，波特率 %d", self.port, self.baudrate)
        # 控制器上电复位需要一点时间
        time.sleep(self.wake_delay)

    def is_ready(self) -> bool:
        """发送一个空行唤醒控制器，收到任意回复即视为就绪。"""

        link = self._require_open()
        link.reset_input_buffer()
        link.write(b"\n")
        link.flush()
        deadline = time.monotonic() + self.ack_timeout
        while time.monotonic() < deadline:
            reply = link.readline().decode("ascii", errors="ignore").strip()
            if reply:
                logger.debug("设备握手回复：%s", reply)
                return True
        return False

    def transmit(self, command: str) -> None:
        link = self._require_open()
        payload = command if command.endswith("\n") else command + "\n"
        logger.debug(">> %s", payload.rstrip())
        link.write(payload.encode("ascii"))
        link.flush()

    def await_acknowledgment(self) -> None:
        """读取回复直到出现应答标记；超时或收到 error/alarm 则抛出 DeviceError。"""

        link = self._require_open()
        deadline = time.monotonic() + self.ack_timeout
        while time.monotonic() < deadline:
            reply = link.readline().decode("ascii", errors="ignore").strip()
            if not reply:
                continue
            logger.debug("<< %s", reply)
            if reply.lower().startswith(ERROR_PREFIXES):
                raise DeviceError(f"设备返回错误：{reply}")
            if self.ack_token in reply:
                return
        raise DeviceError(f"等待设备应答超时（{self.ack_timeout} 秒）")

    def close(self) -> None:
        if self._serial is not None:
            self._serial.close()
            self._serial = None
            logger.info("串口 %s 已关闭", self.port)

    def _require_open(self) -> serial.Serial:
        if self._serial is None:
            raise DeviceError("串口尚未打开")
        return self._serial


class SimulatedChannel(DeviceChannel):
    """模拟设备：把指令原样写入文本流，始终就绪、立即应答。"""

    def __init__(self, stream: Optional[TextIO] = None) -> None:
        self.stream = stream if stream is not None else sys.stdout
        self.sent = 0
        self.acknowledged = 0
        self.is_open = False

    def open(self) -> None:
        self.is_open = True

    def is_ready(self) -> bool:
        return self.is_open

    def transmit(self, command: str) -> None:
        if not self.is_open:
            raise DeviceError("模拟设备尚未打开")
        self.stream.write(command if command.endswith("\n") else command + "\n")
        self.sent += 1

    def await_acknowledgment(self) -> None:
        self.acknowledged += 1

    def close(self) -> None:
        self.is_open = False


def send_commands(channel: DeviceChannel, commands: Iterable[str], pause_s: float = 0.0) -> int:
    """逐条发送指令并等待应答，返回发送条数。通道需已打开。"""

    if not channel.is_ready():
        raise DeviceError("设备未就绪，放弃发送")
    sent = 0
    for command in commands:
        channel.transmit(command)
        channel.await_acknowledgment()
        sent += 1
        if pause_s > 0:
            time.sleep(pause_s)
    logger.info("共发送 %d 条指令", sent)
    return sent
