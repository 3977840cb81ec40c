# Entrypoint of serialport.
# (C) 2020 Jörn Heissler

# SPDX-License-Identifier: BSD-3-Clause

"""
Module to select an implementation of serialport suitable for the user's OS.
"""

from __future__ import annotations

import os
import sys
from typing import Optional, Type

from .abstract import (
    AbstractSerialPort,
    ClearBuffer,
    DataBits,
    FlowControl,
    Parity,
    SerialPortSettings,
    StopBits,
)
from .errors import (
    ErrorKind,
    InvalidInputError,
    NoDeviceError,
    PortClosedError,
    SerialError,
    SerialIOError,
    SerialTimeoutError,
    UnknownEncodingError,
)

SerialPort: Type[AbstractSerialPort]

if os.name == "nt":
    from .windows import WindowsSerialPort as SerialPort
elif os.name == "posix":
    plat = sys.platform.lower()
    if plat.startswith("linux"):
        from .linux import LinuxSerialPort as SerialPort
    elif plat.startswith("darwin"):
        from .darwin import DarwinSerialPort as SerialPort
    elif any(plat.startswith(term) for term in ["bsd", "freebsd", "netbsd", "openbsd"]):
        from .bsd import BsdSerialPort as SerialPort
    else:
        from .posix import PosixSerialPort as SerialPort
else:
    raise ImportError(f"Platform {os.name!r} not supported.")


def open(name: str, settings: Optional[SerialPortSettings] = None) -> AbstractSerialPort:
    """
    Open and configure a port with the implementation for this platform.

    Args:
        name: Name of port, e.g. "/dev/ttyUSB0" or "COM7"
        settings: Initial configuration, defaults to 9600 8N1 without flow control
    """
    return SerialPort.open(name, settings)


__all__ = [
    "AbstractSerialPort",
    "ClearBuffer",
    "DataBits",
    "ErrorKind",
    "FlowControl",
    "InvalidInputError",
    "NoDeviceError",
    "Parity",
    "PortClosedError",
    "SerialError",
    "SerialIOError",
    "SerialPort",
    "SerialPortSettings",
    "SerialTimeoutError",
    "StopBits",
    "UnknownEncodingError",
    "open",
]
