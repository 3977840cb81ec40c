# BSD implementation of serialport.
# (C) 2020 Jörn Heissler
#
# Code is based on pySerial, https://github.com/pyserial/pyserial
# (C) 2001-2020 Chris Liechti <cliechti@gmx.net>

# SPDX-License-Identifier: BSD-3-Clause

"""
BSD backend for serialport.
"""

from __future__ import annotations

from typing import Iterator, Mapping

from .posix import PosixSerialPort


class ReturnBaudrate(Mapping[int, int]):
    """
    Maps every baud rate onto itself.
    """

    def __getitem__(self, key: int) -> int:
        return key

    def __iter__(self) -> Iterator[int]:
        return iter(())

    def __len__(self) -> int:
        return 0


class BsdSerialPort(PosixSerialPort):
    """
    BSD specific constants and functions
    """

    # Only tested on FreeBSD:
    # The baud rate may be passed in as a literal value.
    BAUDRATE_CONSTANTS = ReturnBaudrate()

    def _decode_baudrate(self, speed: int) -> int:
        return speed
