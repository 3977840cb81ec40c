# Darwin implementation of serialport.
# (C) 2020 Jörn Heissler
#
# Code is based on pySerial, https://github.com/pyserial/pyserial
# (C) 2001-2020 Chris Liechti <cliechti@gmx.net>

# SPDX-License-Identifier: BSD-3-Clause

"""
Darwin backend for serialport.
"""

from __future__ import annotations

import array
import fcntl
import os

from .errors import InvalidInputError
from .posix import PosixSerialPort


class DarwinSerialPort(PosixSerialPort):
    """
    Darwin specific constants and functions
    """

    IOSSIOSPEED = 0x80045402  # _IOW('T', 2, speed_t)
    osx_version = int(os.uname().release.split(".")[0])

    # Tiger or above can support arbitrary serial speeds
    if osx_version >= 8:

        def _set_special_baudrate(self, fd: int, baud_rate: int) -> None:
            """
            Set custom baudrate
            """
            # use IOKit-specific call to set up high speeds
            buf = array.array("i", [baud_rate])
            try:
                fcntl.ioctl(fd, self.IOSSIOSPEED, buf, True)
            except OSError as ex:
                raise InvalidInputError(
                    f"Failed to set custom baud rate {baud_rate}: {ex!s}", ex.errno
                ) from ex

    def _decode_baudrate(self, speed: int) -> int:
        # speed_t holds the literal rate
        return speed
