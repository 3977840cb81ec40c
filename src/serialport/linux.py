# Linux implementation of serialport.
# (C) 2020 Jörn Heissler
#
# Code is based on pySerial, https://github.com/pyserial/pyserial
# (C) 2001-2020 Chris Liechti <cliechti@gmx.net>

# SPDX-License-Identifier: BSD-3-Clause

"""
Linux backend for serialport.
"""

from __future__ import annotations

import array
import fcntl
import termios
from typing import Any, List, Optional

from .errors import InvalidInputError, SerialIOError
from .posix import CC, CFLAG, IFLAG, LFLAG, OFLAG, PosixSerialPort

CIBAUD = getattr(termios, "CIBAUD", 0o2003600000)


class LinuxSerialPort(PosixSerialPort):
    """
    Linux specific constants and functions
    """

    # Extra termios flags
    # Use "stick" (mark/space) parity
    CMSPAR = 0o10000000000

    # Baudrate ioctls
    TCGETS2 = 0x802C542A
    TCSETS2 = 0x402C542B
    BOTHER = 0o010000

    BAUDRATE_CONSTANTS = {
        50: 0o000001,
        75: 0o000002,
        110: 0o000003,
        134: 0o000004,
        150: 0o000005,
        200: 0o000006,
        300: 0o000007,
        600: 0o000010,
        1200: 0o000011,
        1800: 0o000012,
        2400: 0o000013,
        4800: 0o000014,
        9600: 0o000015,
        19200: 0o000016,
        38400: 0o000017,
        57600: 0o010001,
        115200: 0o010002,
        230400: 0o010003,
        460800: 0o010004,
        500000: 0o010005,
        576000: 0o010006,
        921600: 0o010007,
        1000000: 0o010010,
        1152000: 0o010011,
        1500000: 0o010012,
        2000000: 0o010013,
        2500000: 0o010014,
        3000000: 0o010015,
        3500000: 0o010016,
        4000000: 0o010017,
    }

    # struct termios2: four flag words, c_line, c_cc[19], input and output speed
    NCCS2 = 19
    CC_OFFSET = 17
    ISPEED2, OSPEED2 = 9, 10

    def _termios2(self, fd: int) -> array.array:
        # right size is 44 on x86_64, allow for some growth
        buf = array.array("I", [0] * 64)
        fcntl.ioctl(fd, self.TCGETS2, buf)
        return buf

    def _commit(self, attrs: List[Any], custom_baud_rate: Optional[int]) -> None:
        """
        Custom rates go out together with all other attributes in one ``TCSETS2``.
        """
        if custom_baud_rate is None:
            super()._commit(attrs, None)
            return

        fd = self.fd
        try:
            buf = self._termios2(fd)
            buf[IFLAG] = attrs[IFLAG]
            buf[OFLAG] = attrs[OFLAG]
            buf[CFLAG] = attrs[CFLAG] & ~(termios.CBAUD | CIBAUD) | self.BOTHER
            buf[LFLAG] = attrs[LFLAG]
            with memoryview(buf) as raw, raw.cast("B") as view:
                for index, value in enumerate(attrs[CC][: self.NCCS2]):
                    view[self.CC_OFFSET + index] = value if isinstance(value, int) else ord(value)
            buf[self.ISPEED2] = buf[self.OSPEED2] = custom_baud_rate
            fcntl.ioctl(fd, self.TCSETS2, buf)
        except (OSError, OverflowError) as ex:
            raise InvalidInputError(
                f"Failed to set custom baud rate {custom_baud_rate}: {ex!s}",
                getattr(ex, "errno", None),
            ) from ex

    def _decode_baudrate(self, speed: int) -> int:
        if speed != self.BOTHER:
            return super()._decode_baudrate(speed)

        try:
            buf = self._termios2(self.fd)
        except OSError as ex:
            raise SerialIOError(f"Failed to get custom baud rate: {ex!s}", ex.errno) from ex
        return buf[self.OSPEED2]
