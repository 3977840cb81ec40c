# Error types of serialport.
# (C) 2026 serialport contributors

# SPDX-License-Identifier: BSD-3-Clause

"""
Exceptions raised by serialport and the mapping from native error codes onto them.
"""

from __future__ import annotations

import errno
from enum import Enum, auto
from typing import Optional, Type


class ErrorKind(Enum):
    """
    Category of a :py:class:`SerialError`.
    """

    #: Device is absent, busy or access was denied
    NO_DEVICE = auto()

    #: Caller supplied a malformed name or an out-of-domain value
    INVALID_INPUT = auto()

    #: Native setting has no portable counterpart
    UNKNOWN = auto()

    #: Any other failure reported by the operating system
    IO = auto()

    #: Read or write made no progress before the timeout expired
    TIMED_OUT = auto()


class SerialError(OSError):
    """
    Base class of all serialport errors.
    """

    kind: ErrorKind = ErrorKind.IO

    def __init__(self, message: str, code: Optional[int] = None) -> None:
        """
        Args:
            message: Human readable description
            code: Native error code (``errno`` or Windows error), if any
        """
        super().__init__(message)
        self.message = message
        self.code = code


class NoDeviceError(SerialError):
    kind = ErrorKind.NO_DEVICE


class InvalidInputError(SerialError, ValueError):
    kind = ErrorKind.INVALID_INPUT


class UnknownEncodingError(SerialError):
    """
    A native setting was read back that this library never writes.
    Either the device runs in an unsupported mode or another program reconfigured it.
    """

    kind = ErrorKind.UNKNOWN


class SerialIOError(SerialError):
    kind = ErrorKind.IO


class SerialTimeoutError(SerialError, TimeoutError):
    kind = ErrorKind.TIMED_OUT


class PortClosedError(SerialError, ValueError):
    kind = ErrorKind.IO


# https://learn.microsoft.com/en-us/windows/win32/debug/system-error-codes--0-499-
ERROR_FILE_NOT_FOUND = 2
ERROR_PATH_NOT_FOUND = 3
ERROR_ACCESS_DENIED = 5
ERROR_SEM_TIMEOUT = 121
ERROR_INVALID_NAME = 123
ERROR_TIMEOUT = 1460

_WINERROR_TYPES = {
    ERROR_FILE_NOT_FOUND: NoDeviceError,
    ERROR_PATH_NOT_FOUND: NoDeviceError,
    ERROR_ACCESS_DENIED: NoDeviceError,
    ERROR_INVALID_NAME: InvalidInputError,
    ERROR_SEM_TIMEOUT: SerialTimeoutError,
    ERROR_TIMEOUT: SerialTimeoutError,
}

_ERRNO_TYPES = {
    errno.ENOENT: NoDeviceError,
    errno.ENODEV: NoDeviceError,
    errno.ENXIO: NoDeviceError,
    errno.EACCES: NoDeviceError,
    errno.EPERM: NoDeviceError,
    errno.EBUSY: NoDeviceError,
    errno.ETIMEDOUT: SerialTimeoutError,
}


def from_winerror(code: int, message: str) -> SerialError:
    """
    Translate a Windows error code.

    Args:
        code: Value of ``GetLastError()``
        message: Text as returned by ``FormatMessage``

    Returns:
        Exception instance, not raised yet
    """
    cls: Type[SerialError] = _WINERROR_TYPES.get(code, SerialIOError)
    return cls(message.strip(), code)


def from_oserror(exc: BaseException) -> SerialError:
    """
    Translate an :py:class:`OSError` or :py:class:`termios.error`.

    ``termios.error`` is not an OSError, its ``args`` are ``(errno, strerror)``.
    """
    code = getattr(exc, "errno", None)
    message = getattr(exc, "strerror", None)
    if code is None and len(exc.args) == 2 and isinstance(exc.args[0], int):
        code, message = exc.args
    cls: Type[SerialError] = _ERRNO_TYPES.get(code, SerialIOError)
    return cls(str(message or exc), code)
