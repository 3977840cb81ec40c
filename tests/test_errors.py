from __future__ import annotations

import errno

import pytest

from serialport.errors import (
    ErrorKind,
    InvalidInputError,
    NoDeviceError,
    PortClosedError,
    SerialError,
    SerialIOError,
    SerialTimeoutError,
    UnknownEncodingError,
    from_oserror,
    from_winerror,
)


@pytest.mark.parametrize(
    "code, cls",
    [
        (2, NoDeviceError),
        (3, NoDeviceError),
        (5, NoDeviceError),
        (123, InvalidInputError),
        (121, SerialTimeoutError),
        (1460, SerialTimeoutError),
        (31, SerialIOError),
        (995, SerialIOError),
    ],
)
def test_from_winerror(code, cls):
    exc = from_winerror(code, "Some message.\r\n")
    assert type(exc) is cls
    assert exc.code == code
    assert str(exc) == "Some message."


@pytest.mark.parametrize(
    "code, cls",
    [
        (errno.ENOENT, NoDeviceError),
        (errno.EACCES, NoDeviceError),
        (errno.EBUSY, NoDeviceError),
        (errno.ENXIO, NoDeviceError),
        (errno.ETIMEDOUT, SerialTimeoutError),
        (errno.EIO, SerialIOError),
        (errno.ENOTTY, SerialIOError),
    ],
)
def test_from_oserror(code, cls):
    exc = from_oserror(OSError(code, "boom"))
    assert type(exc) is cls
    assert exc.code == code
    assert str(exc) == "boom"


def test_from_termios_error():
    termios = pytest.importorskip("termios")
    exc = from_oserror(termios.error(errno.ENOTTY, "Inappropriate ioctl for device"))
    assert isinstance(exc, SerialIOError)
    assert exc.code == errno.ENOTTY
    assert str(exc) == "Inappropriate ioctl for device"


def test_kinds():
    assert NoDeviceError("x").kind == ErrorKind.NO_DEVICE
    assert InvalidInputError("x").kind == ErrorKind.INVALID_INPUT
    assert UnknownEncodingError("x").kind == ErrorKind.UNKNOWN
    assert SerialIOError("x").kind == ErrorKind.IO
    assert SerialTimeoutError("x").kind == ErrorKind.TIMED_OUT


def test_builtin_bases():
    # Callers can catch the usual builtin exceptions
    assert isinstance(SerialTimeoutError("x"), TimeoutError)
    assert isinstance(InvalidInputError("x"), ValueError)
    assert isinstance(PortClosedError("x"), ValueError)
    for cls in (NoDeviceError, UnknownEncodingError, SerialIOError):
        assert issubclass(cls, SerialError)
        assert issubclass(cls, OSError)
