# Windows implementation of serialport.
# (C) 2020 Jörn Heissler

# SPDX-License-Identifier: BSD-3-Clause

"""
Windows backend for serialport.

COM ports are opened for synchronous (non-overlapped) I/O. Reads and writes
block in ``ReadFile``/``WriteFile`` for as long as the ``COMMTIMEOUTS`` of the
device allow.
"""

from __future__ import annotations

import logging
from typing import Any, ByteString, Optional, Type, TypeVar, cast

from . import _windows_cffi as win
from . import dcb as dcb_
from . import timeouts
from ._windows_cffi import (
    DUPLICATE_SAME_ACCESS,
    INVALID_HANDLE_VALUE,
    CommTimeouts,
    ComStat,
    Dcb,
    EscapeCommFunctions,
    FileFlags,
    Handle,
    ModemStatus,
    PurgeCommFlags,
    _handle,
    ffi,
    handle_value,
)
from .abstract import (
    AbstractSerialPort,
    ClearBuffer,
    DataBits,
    FlowControl,
    Parity,
    SerialPortSettings,
    StopBits,
    coerce,
)
from .errors import InvalidInputError, PortClosedError, SerialError, from_winerror

logger = logging.getLogger(__name__)

W = TypeVar("W", bound="WindowsSerialPort")

_PURGE_FLAGS = {
    ClearBuffer.INPUT: PurgeCommFlags.PURGE_RXABORT | PurgeCommFlags.PURGE_RXCLEAR,
    ClearBuffer.OUTPUT: PurgeCommFlags.PURGE_TXABORT | PurgeCommFlags.PURGE_TXCLEAR,
    ClearBuffer.ALL: (
        PurgeCommFlags.PURGE_RXABORT
        | PurgeCommFlags.PURGE_RXCLEAR
        | PurgeCommFlags.PURGE_TXABORT
        | PurgeCommFlags.PURGE_TXCLEAR
    ),
}


def _last_error() -> SerialError:
    code, message = win.last_winerror()
    return from_winerror(code, message)


def _check(success: Any) -> Any:
    if not success:
        raise _last_error()
    return success


def device_path(name: str) -> str:
    """
    Prefix :py:obj:`name` with ``\\\\.\\``, which is required for ``COM10`` and above
    and harmless below.

    Raises:
        InvalidInputError: Name is empty or cannot be passed to ``CreateFileW``
    """
    if not isinstance(name, str) or not name or "\0" in name:
        raise InvalidInputError(f"Invalid port name: {name!r}")
    try:
        name.encode("utf-16-le")
    except UnicodeEncodeError as ex:
        raise InvalidInputError(f"Invalid port name: {name!r}") from ex

    if name.startswith("\\\\"):
        return name
    return "\\\\.\\" + name


def comm_timeouts(
    read_timeout: Optional[float], write_timeout: Optional[float]
) -> CommTimeouts:
    """
    Build the ``COMMTIMEOUTS`` for both timeout intents.

    With a read timeout, ``ReadFile`` waits up to that long for the first byte and
    returns once the line has been quiet for 1 ms after it. Without one, the
    ``MAXDWORD`` interval makes ``ReadFile`` return at once with whatever is queued.
    A write constant of 0 disables the write timeout.
    """
    result = cast(CommTimeouts, ffi.new("COMMTIMEOUTS *"))
    if read_timeout is None:
        result.ReadIntervalTimeout = timeouts.MAXDWORD
        result.ReadTotalTimeoutConstant = 0
    else:
        result.ReadIntervalTimeout = 1
        result.ReadTotalTimeoutConstant = timeouts.to_millis(read_timeout)
    result.ReadTotalTimeoutMultiplier = 0
    result.WriteTotalTimeoutMultiplier = 0
    result.WriteTotalTimeoutConstant = timeouts.to_millis(write_timeout)
    return result


class WindowsSerialPort(AbstractSerialPort):
    """
    Windows implementation of :py:class:`SerialPort`.
    """

    # Device handle. `None` iff closed or released.
    _handle: Optional[Handle] = None

    def __init__(self, descriptor: Any, **kwargs: Any) -> None:
        super().__init__(descriptor, **kwargs)
        self._handle = _handle(descriptor)

    @classmethod
    def _open_descriptor(cls: Type[W], name: str) -> W:
        path = device_path(name)
        rawname_buf = ffi.new("wchar_t[]", path)

        handle = win.kernel32.CreateFileW(
            rawname_buf,
            FileFlags.GENERIC_READ | FileFlags.GENERIC_WRITE,
            0,  # exclusive access
            ffi.NULL,  # no security attributes
            FileFlags.OPEN_EXISTING,
            FileFlags.FILE_ATTRIBUTE_NORMAL,
            ffi.NULL,  # no template file
        )
        if handle == INVALID_HANDLE_VALUE:
            raise _last_error()

        logger.debug("Opened %s as handle %#x", path, handle_value(handle))
        return cls(handle, name=name)

    @property
    def handle(self) -> Handle:
        """
        Get the device handle or raise exception if closed.

        Raises:
            PortClosedError: If closed
        """
        if self._handle is None:
            raise PortClosedError("Port is closed.")

        return self._handle

    @property
    def closed(self) -> bool:
        return self._handle is None

    def close(self) -> None:
        """
        Close the port. Do nothing if already closed.
        """
        if self._handle is None:
            return

        handle = self._handle
        self._handle = None
        if not win.kernel32.CloseHandle(handle):
            logger.debug("CloseHandle(%#x) failed: %s", handle_value(handle), _last_error())
        else:
            logger.debug("Closed handle %#x", handle_value(handle))

    def fileno(self) -> int:
        return handle_value(self.handle)

    def into_raw(self) -> Handle:
        handle = self.handle
        self._handle = None
        logger.debug("Released handle %#x", handle_value(handle))
        return handle

    def _duplicate_descriptor(self) -> Handle:
        process = win.kernel32.GetCurrentProcess()
        target = ffi.new("HANDLE *", INVALID_HANDLE_VALUE)
        _check(
            win.kernel32.DuplicateHandle(
                process,
                self.handle,
                process,
                target,
                0,
                False,
                DUPLICATE_SAME_ACCESS,
            )
        )
        logger.debug(
            "Duplicated handle %#x as %#x", handle_value(self.handle), handle_value(target[0])
        )
        return Handle(target[0])

    def _get_dcb(self) -> Dcb:
        dcb = dcb_.new()
        _check(win.kernel32.GetCommState(self.handle, dcb))
        return dcb

    def _set_dcb(self, dcb: Dcb) -> None:
        _check(win.kernel32.SetCommState(self.handle, dcb))

    def _configure(self, settings: SerialPortSettings) -> None:
        dcb = self._get_dcb()
        dcb_.init(dcb)
        dcb_.apply(dcb, settings)
        self._set_dcb(dcb)

    def _apply_timeouts(
        self, read_timeout: Optional[float], write_timeout: Optional[float]
    ) -> None:
        timeouts_ = comm_timeouts(read_timeout, write_timeout)
        _check(win.kernel32.SetCommTimeouts(self.handle, timeouts_))

    def get_baud_rate(self) -> int:
        return dcb_.baud_rate(self._get_dcb())

    def set_baud_rate(self, baud_rate: int) -> None:
        dcb = self._get_dcb()
        dcb_.set_baud_rate(dcb, baud_rate)
        self._set_dcb(dcb)

    def get_data_bits(self) -> DataBits:
        return dcb_.data_bits(self._get_dcb())

    def set_data_bits(self, data_bits: DataBits) -> None:
        dcb = self._get_dcb()
        dcb_.set_data_bits(dcb, data_bits)
        self._set_dcb(dcb)

    def get_parity(self) -> Parity:
        return dcb_.parity(self._get_dcb())

    def set_parity(self, parity: Parity) -> None:
        dcb = self._get_dcb()
        dcb_.set_parity(dcb, parity)
        self._set_dcb(dcb)

    def get_stop_bits(self) -> StopBits:
        return dcb_.stop_bits(self._get_dcb())

    def set_stop_bits(self, stop_bits: StopBits) -> None:
        dcb = self._get_dcb()
        dcb_.set_stop_bits(dcb, stop_bits)
        self._set_dcb(dcb)

    def get_flow_control(self) -> FlowControl:
        return dcb_.flow_control(self._get_dcb())

    def set_flow_control(self, flow_control: FlowControl) -> None:
        dcb = self._get_dcb()
        dcb_.set_flow_control(dcb, flow_control)
        self._set_dcb(dcb)

    def _escape(self, function: EscapeCommFunctions) -> None:
        _check(win.kernel32.EscapeCommFunction(self.handle, function))

    def set_rts(self, value: bool) -> None:
        self._escape(EscapeCommFunctions.SETRTS if value else EscapeCommFunctions.CLRRTS)

    def set_dtr(self, value: bool) -> None:
        self._escape(EscapeCommFunctions.SETDTR if value else EscapeCommFunctions.CLRDTR)

    def _get_bit(self, bit: ModemStatus) -> bool:
        """
        Sample one of the modem status bits.
        """
        status = ffi.new("DWORD *")
        _check(win.kernel32.GetCommModemStatus(self.handle, status))
        return bool(status[0] & bit)

    def get_cts(self) -> bool:
        return self._get_bit(ModemStatus.MS_CTS_ON)

    def get_dsr(self) -> bool:
        return self._get_bit(ModemStatus.MS_DSR_ON)

    def get_ri(self) -> bool:
        return self._get_bit(ModemStatus.MS_RING_ON)

    def get_cd(self) -> bool:
        return self._get_bit(ModemStatus.MS_RLSD_ON)

    def _comstat(self) -> ComStat:
        # ClearCommError is the only way to read the queue sizes, and it
        # resets the error flags as a side effect.
        errors = ffi.new("DWORD *")
        comstat = cast(ComStat, ffi.new("COMSTAT *"))
        _check(win.kernel32.ClearCommError(self.handle, errors, comstat))
        return comstat

    def bytes_to_read(self) -> int:
        return int(self._comstat().cbInQue)

    def bytes_to_write(self) -> int:
        return int(self._comstat().cbOutQue)

    def clear(self, buffer: ClearBuffer) -> None:
        _check(win.kernel32.PurgeComm(self.handle, _PURGE_FLAGS[coerce(ClearBuffer, buffer)]))

    def set_break(self) -> None:
        _check(win.kernel32.SetCommBreak(self.handle))

    def clear_break(self) -> None:
        _check(win.kernel32.ClearCommBreak(self.handle))

    def readinto(self, buffer: bytearray) -> int:
        with memoryview(buffer) as view:
            if not len(view):
                raise InvalidInputError("Cannot read into an empty buffer")
            count = ffi.new("DWORD *")
            _check(
                win.kernel32.ReadFile(
                    self.handle,
                    ffi.from_buffer(view, require_writable=True),
                    min(view.nbytes, timeouts.MAXDWORD),
                    count,
                    ffi.NULL,
                )
            )
        if not count[0]:
            raise self._read_timed_out()
        return int(count[0])

    def write(self, data: ByteString) -> int:
        with memoryview(data) as view:
            if not len(view):
                return 0
            count = ffi.new("DWORD *")
            _check(
                win.kernel32.WriteFile(
                    self.handle,
                    ffi.from_buffer(view),
                    min(view.nbytes, timeouts.MAXDWORD),
                    count,
                    ffi.NULL,
                )
            )
        if not count[0]:
            raise self._write_timed_out()
        return int(count[0])

    def flush(self) -> None:
        _check(win.kernel32.FlushFileBuffers(self.handle))
