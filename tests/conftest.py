"""
Shared fixtures: an in-memory kernel32 for the Windows backend and
pseudo-terminal pairs for the POSIX backend.
"""

from __future__ import annotations

import os
import select
import sys
import time
from typing import Dict, Iterator, List, Optional, Tuple

import pytest

from serialport import _windows_cffi
from serialport._windows_cffi import INVALID_HANDLE_VALUE, PurgeCommFlags, RtsControl, ffi

ERROR_FILE_NOT_FOUND = 2
ERROR_ACCESS_DENIED = 5
ERROR_INVALID_HANDLE = 6
ERROR_GEN_FAILURE = 31


class FakeComDevice:
    """
    State of one COM port as kept by the driver.
    """

    def __init__(self) -> None:
        self.dcb = ffi.new("DCB *")
        self.dcb.DCBlength = ffi.sizeof("DCB")
        self.dcb.BaudRate = 1200
        self.dcb.ByteSize = 7
        self.dcb.Parity = 2
        self.dcb.fRtsControl = RtsControl.RTS_CONTROL_ENABLE
        self.timeouts = ffi.new("COMMTIMEOUTS *")
        self.set_state_calls = 0
        self.rx = bytearray()
        self.tx = bytearray()
        self.wire = bytearray()
        self.write_limit: Optional[int] = None
        self.comm_errors = 0
        self.escapes: List[int] = []
        self.modem_status = 0
        self.breaking = False


class FakeKernel32:
    """
    Implements the kernel32 functions used by the Windows backend on plain
    Python objects. Failures set :py:attr:`error`, which stands in for
    GetLastError().
    """

    def __init__(self) -> None:
        self.devices: Dict[str, FakeComDevice] = {"\\\\.\\COM3": FakeComDevice()}
        self.handles: Dict[int, FakeComDevice] = {}
        self.error: Tuple[int, str] = (0, "")
        self.failures: Dict[str, Tuple[int, str]] = {}
        self.created: List[Tuple[str, int, int]] = []
        self.closed: List[int] = []
        self.inherit: List[bool] = []
        self._next_handle = 0x100

    def fail(self, function: str, code: int = ERROR_GEN_FAILURE, message: str = "") -> None:
        """
        Make the next call of :py:obj:`function` fail.
        """
        self.failures[function] = (code, message or f"{function} failed")

    def _failed(self, function: str) -> bool:
        if function in self.failures:
            self.error = self.failures.pop(function)
            return True
        return False

    def _new_handle(self, device: FakeComDevice):
        value = self._next_handle
        self._next_handle += 4
        self.handles[value] = device
        return ffi.cast("HANDLE", value)

    def _device(self, handle) -> FakeComDevice:
        return self.handles[int(ffi.cast("uintptr_t", handle))]

    def device(self, name: str = "COM3") -> FakeComDevice:
        return self.devices["\\\\.\\" + name]

    def CreateFileW(self, name, access, share, security, disposition, flags, template):
        path = ffi.string(name)
        self.created.append((path, access, share))
        device = self.devices.get(path)
        if device is None:
            self.error = (ERROR_FILE_NOT_FOUND, "The system cannot find the file specified.\r\n")
            return INVALID_HANDLE_VALUE
        if device in self.handles.values():
            self.error = (ERROR_ACCESS_DENIED, "Access is denied.\r\n")
            return INVALID_HANDLE_VALUE
        return self._new_handle(device)

    def CloseHandle(self, handle):
        value = int(ffi.cast("uintptr_t", handle))
        self.closed.append(value)
        if self.handles.pop(value, None) is None:
            self.error = (ERROR_INVALID_HANDLE, "The handle is invalid.")
            return 0
        return 1

    def GetCurrentProcess(self):
        return ffi.cast("HANDLE", -1)

    def DuplicateHandle(self, source_process, source, target_process, target, access, inherit, options):
        if self._failed("DuplicateHandle"):
            return 0
        self.inherit.append(bool(inherit))
        target[0] = self._new_handle(self._device(source))
        return 1

    def GetCommState(self, handle, dcb):
        if self._failed("GetCommState"):
            return 0
        dcb[0] = self._device(handle).dcb[0]
        return 1

    def SetCommState(self, handle, dcb):
        if self._failed("SetCommState"):
            return 0
        device = self._device(handle)
        device.dcb[0] = dcb[0]
        device.set_state_calls += 1
        return 1

    def SetCommTimeouts(self, handle, timeouts):
        if self._failed("SetCommTimeouts"):
            return 0
        self._device(handle).timeouts[0] = timeouts[0]
        return 1

    def EscapeCommFunction(self, handle, function):
        if self._failed("EscapeCommFunction"):
            return 0
        self._device(handle).escapes.append(function)
        return 1

    def GetCommModemStatus(self, handle, status):
        if self._failed("GetCommModemStatus"):
            return 0
        status[0] = self._device(handle).modem_status
        return 1

    def ClearCommError(self, handle, errors, comstat):
        if self._failed("ClearCommError"):
            return 0
        device = self._device(handle)
        errors[0] = device.comm_errors
        device.comm_errors = 0
        comstat.cbInQue = len(device.rx)
        comstat.cbOutQue = len(device.tx)
        return 1

    def PurgeComm(self, handle, flags):
        if self._failed("PurgeComm"):
            return 0
        device = self._device(handle)
        if flags & PurgeCommFlags.PURGE_RXCLEAR:
            device.rx.clear()
        if flags & PurgeCommFlags.PURGE_TXCLEAR:
            device.tx.clear()
        return 1

    def SetCommBreak(self, handle):
        if self._failed("SetCommBreak"):
            return 0
        self._device(handle).breaking = True
        return 1

    def ClearCommBreak(self, handle):
        if self._failed("ClearCommBreak"):
            return 0
        self._device(handle).breaking = False
        return 1

    def ReadFile(self, handle, buffer, size, count, overlapped):
        if self._failed("ReadFile"):
            return 0
        device = self._device(handle)
        data = bytes(device.rx[:size])
        del device.rx[:size]
        ffi.memmove(buffer, data, len(data))
        count[0] = len(data)
        return 1

    def WriteFile(self, handle, buffer, size, count, overlapped):
        if self._failed("WriteFile"):
            return 0
        device = self._device(handle)
        if device.write_limit is not None:
            size = min(size, device.write_limit)
        device.tx += ffi.buffer(buffer, size)[:]
        count[0] = size
        return 1

    def FlushFileBuffers(self, handle):
        if self._failed("FlushFileBuffers"):
            return 0
        device = self._device(handle)
        device.wire += device.tx
        device.tx.clear()
        return 1


@pytest.fixture
def kernel32(monkeypatch: pytest.MonkeyPatch) -> FakeKernel32:
    fake = FakeKernel32()
    monkeypatch.setattr(_windows_cffi, "kernel32", fake, raising=False)
    monkeypatch.setattr(_windows_cffi, "last_winerror", lambda: fake.error)
    return fake


class PtyPeer:
    """
    Master side of a pseudo terminal. The slave side is what the port opens.
    """

    def __init__(self) -> None:
        self.master, self._slave = os.openpty()
        self.name = os.ttyname(self._slave)

    def send(self, data: bytes) -> None:
        os.write(self.master, data)

    def receive(self, size: int, timeout: float = 2.0) -> bytes:
        """
        Read exactly :py:obj:`size` bytes or whatever arrived before the timeout.
        """
        result = b""
        deadline = time.monotonic() + timeout
        while len(result) < size:
            remaining = deadline - time.monotonic()
            if remaining <= 0 or not select.select([self.master], [], [], remaining)[0]:
                break
            result += os.read(self.master, size - len(result))
        return result

    def close(self) -> None:
        os.close(self.master)
        os.close(self._slave)


@pytest.fixture
def pty_peer() -> Iterator[PtyPeer]:
    if not sys.platform.startswith("linux"):
        pytest.skip("pseudo terminal tests need Linux")
    peer = PtyPeer()
    yield peer
    peer.close()
