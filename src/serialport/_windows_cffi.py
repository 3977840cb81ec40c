"""
Originally Copied from Trio & extended.

Copyright Contributors to the Trio project.

The MIT License (MIT)

Permission is hereby granted, free of charge, to any person obtaining
a copy of this software and associated documentation files (the
"Software"), to deal in the Software without restriction, including
without limitation the rights to use, copy, modify, merge, publish,
distribute, sublicense, and/or sell copies of the Software, and to
permit persons to whom the Software is furnished to do so, subject to
the following conditions:

The above copyright notice and this permission notice shall be
included in all copies or substantial portions of the Software.

THE SOFTWARE IS PROVIDED "AS IS", WITHOUT WARRANTY OF ANY KIND,
EXPRESS OR IMPLIED, INCLUDING BUT NOT LIMITED TO THE WARRANTIES OF
MERCHANTABILITY, FITNESS FOR A PARTICULAR PURPOSE AND
NONINFRINGEMENT. IN NO EVENT SHALL THE AUTHORS OR COPYRIGHT HOLDERS BE
LIABLE FOR ANY CLAIM, DAMAGES OR OTHER LIABILITY, WHETHER IN AN ACTION
OF CONTRACT, TORT OR OTHERWISE, ARISING FROM, OUT OF OR IN CONNECTION
WITH THE SOFTWARE OR THE USE OR OTHER DEALINGS IN THE SOFTWARE.
"""
from __future__ import annotations

import enum
import re
import sys
from typing import TYPE_CHECKING, NewType, Protocol, Tuple, Union, cast

if TYPE_CHECKING:
    from typing_extensions import TypeAlias

import cffi

################################################################
# Functions and types
################################################################

# Fixed width typedefs instead of cffi's built-in Windows types, so the
# structs can also be built (e.g. in tests) on other platforms.
LIB = """
// https://msdn.microsoft.com/en-us/library/windows/desktop/aa383751(v=vs.85).aspx
typedef int BOOL;
typedef uint8_t BYTE;
typedef uint16_t WORD;
typedef uint32_t DWORD;
typedef DWORD *LPDWORD;
typedef void* PVOID;
typedef PVOID HANDLE;
typedef HANDLE *LPHANDLE;
typedef const void *LPCVOID;
typedef void *LPVOID;
typedef const wchar_t *LPCWSTR;
typedef PVOID LPSECURITY_ATTRIBUTES;
typedef PVOID LPOVERLAPPED;

// kernel32.dll
HANDLE CreateFileW(
  LPCWSTR               lpFileName,
  DWORD                 dwDesiredAccess,
  DWORD                 dwShareMode,
  LPSECURITY_ATTRIBUTES lpSecurityAttributes,
  DWORD                 dwCreationDisposition,
  DWORD                 dwFlagsAndAttributes,
  HANDLE                hTemplateFile
);

BOOL CloseHandle(
  _In_ HANDLE hObject
);

HANDLE GetCurrentProcess(void);

BOOL DuplicateHandle(
  _In_  HANDLE   hSourceProcessHandle,
  _In_  HANDLE   hSourceHandle,
  _In_  HANDLE   hTargetProcessHandle,
  _Out_ LPHANDLE lpTargetHandle,
  _In_  DWORD    dwDesiredAccess,
  _In_  BOOL     bInheritHandle,
  _In_  DWORD    dwOptions
);

BOOL WriteFile(
  HANDLE       hFile,
  LPCVOID      lpBuffer,
  DWORD        nNumberOfBytesToWrite,
  LPDWORD      lpNumberOfBytesWritten,
  LPOVERLAPPED lpOverlapped
);

BOOL ReadFile(
  HANDLE       hFile,
  LPVOID       lpBuffer,
  DWORD        nNumberOfBytesToRead,
  LPDWORD      lpNumberOfBytesRead,
  LPOVERLAPPED lpOverlapped
);

BOOL FlushFileBuffers(
  _In_ HANDLE hFile
);

typedef struct _COMSTAT {
  DWORD fCtsHold : 1;
  DWORD fDsrHold : 1;
  DWORD fRlsdHold : 1;
  DWORD fXoffHold : 1;
  DWORD fXoffSent : 1;
  DWORD fEof : 1;
  DWORD fTxim : 1;
  DWORD fReserved : 25;
  DWORD cbInQue;
  DWORD cbOutQue;
} COMSTAT, *LPCOMSTAT;

BOOL ClearCommError(
    HANDLE hFile,
    LPDWORD lpErrors,
    LPCOMSTAT lpStat
);

BOOL PurgeComm(
    HANDLE hFile,
    DWORD dwFlags
);

BOOL EscapeCommFunction(
  _In_ HANDLE hFile,
  _In_ DWORD  dwFunc
);

BOOL GetCommModemStatus(
  _In_  HANDLE  hFile,
  _Out_ LPDWORD lpModemStat
);

BOOL SetCommBreak(
  _In_ HANDLE hFile
);

BOOL ClearCommBreak(
  _In_ HANDLE hFile
);

typedef struct _COMMTIMEOUTS {
  DWORD ReadIntervalTimeout;
  DWORD ReadTotalTimeoutMultiplier;
  DWORD ReadTotalTimeoutConstant;
  DWORD WriteTotalTimeoutMultiplier;
  DWORD WriteTotalTimeoutConstant;
} COMMTIMEOUTS, *LPCOMMTIMEOUTS;

BOOL SetCommTimeouts(
  HANDLE         hFile,
  LPCOMMTIMEOUTS lpCommTimeouts
);

typedef struct _DCB {
  DWORD DCBlength;
  DWORD BaudRate;
  DWORD fBinary : 1;
  DWORD fParity : 1;
  DWORD fOutxCtsFlow : 1;
  DWORD fOutxDsrFlow : 1;
  DWORD fDtrControl : 2;
  DWORD fDsrSensitivity : 1;
  DWORD fTXContinueOnXoff : 1;
  DWORD fOutX : 1;
  DWORD fInX : 1;
  DWORD fErrorChar : 1;
  DWORD fNull : 1;
  DWORD fRtsControl : 2;
  DWORD fAbortOnError : 1;
  DWORD fDummy2 : 17;
  WORD  wReserved;
  WORD  XonLim;
  WORD  XoffLim;
  BYTE  ByteSize;
  BYTE  Parity;
  BYTE  StopBits;
  char  XonChar;
  char  XoffChar;
  char  ErrorChar;
  char  EofChar;
  char  EvtChar;
  WORD  wReserved1;
} DCB, *LPDCB;

BOOL SetCommState(
  HANDLE hFile,
  LPDCB  lpDCB
);

BOOL GetCommState(
  HANDLE hFile,
  LPDCB  lpDCB
);
"""

# cribbed from pywincffi
# programmatically strips out those annotations MSDN likes, like _In_
REGEX_SAL_ANNOTATION = re.compile(r"\b(_In_|_Inout_|_Out_|_Outptr_|_Reserved_)(opt_)?\b")
LIB = REGEX_SAL_ANNOTATION.sub(" ", LIB)

ffi = cffi.api.FFI()
ffi.cdef(LIB)

CData: TypeAlias = cffi.api.FFI.CData
CType: TypeAlias = cffi.api.FFI.CType
AlwaysNull: TypeAlias = CType  # We currently always pass ffi.NULL here.
Handle = NewType("Handle", CData)


class _Kernel32(Protocol):
    """Statically typed version of the kernel32.dll functions we use."""

    def CreateFileW(
        self,
        lpFileName: CData,
        dwDesiredAccess: FileFlags,
        dwShareMode: FileFlags,
        lpSecurityAttributes: AlwaysNull,
        dwCreationDisposition: FileFlags,
        dwFlagsAndAttributes: FileFlags,
        hTemplateFile: AlwaysNull,
        /,
    ) -> Handle:
        ...

    def CloseHandle(self, handle: Handle, /) -> bool:
        ...

    def GetCurrentProcess(self) -> Handle:
        ...

    def DuplicateHandle(
        self,
        hSourceProcessHandle: Handle,
        hSourceHandle: Handle,
        hTargetProcessHandle: Handle,
        lpTargetHandle: CData,
        dwDesiredAccess: int,
        bInheritHandle: bool,
        dwOptions: int,
        /,
    ) -> bool:
        ...

    def WriteFile(
        self,
        hFile: Handle,
        lpBuffer: CData,
        nNumberOfBytesToWrite: int,
        lpNumberOfBytesWritten: CData,
        lpOverlapped: AlwaysNull,
        /,
    ) -> bool:
        ...

    def ReadFile(
        self,
        hFile: Handle,
        lpBuffer: CData,
        nNumberOfBytesToRead: int,
        lpNumberOfBytesRead: CData,
        lpOverlapped: AlwaysNull,
        /,
    ) -> bool:
        ...

    def FlushFileBuffers(self, hFile: Handle, /) -> bool:
        ...

    def ClearCommError(
        self,
        hFile: Handle,
        lpErrors: CData,
        lpStat: CData,
        /,
    ) -> bool:
        ...

    def PurgeComm(
        self,
        hFile: Handle,
        dwFlags: int,
        /,
    ) -> bool:
        ...

    def EscapeCommFunction(self, hFile: Handle, dwFunc: int, /) -> bool:
        ...

    def GetCommModemStatus(self, hFile: Handle, lpModemStat: CData, /) -> bool:
        ...

    def SetCommBreak(self, hFile: Handle, /) -> bool:
        ...

    def ClearCommBreak(self, hFile: Handle, /) -> bool:
        ...

    def SetCommTimeouts(self, hFile: Handle, lpCommTimeouts: CData, /) -> bool:
        ...

    def SetCommState(self, hFile: Handle, lpDCB: CData, /) -> bool:
        ...

    def GetCommState(self, hFile: Handle, lpDCB: CData, /) -> bool:
        ...


class CommTimeouts:
    ReadIntervalTimeout: int
    ReadTotalTimeoutMultiplier: int
    ReadTotalTimeoutConstant: int
    WriteTotalTimeoutMultiplier: int
    WriteTotalTimeoutConstant: int


class ComStat:
    cbInQue: int
    cbOutQue: int


if sys.platform == "win32":
    kernel32 = cast(_Kernel32, ffi.dlopen("kernel32.dll"))

################################################################
# Magic numbers
################################################################

# Here's a great resource for looking these up:
#   https://www.magnumdb.com
# (Tip: check the box to see "Hex value")

INVALID_HANDLE_VALUE = Handle(ffi.cast("HANDLE", -1))

DUPLICATE_SAME_ACCESS = 0x00000002


class FileFlags(enum.IntFlag):
    GENERIC_READ = 0x80000000
    GENERIC_WRITE = 0x40000000
    OPEN_EXISTING = 3
    FILE_ATTRIBUTE_NORMAL = 0x00000080


class PurgeCommFlags(enum.IntFlag):
    PURGE_RXABORT = 0x0002
    PURGE_RXCLEAR = 0x0008
    PURGE_TXABORT = 0x0001
    PURGE_TXCLEAR = 0x0004


# https://learn.microsoft.com/en-us/windows/win32/api/winbase/nf-winbase-escapecommfunction
class EscapeCommFunctions(enum.IntEnum):
    SETRTS = 3
    CLRRTS = 4
    SETDTR = 5
    CLRDTR = 6


# https://learn.microsoft.com/en-us/windows/win32/api/winbase/nf-winbase-getcommmodemstatus
class ModemStatus(enum.IntFlag):
    MS_CTS_ON = 0x0010
    MS_DSR_ON = 0x0020
    MS_RING_ON = 0x0040
    MS_RLSD_ON = 0x0080


class DcbParity(enum.IntEnum):
    NOPARITY = 0
    ODDPARITY = 1
    EVENPARITY = 2
    MARKPARITY = 3
    SPACEPARITY = 4


class DcbStopBits(enum.IntEnum):
    ONESTOPBIT = 0
    ONE5STOPBITS = 1
    TWOSTOPBITS = 2


class DtrControl(enum.IntEnum):
    DTR_CONTROL_DISABLE = 0
    DTR_CONTROL_HANDSHAKE = 2


class RtsControl(enum.IntEnum):
    RTS_CONTROL_DISABLE = 0
    RTS_CONTROL_ENABLE = 1
    RTS_CONTROL_HANDSHAKE = 2


# https://learn.microsoft.com/en-us/windows/win32/api/winbase/ns-winbase-dcb
class Dcb:
    DCBlength: int
    BaudRate: int
    fBinary: int
    fParity: int
    fOutxCtsFlow: int
    fOutxDsrFlow: int
    fDtrControl: int
    fDsrSensitivity: int
    fTXContinueOnXoff: int
    fOutX: int
    fInX: int
    fErrorChar: int
    fNull: int
    fRtsControl: int
    fAbortOnError: int
    fDummy2: int
    wReserved: int
    XonLim: int
    XoffLim: int
    ByteSize: int
    Parity: int
    StopBits: int
    XonChar: bytes
    XoffChar: bytes
    ErrorChar: bytes
    EofChar: bytes
    EvtChar: bytes
    wReserved1: int


################################################################
# Generic helpers
################################################################


def _handle(obj: Union[int, CData]) -> Handle:
    # Handles are passed around as cffi HANDLEs; integers (e.g. from
    # msvcrt.get_osfhandle) are cast. File descriptors will not work.
    if isinstance(obj, int):
        return Handle(ffi.cast("HANDLE", obj))
    return Handle(obj)


def handle_value(handle: Handle) -> int:
    """Integer value of a HANDLE."""
    return int(ffi.cast("uintptr_t", handle))


def last_winerror() -> Tuple[int, str]:
    """
    Code and message of the last failed kernel32 call.

    ffi.getwinerror() only exists on Windows.
    """
    err = ffi.getwinerror()  # type: ignore[attr-defined,unused-ignore]
    if err is None:
        raise RuntimeError("No error set?")
    return err
