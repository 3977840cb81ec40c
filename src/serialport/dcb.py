# Windows device control block translation of serialport.
# (C) 2026 serialport contributors

# SPDX-License-Identifier: BSD-3-Clause

"""
Mapping between portable settings and the Windows ``DCB`` structure.

The functions only touch the structure passed in. The Windows backend reads the
block with ``GetCommState``, modifies the copy and commits it with one
``SetCommState`` call.
"""

from __future__ import annotations

from typing import cast

from ._windows_cffi import Dcb, DcbParity, DcbStopBits, DtrControl, RtsControl, ffi
from .abstract import (
    DataBits,
    FlowControl,
    Parity,
    SerialPortSettings,
    StopBits,
    coerce,
    validate_baud_rate,
)
from .errors import UnknownEncodingError

XON = b"\x11"
XOFF = b"\x13"
EOF = b"\x1a"

_PARITY_TO_DCB = {
    Parity.NONE: DcbParity.NOPARITY,
    Parity.ODD: DcbParity.ODDPARITY,
    Parity.EVEN: DcbParity.EVENPARITY,
}
_PARITY_FROM_DCB = {v: k for k, v in _PARITY_TO_DCB.items()}

_STOP_BITS_TO_DCB = {
    StopBits.ONE: DcbStopBits.ONESTOPBIT,
    StopBits.TWO: DcbStopBits.TWOSTOPBITS,
}
_STOP_BITS_FROM_DCB = {v: k for k, v in _STOP_BITS_TO_DCB.items()}


def new() -> Dcb:
    """
    Allocate a zeroed DCB with its length field set.
    """
    dcb = cast(Dcb, ffi.new("DCB *"))
    dcb.DCBlength = ffi.sizeof("DCB")
    return dcb


def init(dcb: Dcb) -> None:
    """
    Reset the fields that have no portable setting to fixed values: binary mode,
    no DSR handshake, DTR not driven by the driver, nothing replaced or discarded,
    no abort on error.
    """
    dcb.DCBlength = ffi.sizeof("DCB")
    dcb.XonChar = XON
    dcb.XoffChar = XOFF
    dcb.ErrorChar = b"\x00"
    dcb.EofChar = EOF
    dcb.fBinary = 1  # must be true
    dcb.fOutxDsrFlow = 0
    dcb.fDtrControl = DtrControl.DTR_CONTROL_DISABLE
    dcb.fDsrSensitivity = 0
    dcb.fErrorChar = 0
    dcb.fNull = 0
    dcb.fAbortOnError = 0


def set_baud_rate(dcb: Dcb, baud_rate: int) -> None:
    dcb.BaudRate = validate_baud_rate(baud_rate)


def baud_rate(dcb: Dcb) -> int:
    return int(dcb.BaudRate)


def set_data_bits(dcb: Dcb, data_bits: DataBits) -> None:
    dcb.ByteSize = coerce(DataBits, data_bits).value


def data_bits(dcb: Dcb) -> DataBits:
    try:
        return DataBits(dcb.ByteSize)
    except ValueError:
        raise UnknownEncodingError(
            f"Invalid data bits setting encountered: {dcb.ByteSize}"
        ) from None


def set_parity(dcb: Dcb, parity: Parity) -> None:
    parity = coerce(Parity, parity)
    dcb.Parity = _PARITY_TO_DCB[parity]
    dcb.fParity = 0 if parity == Parity.NONE else 1


def parity(dcb: Dcb) -> Parity:
    try:
        return _PARITY_FROM_DCB[dcb.Parity]
    except KeyError:
        raise UnknownEncodingError(
            f"Invalid parity bits setting encountered: {dcb.Parity}"
        ) from None


def set_stop_bits(dcb: Dcb, stop_bits: StopBits) -> None:
    dcb.StopBits = _STOP_BITS_TO_DCB[coerce(StopBits, stop_bits)]


def stop_bits(dcb: Dcb) -> StopBits:
    try:
        return _STOP_BITS_FROM_DCB[dcb.StopBits]
    except KeyError:
        raise UnknownEncodingError(
            f"Invalid stop bits setting encountered: {dcb.StopBits}"
        ) from None


def set_flow_control(dcb: Dcb, flow_control: FlowControl) -> None:
    flow_control = coerce(FlowControl, flow_control)
    hardware = flow_control == FlowControl.HARDWARE
    software = flow_control == FlowControl.SOFTWARE

    dcb.fOutxCtsFlow = 1 if hardware else 0
    if hardware:
        dcb.fRtsControl = RtsControl.RTS_CONTROL_HANDSHAKE
    else:
        dcb.fRtsControl = RtsControl.RTS_CONTROL_DISABLE
    dcb.fOutX = 1 if software else 0
    dcb.fInX = 1 if software else 0


def flow_control(dcb: Dcb) -> FlowControl:
    # Hardware wins if an external tool set both
    if dcb.fOutxCtsFlow or dcb.fRtsControl == RtsControl.RTS_CONTROL_HANDSHAKE:
        return FlowControl.HARDWARE
    if dcb.fOutX or dcb.fInX:
        return FlowControl.SOFTWARE
    return FlowControl.NONE


def apply(dcb: Dcb, settings: SerialPortSettings) -> None:
    """
    Write all line settings of :py:obj:`settings` into :py:obj:`dcb`.
    """
    set_baud_rate(dcb, settings.baud_rate)
    set_data_bits(dcb, settings.data_bits)
    set_parity(dcb, settings.parity)
    set_stop_bits(dcb, settings.stop_bits)
    set_flow_control(dcb, settings.flow_control)
