from __future__ import annotations

import pytest

from serialport import dcb
from serialport._windows_cffi import DcbParity, DcbStopBits, DtrControl, RtsControl
from serialport.abstract import DataBits, FlowControl, Parity, SerialPortSettings, StopBits
from serialport.errors import InvalidInputError, UnknownEncodingError


@pytest.fixture
def block():
    return dcb.new()


def test_init(block):
    block.fDtrControl = DtrControl.DTR_CONTROL_HANDSHAKE
    block.fNull = 1
    block.fAbortOnError = 1
    dcb.init(block)
    assert block.fBinary == 1
    assert block.fDtrControl == DtrControl.DTR_CONTROL_DISABLE
    assert block.fOutxDsrFlow == 0
    assert block.fDsrSensitivity == 0
    assert block.fNull == 0
    assert block.fAbortOnError == 0
    assert block.XonChar == b"\x11"
    assert block.XoffChar == b"\x13"
    assert block.EofChar == b"\x1a"


@pytest.mark.parametrize("baud_rate", [110, 9600, 115200, 250000, 3000000])
def test_baud_rate(block, baud_rate):
    dcb.set_baud_rate(block, baud_rate)
    assert block.BaudRate == baud_rate
    assert dcb.baud_rate(block) == baud_rate


def test_baud_rate_invalid(block):
    with pytest.raises(InvalidInputError):
        dcb.set_baud_rate(block, 0)


@pytest.mark.parametrize("data_bits", list(DataBits))
def test_data_bits(block, data_bits):
    dcb.set_data_bits(block, data_bits)
    assert block.ByteSize == data_bits.value
    assert dcb.data_bits(block) is data_bits


@pytest.mark.parametrize("size", [0, 4, 9, 16])
def test_data_bits_unknown(block, size):
    block.ByteSize = size
    with pytest.raises(UnknownEncodingError):
        dcb.data_bits(block)


@pytest.mark.parametrize(
    "parity, native, flag",
    [
        (Parity.NONE, DcbParity.NOPARITY, 0),
        (Parity.ODD, DcbParity.ODDPARITY, 1),
        (Parity.EVEN, DcbParity.EVENPARITY, 1),
    ],
)
def test_parity(block, parity, native, flag):
    dcb.set_parity(block, parity)
    assert block.Parity == native
    assert block.fParity == flag
    assert dcb.parity(block) is parity


@pytest.mark.parametrize("native", [DcbParity.MARKPARITY, DcbParity.SPACEPARITY, 17])
def test_parity_unknown(block, native):
    block.Parity = native
    with pytest.raises(UnknownEncodingError):
        dcb.parity(block)


@pytest.mark.parametrize(
    "stop_bits, native",
    [(StopBits.ONE, DcbStopBits.ONESTOPBIT), (StopBits.TWO, DcbStopBits.TWOSTOPBITS)],
)
def test_stop_bits(block, stop_bits, native):
    dcb.set_stop_bits(block, stop_bits)
    assert block.StopBits == native
    assert dcb.stop_bits(block) is stop_bits


def test_stop_bits_unknown(block):
    block.StopBits = DcbStopBits.ONE5STOPBITS
    with pytest.raises(UnknownEncodingError):
        dcb.stop_bits(block)


@pytest.mark.parametrize("flow_control", list(FlowControl))
def test_flow_control(block, flow_control):
    dcb.set_flow_control(block, flow_control)
    assert dcb.flow_control(block) is flow_control


def test_flow_control_clears_other_modes(block):
    dcb.set_flow_control(block, FlowControl.HARDWARE)
    assert block.fOutxCtsFlow == 1
    assert block.fRtsControl == RtsControl.RTS_CONTROL_HANDSHAKE

    dcb.set_flow_control(block, FlowControl.SOFTWARE)
    assert (block.fOutxCtsFlow, block.fRtsControl) == (0, RtsControl.RTS_CONTROL_DISABLE)
    assert (block.fOutX, block.fInX) == (1, 1)

    dcb.set_flow_control(block, FlowControl.NONE)
    assert (block.fOutxCtsFlow, block.fRtsControl, block.fOutX, block.fInX) == (0, 0, 0, 0)


def test_flow_control_hardware_wins(block):
    block.fOutxCtsFlow = 1
    block.fOutX = 1
    block.fInX = 1
    assert dcb.flow_control(block) is FlowControl.HARDWARE


def test_flow_control_software_single_direction(block):
    block.fInX = 1
    assert dcb.flow_control(block) is FlowControl.SOFTWARE


def test_rts_enable_is_not_handshake(block):
    block.fRtsControl = RtsControl.RTS_CONTROL_ENABLE
    assert dcb.flow_control(block) is FlowControl.NONE


def test_apply(block):
    settings = SerialPortSettings(
        baud_rate=57600,
        data_bits=DataBits.SEVEN,
        parity=Parity.EVEN,
        stop_bits=StopBits.TWO,
        flow_control=FlowControl.SOFTWARE,
    )
    dcb.apply(block, settings)
    assert dcb.baud_rate(block) == 57600
    assert dcb.data_bits(block) is DataBits.SEVEN
    assert dcb.parity(block) is Parity.EVEN
    assert dcb.stop_bits(block) is StopBits.TWO
    assert dcb.flow_control(block) is FlowControl.SOFTWARE


def test_setter_rejects_foreign_values(block):
    with pytest.raises(InvalidInputError):
        dcb.set_parity(block, "even")
