"""
Translation between settings and termios attribute lists, without a device.
"""

from __future__ import annotations

import pytest

termios = pytest.importorskip("termios")

from serialport import posix  # noqa: E402
from serialport.abstract import DataBits, FlowControl, Parity, StopBits  # noqa: E402
from serialport.errors import InvalidInputError, UnknownEncodingError  # noqa: E402
from serialport.posix import CC, CFLAG, IFLAG, LFLAG, OFLAG  # noqa: E402

CMSPAR = 0o10000000000


@pytest.fixture
def attrs():
    cc = [b"\0"] * termios.NCCS
    cc[termios.VMIN] = 1
    cc[termios.VTIME] = 5
    return [
        termios.ICRNL | termios.IXON,
        termios.OPOST | termios.ONLCR,
        termios.CS7 | termios.PARENB,
        termios.ICANON | termios.ECHO | termios.ISIG,
        termios.B9600,
        termios.B9600,
        cc,
    ]


def test_make_raw(attrs):
    posix.make_raw(attrs)
    assert attrs[CFLAG] & termios.CLOCAL
    assert attrs[CFLAG] & termios.CREAD
    assert not attrs[LFLAG] & (termios.ICANON | termios.ECHO | termios.ISIG)
    assert not attrs[OFLAG] & termios.OPOST
    assert not attrs[IFLAG] & termios.ICRNL
    assert attrs[CC][termios.VMIN] == 0
    assert attrs[CC][termios.VTIME] == 0
    # Line settings are left alone
    assert attrs[CFLAG] & termios.CSIZE == termios.CS7
    assert attrs[IFLAG] & termios.IXON


@pytest.mark.parametrize("data_bits", list(DataBits))
def test_data_bits(attrs, data_bits):
    posix.set_data_bits(attrs, data_bits)
    assert posix.data_bits(attrs) is data_bits


@pytest.mark.parametrize(
    "parity, flags",
    [
        (Parity.NONE, 0),
        (Parity.ODD, termios.PARENB | termios.PARODD),
        (Parity.EVEN, termios.PARENB),
    ],
)
def test_parity(attrs, parity, flags):
    attrs[CFLAG] |= CMSPAR
    posix.set_parity(attrs, parity, CMSPAR)
    assert attrs[CFLAG] & (termios.PARENB | termios.PARODD | CMSPAR) == flags
    assert posix.parity(attrs, CMSPAR) is parity


def test_parity_mark_space(attrs):
    attrs[CFLAG] |= termios.PARENB | CMSPAR
    with pytest.raises(UnknownEncodingError):
        posix.parity(attrs, CMSPAR)


def test_parity_without_cmspar(attrs):
    # Platforms without the flag never report mark/space
    attrs[CFLAG] |= termios.PARENB | CMSPAR
    assert posix.parity(attrs) is Parity.EVEN


@pytest.mark.parametrize("stop_bits", list(StopBits))
def test_stop_bits(attrs, stop_bits):
    posix.set_stop_bits(attrs, stop_bits)
    assert posix.stop_bits(attrs) is stop_bits
    assert bool(attrs[CFLAG] & termios.CSTOPB) == (stop_bits is StopBits.TWO)


@pytest.mark.skipif(not posix.CRTSCTS, reason="no hardware flow control")
@pytest.mark.parametrize("flow_control", list(FlowControl))
def test_flow_control(attrs, flow_control):
    posix.set_flow_control(attrs, flow_control)
    assert posix.flow_control(attrs) is flow_control


@pytest.mark.skipif(not posix.CRTSCTS, reason="no hardware flow control")
def test_flow_control_clears_other_modes(attrs):
    posix.set_flow_control(attrs, FlowControl.HARDWARE)
    assert attrs[CFLAG] & posix.CRTSCTS
    assert not attrs[IFLAG] & (termios.IXON | termios.IXOFF)

    posix.set_flow_control(attrs, FlowControl.SOFTWARE)
    assert not attrs[CFLAG] & posix.CRTSCTS
    assert attrs[IFLAG] & termios.IXON
    assert attrs[IFLAG] & termios.IXOFF

    posix.set_flow_control(attrs, FlowControl.NONE)
    assert not attrs[CFLAG] & posix.CRTSCTS
    assert not attrs[IFLAG] & (termios.IXON | termios.IXOFF)


@pytest.mark.skipif(not posix.CRTSCTS, reason="no hardware flow control")
def test_flow_control_hardware_wins(attrs):
    attrs[IFLAG] |= termios.IXON | termios.IXOFF
    attrs[CFLAG] |= posix.CRTSCTS
    assert posix.flow_control(attrs) is FlowControl.HARDWARE


def test_flow_control_software_single_direction(attrs):
    attrs[IFLAG] = termios.IXOFF
    assert posix.flow_control(attrs) is FlowControl.SOFTWARE


def test_flow_control_hardware_unsupported(attrs, monkeypatch):
    monkeypatch.setattr(posix, "CRTSCTS", 0)
    with pytest.raises(InvalidInputError):
        posix.set_flow_control(attrs, FlowControl.HARDWARE)


@pytest.mark.parametrize(
    "setter, value",
    [
        (posix.set_data_bits, 9),
        (posix.set_parity, "mark"),
        (posix.set_stop_bits, 1.5),
        (posix.set_flow_control, True),
    ],
)
def test_invalid_values(attrs, setter, value):
    with pytest.raises(InvalidInputError):
        setter(attrs, value)


def test_data_bits_are_not_guessed(attrs):
    posix.set_data_bits(attrs, DataBits.FIVE)
    assert attrs[CFLAG] & termios.CSIZE == termios.CS5
    posix.set_data_bits(attrs, DataBits.EIGHT)
    assert attrs[CFLAG] & termios.CSIZE == termios.CS8


def test_termios_speeds():
    speeds = posix._termios_speeds()
    assert speeds[termios.B9600] == 9600
    assert speeds[termios.B115200] == 115200
