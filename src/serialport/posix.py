# POSIX implementation of serialport.
# (C) 2020 Jörn Heissler
#
# Parts of the code (in particular the ioctl/fcntl stuff) is based on
# pySerial, https://github.com/pyserial/pyserial
# (C) 2001-2020 Chris Liechti <cliechti@gmx.net>

# SPDX-License-Identifier: BSD-3-Clause

"""
POSIX backend for serialport.

Timeouts are not a property of the terminal here: the descriptor is opened
non-blocking and every read or write first waits with :py:func:`select.select`.
"""

from __future__ import annotations

import fcntl
import logging
import operator
import os
import select
import termios
from contextlib import contextmanager
from struct import pack, unpack
from typing import Any, ByteString, Dict, Iterator, List, Mapping, Optional, Type, TypeVar

from . import timeouts
from .abstract import (
    AbstractSerialPort,
    ClearBuffer,
    DataBits,
    FlowControl,
    Parity,
    SerialPortSettings,
    StopBits,
    coerce,
    validate_baud_rate,
)
from .errors import (
    InvalidInputError,
    NoDeviceError,
    PortClosedError,
    SerialError,
    UnknownEncodingError,
    from_oserror,
)

logger = logging.getLogger(__name__)

P = TypeVar("P", bound="PosixSerialPort")

TIOCMGET = getattr(termios, "TIOCMGET", 0x5415)
TIOCMBIS = getattr(termios, "TIOCMBIS", 0x5416)
TIOCMBIC = getattr(termios, "TIOCMBIC", 0x5417)
TIOCINQ = getattr(termios, "TIOCINQ", getattr(termios, "FIONREAD", 0x541B))
TIOCOUTQ = getattr(termios, "TIOCOUTQ", 0x5411)
TIOCSBRK = getattr(termios, "TIOCSBRK", 0x5427)
TIOCCBRK = getattr(termios, "TIOCCBRK", 0x5428)
TIOCEXCL = getattr(termios, "TIOCEXCL", 0x540C)
BUF_ZERO = pack("@I", 0)

BIT_RTS = getattr(termios, "TIOCM_RTS", 0x004)
BIT_DTR = getattr(termios, "TIOCM_DTR", 0x002)
BIT_CTS = getattr(termios, "TIOCM_CTS", 0x020)
BIT_CD = getattr(termios, "TIOCM_CAR", 0x040)
BIT_RI = getattr(termios, "TIOCM_RNG", 0x080)
BIT_DSR = getattr(termios, "TIOCM_DSR", 0x100)

# try it with alternate constant name
CRTSCTS = getattr(termios, "CRTSCTS", getattr(termios, "CNEW_RTSCTS", 0))

# Indices into the list returned by termios.tcgetattr
IFLAG, OFLAG, CFLAG, LFLAG, ISPEED, OSPEED, CC = range(7)

_CHAR_SIZES = {
    DataBits.FIVE: termios.CS5,
    DataBits.SIX: termios.CS6,
    DataBits.SEVEN: termios.CS7,
    DataBits.EIGHT: termios.CS8,
}

_FLUSH_QUEUES = {
    ClearBuffer.INPUT: termios.TCIFLUSH,
    ClearBuffer.OUTPUT: termios.TCOFLUSH,
    ClearBuffer.ALL: termios.TCIOFLUSH,
}


@contextmanager
def _os_errors() -> Iterator[None]:
    """
    Translate OSError and termios.error into :py:class:`SerialError`.
    """
    try:
        yield
    except SerialError:
        raise
    except (OSError, termios.error) as ex:
        raise from_oserror(ex) from ex


def make_raw(attrs: List[Any]) -> None:
    """
    Set up raw mode / no echo / binary on a termios attribute list.
    """
    attrs[CFLAG] |= termios.CLOCAL | termios.CREAD
    attrs[LFLAG] &= ~(
        termios.ICANON
        | termios.ECHO
        | termios.ECHOE
        | termios.ECHOK
        | termios.ECHONL
        | termios.ISIG
        | termios.IEXTEN
    )

    # Netbsd workaround for Erk
    for flag in ("ECHOCTL", "ECHOKE"):
        if hasattr(termios, flag):
            attrs[LFLAG] &= ~getattr(termios, flag)

    attrs[OFLAG] &= ~(termios.OPOST | termios.ONLCR | termios.OCRNL)
    attrs[IFLAG] &= ~(termios.INLCR | termios.IGNCR | termios.ICRNL | termios.IGNBRK)
    attrs[IFLAG] &= ~(termios.INPCK | termios.ISTRIP)

    if hasattr(termios, "IUCLC"):
        attrs[IFLAG] &= ~termios.IUCLC

    if hasattr(termios, "PARMRK"):
        attrs[IFLAG] &= ~termios.PARMRK

    # Use nonblocking operations with no buffers
    attrs[CC][termios.VMIN] = 0
    attrs[CC][termios.VTIME] = 0


def set_data_bits(attrs: List[Any], data_bits: DataBits) -> None:
    attrs[CFLAG] &= ~termios.CSIZE
    attrs[CFLAG] |= _CHAR_SIZES[coerce(DataBits, data_bits)]


def data_bits(attrs: List[Any]) -> DataBits:
    size = attrs[CFLAG] & termios.CSIZE
    for key, value in _CHAR_SIZES.items():
        if value == size:
            return key
    raise UnknownEncodingError(f"Invalid data bits setting encountered: {size:#o}")


def set_parity(attrs: List[Any], parity: Parity, cmspar: int = 0) -> None:
    """
    Args:
        cmspar: Platform flag for mark/space parity, always cleared
    """
    parity = coerce(Parity, parity)
    attrs[CFLAG] &= ~cmspar
    if parity == Parity.NONE:
        attrs[CFLAG] &= ~(termios.PARENB | termios.PARODD)
    elif parity == Parity.EVEN:
        attrs[CFLAG] &= ~termios.PARODD
        attrs[CFLAG] |= termios.PARENB
    else:
        attrs[CFLAG] |= termios.PARENB | termios.PARODD


def parity(attrs: List[Any], cmspar: int = 0) -> Parity:
    cflag = attrs[CFLAG]
    if not cflag & termios.PARENB:
        return Parity.NONE
    if cflag & cmspar:
        raise UnknownEncodingError("Mark/space parity setting encountered")
    if cflag & termios.PARODD:
        return Parity.ODD
    return Parity.EVEN


def set_stop_bits(attrs: List[Any], stop_bits: StopBits) -> None:
    if coerce(StopBits, stop_bits) == StopBits.TWO:
        attrs[CFLAG] |= termios.CSTOPB
    else:
        attrs[CFLAG] &= ~termios.CSTOPB


def stop_bits(attrs: List[Any]) -> StopBits:
    return StopBits.TWO if attrs[CFLAG] & termios.CSTOPB else StopBits.ONE


def set_flow_control(attrs: List[Any], flow_control: FlowControl) -> None:
    flow_control = coerce(FlowControl, flow_control)
    if flow_control == FlowControl.HARDWARE and not CRTSCTS:
        raise InvalidInputError("Hardware flow control is not supported on this platform")

    xany = getattr(termios, "IXANY", 0)
    if flow_control == FlowControl.SOFTWARE:
        attrs[IFLAG] |= termios.IXON | termios.IXOFF
        attrs[IFLAG] &= ~xany
    else:
        attrs[IFLAG] &= ~(termios.IXON | termios.IXOFF | xany)

    if flow_control == FlowControl.HARDWARE:
        attrs[CFLAG] |= CRTSCTS
    else:
        attrs[CFLAG] &= ~CRTSCTS


def flow_control(attrs: List[Any]) -> FlowControl:
    # Hardware wins if an external tool set both
    if attrs[CFLAG] & CRTSCTS:
        return FlowControl.HARDWARE
    if attrs[IFLAG] & (termios.IXON | termios.IXOFF):
        return FlowControl.SOFTWARE
    return FlowControl.NONE


def _termios_speeds() -> Dict[int, int]:
    """
    Map the ``termios.B*`` constants of this platform back to baud rates.
    """
    result = {}
    for key in dir(termios):
        if key.startswith("B") and key[1:].isdigit():
            result[getattr(termios, key)] = int(key[1:])
    return result


class PosixSerialPort(AbstractSerialPort):
    """
    POSIX implementation of :py:class:`SerialPort`.
    """

    # Some systems support an extra flag to enable the two in POSIX unsupported
    # paritiy settings for MARK and SPACE
    CMSPAR = 0

    # Mapping from baudrates to system constants. Overidden by sub classes.
    BAUDRATE_CONSTANTS: Mapping[int, int] = {}

    # File descriptor for the serial device. `None` iff closed.
    _fd: Optional[int] = None

    def __init__(self, descriptor: Any, **kwargs: Any) -> None:
        super().__init__(descriptor, **kwargs)
        self._fd = operator.index(descriptor)

    @classmethod
    def _open_descriptor(cls: Type[P], name: str) -> P:
        if not isinstance(name, str) or not name or "\0" in name:
            raise InvalidInputError(f"Invalid port name: {name!r}")
        try:
            path = os.fsencode(name)
        except UnicodeEncodeError as ex:
            raise InvalidInputError(f"Invalid port name: {name!r}") from ex

        with _os_errors():
            fd = os.open(path, os.O_RDWR | os.O_NOCTTY | os.O_NONBLOCK)
        port = cls(fd, name=name)
        try:
            port._lock()
        except BaseException:
            port.close()
            raise
        logger.debug("Opened %s as fd %d", name, fd)
        return port

    def _lock(self) -> None:
        """
        Lock port for exclusive use.
        """
        fd = self.fd
        try:
            fcntl.flock(fd, fcntl.LOCK_EX | fcntl.LOCK_NB)
        except OSError as ex:
            raise NoDeviceError(
                f"Could not exclusively lock port {self._name!r}: {ex!s}", ex.errno
            ) from ex

        with _os_errors():
            fcntl.ioctl(fd, TIOCEXCL)

    @property
    def fd(self) -> int:
        """
        Get file descriptor of serial port or raise exception if closed.

        Raises:
            PortClosedError: If closed
        """
        if self._fd is None:
            raise PortClosedError("Port is closed.")

        return self._fd

    @property
    def closed(self) -> bool:
        return self._fd is None

    def close(self) -> None:
        """
        Close the port. Do nothing if already closed.
        """
        if self._fd is None:
            return

        fd = self._fd
        self._fd = None
        try:
            os.close(fd)
        except OSError as ex:
            logger.debug("Closing fd %d failed: %s", fd, ex)
        else:
            logger.debug("Closed fd %d", fd)

    def fileno(self) -> int:
        return self.fd

    def into_raw(self) -> int:
        fd = self.fd
        self._fd = None
        logger.debug("Released fd %d", fd)
        return fd

    def _duplicate_descriptor(self) -> int:
        with _os_errors():
            fd = os.dup(self.fd)
        logger.debug("Duplicated fd %d as %d", self.fd, fd)
        return fd

    def _get_attrs(self) -> List[Any]:
        with _os_errors():
            return termios.tcgetattr(self.fd)

    def _set_attrs(self, attrs: List[Any]) -> None:
        with _os_errors():
            termios.tcsetattr(self.fd, termios.TCSANOW, attrs)

    def _commit(self, attrs: List[Any], custom_baud_rate: Optional[int]) -> None:
        """
        Write :py:obj:`attrs` to the terminal.

        Args:
            custom_baud_rate: Rate without a speed constant, None if ``attrs`` holds the speed

        The generic version needs two calls for custom rates: ``tcsetattr`` with the
        placeholder speed, then :py:meth:`_set_special_baudrate`. The previous
        attributes are restored if the second call fails.
        """
        if custom_baud_rate is None:
            self._set_attrs(attrs)
            return

        previous = self._get_attrs()
        self._set_attrs(attrs)
        try:
            self._set_special_baudrate(self.fd, custom_baud_rate)
        except BaseException:
            self._set_attrs(previous)
            raise

    def _configure(self, settings: SerialPortSettings) -> None:
        attrs = self._get_attrs()
        make_raw(attrs)
        set_data_bits(attrs, settings.data_bits)
        set_parity(attrs, settings.parity, self.CMSPAR)
        set_stop_bits(attrs, settings.stop_bits)
        set_flow_control(attrs, settings.flow_control)
        custom_baud = self._encode_baudrate(attrs, settings.baud_rate)
        self._commit(attrs, settings.baud_rate if custom_baud else None)

    def _apply_timeouts(
        self, read_timeout: Optional[float], write_timeout: Optional[float]
    ) -> None:
        # Nothing to configure on the terminal, only check the values.
        timeouts.to_millis(read_timeout)
        timeouts.to_millis(write_timeout)

    def _encode_baudrate(self, attrs: List[Any], baud_rate: int) -> bool:
        """
        Store the speed constant for :py:obj:`baud_rate` in :py:obj:`attrs`.

        Returns:
            True if the rate has no constant and needs the custom rate path of
            :py:meth:`_commit`
        """
        baud_rate = validate_baud_rate(baud_rate)
        try:
            speed = getattr(termios, f"B{baud_rate}")
        except AttributeError:
            try:
                speed = self.BAUDRATE_CONSTANTS[baud_rate]
            except KeyError:
                # may need custom baud rate, it isn't in our list.
                attrs[ISPEED] = attrs[OSPEED] = termios.B38400
                return True

        attrs[ISPEED] = attrs[OSPEED] = speed
        return False

    def _decode_baudrate(self, speed: int) -> int:
        """
        Map a speed from :py:func:`termios.tcgetattr` back to a baud rate.
        """
        speeds = _termios_speeds()
        speeds.update((v, k) for k, v in self.BAUDRATE_CONSTANTS.items())
        try:
            return speeds[speed]
        except KeyError:
            raise UnknownEncodingError(f"Invalid speed setting encountered: {speed:#o}") from None

    def _set_special_baudrate(self, fd: int, baud_rate: int) -> None:
        """
        Implemented by sub classes
        """
        raise InvalidInputError(
            f"Non-standard baudrate {baud_rate} is not supported on this platform"
        )

    def get_baud_rate(self) -> int:
        return self._decode_baudrate(self._get_attrs()[OSPEED])

    def set_baud_rate(self, baud_rate: int) -> None:
        attrs = self._get_attrs()
        custom_baud = self._encode_baudrate(attrs, baud_rate)
        self._commit(attrs, baud_rate if custom_baud else None)

    def get_data_bits(self) -> DataBits:
        return data_bits(self._get_attrs())

    def set_data_bits(self, data_bits: DataBits) -> None:
        attrs = self._get_attrs()
        set_data_bits(attrs, data_bits)
        self._set_attrs(attrs)

    def get_parity(self) -> Parity:
        return parity(self._get_attrs(), self.CMSPAR)

    def set_parity(self, parity: Parity) -> None:
        attrs = self._get_attrs()
        set_parity(attrs, parity, self.CMSPAR)
        self._set_attrs(attrs)

    def get_stop_bits(self) -> StopBits:
        return stop_bits(self._get_attrs())

    def set_stop_bits(self, stop_bits: StopBits) -> None:
        attrs = self._get_attrs()
        set_stop_bits(attrs, stop_bits)
        self._set_attrs(attrs)

    def get_flow_control(self) -> FlowControl:
        return flow_control(self._get_attrs())

    def set_flow_control(self, flow_control: FlowControl) -> None:
        attrs = self._get_attrs()
        set_flow_control(attrs, flow_control)
        self._set_attrs(attrs)

    def _set_bit(self, bit: int, value: bool) -> None:
        """
        Set or reset one of the modem bits.

        Args:
            bit: Modem bit constant as integer
            value: new state
        """
        if value:
            cmd = TIOCMBIS
        else:
            cmd = TIOCMBIC

        with _os_errors():
            fcntl.ioctl(self.fd, cmd, pack("@I", bit))

    def _get_bit(self, bit: int) -> bool:
        """
        Get one of the modem bits.

        Arg:
            bit: Modem bit constant as integer

        Returns:
            Current state
        """
        with _os_errors():
            buf = fcntl.ioctl(self.fd, TIOCMGET, BUF_ZERO)
        value = unpack("@I", buf)[0]
        return bool(value & bit)

    def set_rts(self, value: bool) -> None:
        self._set_bit(BIT_RTS, value)

    def set_dtr(self, value: bool) -> None:
        self._set_bit(BIT_DTR, value)

    def get_cts(self) -> bool:
        return self._get_bit(BIT_CTS)

    def get_dsr(self) -> bool:
        return self._get_bit(BIT_DSR)

    def get_ri(self) -> bool:
        return self._get_bit(BIT_RI)

    def get_cd(self) -> bool:
        return self._get_bit(BIT_CD)

    def _queue_size(self, request: int) -> int:
        with _os_errors():
            buf = fcntl.ioctl(self.fd, request, BUF_ZERO)
        return int(unpack("@I", buf)[0])

    def bytes_to_read(self) -> int:
        return self._queue_size(TIOCINQ)

    def bytes_to_write(self) -> int:
        return self._queue_size(TIOCOUTQ)

    def clear(self, buffer: ClearBuffer) -> None:
        with _os_errors():
            termios.tcflush(self.fd, _FLUSH_QUEUES[coerce(ClearBuffer, buffer)])

    def set_break(self) -> None:
        with _os_errors():
            fcntl.ioctl(self.fd, TIOCSBRK)

    def clear_break(self) -> None:
        with _os_errors():
            fcntl.ioctl(self.fd, TIOCCBRK)

    def _wait(self, writable: bool, timeout: Optional[float]) -> bool:
        """
        Wait until the port is readable or writable.

        Args:
            timeout: Seconds, None to wait forever

        Returns:
            False if the timeout expired
        """
        fd = self.fd
        with _os_errors():
            if writable:
                ready = select.select([], [fd], [], timeout)[1]
            else:
                ready = select.select([fd], [], [], timeout)[0]
        return bool(ready)

    def readinto(self, buffer: bytearray) -> int:
        with memoryview(buffer) as view:
            if not len(view):
                raise InvalidInputError("Cannot read into an empty buffer")
            wait = timeouts.to_millis(self._read_timeout) / 1000
            if not self._wait(False, wait):
                raise self._read_timed_out()
            with _os_errors():
                try:
                    count = os.readv(self.fd, [view])
                except BlockingIOError:
                    count = 0
        if not count:
            raise self._read_timed_out()
        return count

    def write(self, data: ByteString) -> int:
        with memoryview(data) as view:
            if not len(view):
                return 0
            wait = None
            if self._write_timeout is not None:
                wait = timeouts.to_millis(self._write_timeout) / 1000
            if not self._wait(True, wait):
                raise self._write_timed_out()
            with _os_errors():
                try:
                    count = os.write(self.fd, view)
                except BlockingIOError:
                    count = 0
        if not count:
            raise self._write_timed_out()
        return count

    def flush(self) -> None:
        with _os_errors():
            termios.tcdrain(self.fd)
