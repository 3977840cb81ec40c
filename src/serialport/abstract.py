# Public interface of serialport.
# (C) 2020 Jörn Heissler

# SPDX-License-Identifier: BSD-3-Clause

"""
Public interface of serialport. Modules implement the OS specific parts.
"""

from __future__ import annotations

import time
from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum, auto
from typing import Any, ByteString, Optional, Type, TypeVar

from . import timeouts
from .errors import InvalidInputError, SerialTimeoutError

E = TypeVar("E", bound=Enum)
P = TypeVar("P", bound="AbstractSerialPort")


class DataBits(Enum):
    """
    Enumeration of character sizes.
    """

    FIVE = 5
    SIX = 6
    SEVEN = 7
    EIGHT = 8


class Parity(Enum):
    """
    Enumeration of parity types.
    """

    #: No parity
    NONE = auto()

    #: Odd parity
    ODD = auto()

    #: Even parity
    EVEN = auto()


class StopBits(Enum):
    """
    Enumeration of stop bit lengths.
    """

    #: One bit
    ONE = 1

    #: Two bits
    TWO = 2


class FlowControl(Enum):
    """
    Enumeration of flow control modes.
    """

    #: No flow control
    NONE = auto()

    #: XON/XOFF characters in the data stream
    SOFTWARE = auto()

    #: RTS/CTS handshake lines
    HARDWARE = auto()


class ClearBuffer(Enum):
    """
    Selects the buffer(s) discarded by :py:meth:`AbstractSerialPort.clear`.
    """

    INPUT = auto()
    OUTPUT = auto()
    ALL = auto()


def coerce(cls: Type[E], value: Any) -> E:
    """
    Convert :py:obj:`value` to a member of :py:obj:`cls`.

    Members are returned as is, other values are looked up by value, so ``DataBits(8)``
    and ``8`` both work.

    Raises:
        InvalidInputError: Not a member and not the value of one
    """
    if isinstance(value, cls):
        return value
    if isinstance(value, (bool, Enum)):
        raise InvalidInputError(f"Invalid {cls.__name__}: {value!r}")
    try:
        return cls(value)
    except (ValueError, TypeError) as ex:
        raise InvalidInputError(f"Invalid {cls.__name__}: {value!r}") from ex


def validate_baud_rate(baud_rate: Any) -> int:
    """
    Raises:
        InvalidInputError: If :py:obj:`baud_rate` is not a positive integer
    """
    if isinstance(baud_rate, bool) or not isinstance(baud_rate, int) or baud_rate <= 0:
        raise InvalidInputError(f"Invalid baud rate: {baud_rate!r}")
    return baud_rate


@dataclass(frozen=True)
class SerialPortSettings:
    """
    Complete configuration of a port, as passed to :py:meth:`AbstractSerialPort.open`.
    """

    baud_rate: int = 9600
    data_bits: DataBits = DataBits.EIGHT
    parity: Parity = Parity.NONE
    stop_bits: StopBits = StopBits.ONE
    flow_control: FlowControl = FlowControl.NONE

    #: Seconds to wait for the first byte of a read, None to not wait at all
    read_timeout: Optional[float] = None

    #: Seconds to wait for a write to make progress, None to wait forever
    write_timeout: Optional[float] = None

    def __post_init__(self) -> None:
        # Frozen dataclass, so normalized values are stored with object.__setattr__
        normalized = {
            "baud_rate": validate_baud_rate(self.baud_rate),
            "data_bits": coerce(DataBits, self.data_bits),
            "parity": coerce(Parity, self.parity),
            "stop_bits": coerce(StopBits, self.stop_bits),
            "flow_control": coerce(FlowControl, self.flow_control),
            "read_timeout": timeouts.validate(self.read_timeout),
            "write_timeout": timeouts.validate(self.write_timeout),
        }
        for key, value in normalized.items():
            object.__setattr__(self, key, value)


class AbstractSerialPort(ABC):
    """
    Operating system independant public interface of :py:class:`SerialPort`.

    A port exclusively owns one native descriptor. It is closed when :py:meth:`close`
    is called, when the context manager exits or when the object is garbage collected.

    There is no internal locking: callers must not use the same port from several
    threads at once. Use :py:meth:`duplicate` to read and write from different threads.
    """

    # Name of port, e.g. "/dev/ttyUSB0" or "COM7". None if unknown.
    _name: Optional[str] = None

    # Cached timeout intents. The native state cannot be mapped back to these.
    _read_timeout: Optional[float] = None
    _write_timeout: Optional[float] = None

    def __init__(
        self,
        descriptor: Any,
        *,
        name: Optional[str] = None,
        read_timeout: Optional[float] = None,
        write_timeout: Optional[float] = None,
    ) -> None:
        """
        Wrap an already opened descriptor. Do not call this directly, use :py:meth:`open`
        or :py:meth:`from_raw`.

        Args:
            descriptor: Native descriptor, owned by the new object
            name: Port name, if known
            read_timeout: Cached read timeout
            write_timeout: Cached write timeout
        """
        self._name = name
        self._read_timeout = read_timeout
        self._write_timeout = write_timeout

    @classmethod
    def open(cls: Type[P], name: str, settings: Optional[SerialPortSettings] = None) -> P:
        """
        Open the port and configure it.

        The port is returned fully configured or not at all; on failure the
        descriptor is closed before the exception propagates.

        Args:
            name: Name of port. Format depends on implementation. This could be "/dev/ttyUSB0"
                  on Linux or "COM7" on Windows.
            settings: Initial configuration, defaults to 9600 8N1 without flow control

        Raises:
            NoDeviceError: Device does not exist, is busy or access was denied
            InvalidInputError: Name cannot be passed to the operating system
            SerialError: Any other failure while opening or configuring
        """
        if settings is None:
            settings = SerialPortSettings()

        port = cls._open_descriptor(name)
        try:
            port._configure(settings)
            port._apply_timeouts(settings.read_timeout, settings.write_timeout)
        except BaseException:
            port.close()
            raise

        port._read_timeout = settings.read_timeout
        port._write_timeout = settings.write_timeout
        return port

    @classmethod
    def from_raw(cls: Type[P], descriptor: Any) -> P:
        """
        Adopt a descriptor that was opened elsewhere.

        The caller guarantees that :py:obj:`descriptor` is a live serial device
        descriptor and that nothing else will close it; the new object takes ownership.

        Warning: the returned port reports ``None`` for :py:attr:`read_timeout` and
        :py:attr:`write_timeout` and for :py:attr:`name`, no matter what the device is
        actually configured to. Call :py:meth:`set_read_timeout` and
        :py:meth:`set_write_timeout` to bring the device in line with the cache.
        """
        return cls(descriptor)

    def __enter__(self: P) -> P:
        return self

    def __exit__(self, *exc_info: Any) -> None:
        self.close()

    def __del__(self) -> None:
        """
        Destructor. Closes the port if still open.
        """
        self.close()

    def __repr__(self) -> str:
        state = "closed" if self.closed else "open"
        return f"<{type(self).__name__} name={self._name!r} {state}>"

    @property
    def name(self) -> Optional[str]:
        """
        Get the port name.

        Returns:
            Name passed to :py:meth:`open`, None for adopted descriptors
        """
        return self._name

    @property
    def read_timeout(self) -> Optional[float]:
        """
        Cached read timeout in seconds.
        """
        return self._read_timeout

    @property
    def write_timeout(self) -> Optional[float]:
        """
        Cached write timeout in seconds.
        """
        return self._write_timeout

    def set_read_timeout(self, timeout: Optional[float]) -> None:
        """
        Set the read timeout.

        Args:
            timeout: Seconds to wait for at least one byte. None returns at once when
                     nothing is queued.
        """
        timeout = timeouts.validate(timeout)
        self._apply_timeouts(timeout, self._write_timeout)
        self._read_timeout = timeout

    def set_write_timeout(self, timeout: Optional[float]) -> None:
        """
        Set the write timeout.

        Args:
            timeout: Seconds to wait for a write to make progress. None waits forever.
        """
        timeout = timeouts.validate(timeout)
        self._apply_timeouts(self._read_timeout, timeout)
        self._write_timeout = timeout

    def duplicate(self: P) -> P:
        """
        Create a second port object for the same device, e.g. to read in one thread and
        write in another.

        The new object owns its own descriptor and may be closed independently. Its
        timeout cache starts as a copy of this one's; the caches are not linked, so
        after changing a timeout through one object the other reports a stale value.
        Line settings (baud rate etc.) are never cached and always agree.
        """
        return type(self)(
            self._duplicate_descriptor(),
            name=self._name,
            read_timeout=self._read_timeout,
            write_timeout=self._write_timeout,
        )

    def settings(self) -> SerialPortSettings:
        """
        Read the complete configuration. Line settings are read from the device,
        timeouts from the cache.
        """
        return SerialPortSettings(
            baud_rate=self.get_baud_rate(),
            data_bits=self.get_data_bits(),
            parity=self.get_parity(),
            stop_bits=self.get_stop_bits(),
            flow_control=self.get_flow_control(),
            read_timeout=self._read_timeout,
            write_timeout=self._write_timeout,
        )

    def apply_settings(self, settings: SerialPortSettings) -> None:
        """
        Apply a complete configuration. Line settings are committed in one native call.
        """
        self._configure(settings)
        self._apply_timeouts(settings.read_timeout, settings.write_timeout)
        self._read_timeout = settings.read_timeout
        self._write_timeout = settings.write_timeout

    def read(self, size: int = 4096) -> bytes:
        """
        Receive up to :py:obj:`size` bytes.

        Raises:
            SerialTimeoutError: No byte arrived within the read timeout
        """
        if size < 1:
            raise InvalidInputError(f"Invalid read size: {size!r}")
        buf = bytearray(size)
        count = self.readinto(buf)
        return bytes(buf[:count])

    def write_all(self, data: ByteString) -> None:
        """
        Send :py:obj:`data`, repeating short writes until everything was accepted.

        Raises:
            SerialTimeoutError: A write made no progress within the write timeout
        """
        with memoryview(data) as data:
            total_sent = 0
            while total_sent < len(data):
                with data[total_sent:] as remaining:
                    total_sent += self.write(remaining)

    def send_break(self, duration: float = 0.25) -> None:
        """
        Transmit a continuous stream of zero-valued bits for a specific duration.

        Params:
            duration: Number of seconds
        """
        self.set_break()
        try:
            time.sleep(duration)
        finally:
            self.clear_break()

    def discard_input(self) -> None:
        """
        Discard any unread input.
        """
        self.clear(ClearBuffer.INPUT)

    def discard_output(self) -> None:
        """
        Discard any unwritten output.
        """
        self.clear(ClearBuffer.OUTPUT)

    @staticmethod
    def _read_timed_out() -> SerialTimeoutError:
        return SerialTimeoutError("Read timed out")

    @staticmethod
    def _write_timed_out() -> SerialTimeoutError:
        return SerialTimeoutError("Write timed out")

    @classmethod
    @abstractmethod
    def _open_descriptor(cls: Type[P], name: str) -> P:
        """
        Open the device by name with exclusive read/write access and wrap the
        descriptor, without configuring it.
        """

    @abstractmethod
    def _configure(self, settings: SerialPortSettings) -> None:
        """
        Commit all line settings from :py:obj:`settings` in one native call.
        """

    @abstractmethod
    def _apply_timeouts(
        self, read_timeout: Optional[float], write_timeout: Optional[float]
    ) -> None:
        """
        Configure the device (or the I/O path) for both timeouts. Must not touch the cache.
        """

    @abstractmethod
    def _duplicate_descriptor(self) -> Any:
        """
        Return a new native descriptor for the same device.
        """

    @property
    @abstractmethod
    def closed(self) -> bool:
        """
        True once the port was closed or released.
        """

    @abstractmethod
    def close(self) -> None:
        """
        Close the descriptor. Errors are ignored. Do nothing if already closed.
        """

    @abstractmethod
    def fileno(self) -> int:
        """
        Get the native descriptor as integer, e.g. to register it with a poller.
        The port keeps ownership.
        """

    @abstractmethod
    def into_raw(self) -> Any:
        """
        Release ownership of the descriptor without closing it. The port is unusable
        afterwards.
        """

    @abstractmethod
    def get_baud_rate(self) -> int:
        """
        Retrieve the current baud rate from the device.
        """

    @abstractmethod
    def set_baud_rate(self, baud_rate: int) -> None:
        """
        Set the baud rate. The device decides which rates are valid.
        """

    @abstractmethod
    def get_data_bits(self) -> DataBits:
        """
        Raises:
            UnknownEncodingError: Device uses a character size not in :py:class:`DataBits`
        """

    @abstractmethod
    def set_data_bits(self, data_bits: DataBits) -> None:
        pass

    @abstractmethod
    def get_parity(self) -> Parity:
        """
        Raises:
            UnknownEncodingError: Device uses e.g. mark or space parity
        """

    @abstractmethod
    def set_parity(self, parity: Parity) -> None:
        pass

    @abstractmethod
    def get_stop_bits(self) -> StopBits:
        """
        Raises:
            UnknownEncodingError: Device uses e.g. 1.5 stop bits
        """

    @abstractmethod
    def set_stop_bits(self, stop_bits: StopBits) -> None:
        pass

    @abstractmethod
    def get_flow_control(self) -> FlowControl:
        """
        Hardware flow control is reported if both hardware and software flags are set.
        """

    @abstractmethod
    def set_flow_control(self, flow_control: FlowControl) -> None:
        pass

    @abstractmethod
    def set_rts(self, value: bool) -> None:
        """
        Set *Request To Send* state.

        Args:
            value: New *Request To Send* state
        """

    @abstractmethod
    def set_dtr(self, value: bool) -> None:
        """
        Set *Data Terminal Ready* state.

        Args:
            value: New *Data Terminal Ready* state
        """

    @abstractmethod
    def get_cts(self) -> bool:
        """
        Retrieve current *Clear To Send* state.

        Returns:
            Current CTS state
        """

    @abstractmethod
    def get_dsr(self) -> bool:
        """
        Retrieve current *Data Set Ready* state.

        Returns:
            Current DSR state
        """

    @abstractmethod
    def get_ri(self) -> bool:
        """
        Retrieve current *Ring Indicator* state.

        Returns:
            Current RI state
        """

    @abstractmethod
    def get_cd(self) -> bool:
        """
        Retrieve current *Carrier Detect* state.

        Returns:
            Current CD state
        """

    @abstractmethod
    def bytes_to_read(self) -> int:
        """
        Number of received bytes waiting to be read.

        On Windows this also clears latched line errors (framing, overrun, ...).
        """

    @abstractmethod
    def bytes_to_write(self) -> int:
        """
        Number of bytes accepted by :py:meth:`write` but not yet transmitted.

        On Windows this also clears latched line errors (framing, overrun, ...).
        """

    @abstractmethod
    def clear(self, buffer: ClearBuffer) -> None:
        """
        Abort pending I/O and discard queued bytes of the selected direction(s).
        """

    @abstractmethod
    def set_break(self) -> None:
        """
        Start transmitting a break condition.
        """

    @abstractmethod
    def clear_break(self) -> None:
        """
        Stop transmitting a break condition.
        """

    @abstractmethod
    def readinto(self, buffer: bytearray) -> int:
        """
        Read into :py:obj:`buffer`, waiting up to the read timeout for the first byte.

        Returns:
            Number of bytes read, at least 1

        Raises:
            SerialTimeoutError: No byte arrived within the read timeout
        """

    @abstractmethod
    def write(self, data: ByteString) -> int:
        """
        Send :py:obj:`data` to the serial port. Partial writes are allowed.

        A write that accepts nothing of a non-empty buffer raises instead of returning
        0, so loops like :py:meth:`write_all` cannot spin on a stalled line.

        Args:
            data: Bytes to write.

        Returns:
            Number of bytes actually written, at least 1 unless ``data`` is empty.

        Raises:
            SerialTimeoutError: Nothing was accepted within the write timeout
        """

    @abstractmethod
    def flush(self) -> None:
        """
        Wait until all written bytes have been transmitted.
        """
