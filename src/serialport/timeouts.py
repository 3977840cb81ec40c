# Timeout conversion of serialport.
# (C) 2026 serialport contributors

# SPDX-License-Identifier: BSD-3-Clause

"""
Conversion of timeout intents into native millisecond counts.

A timeout is either ``None`` (do not wait beyond what is already queued) or a
non-negative number of seconds.
"""

from __future__ import annotations

import math
from numbers import Real
from typing import Optional

from .errors import InvalidInputError

#: Largest value of a 32 bit native timeout field
MAXDWORD = 0xFFFF_FFFF


def validate(timeout: Optional[float]) -> Optional[float]:
    """
    Check a timeout intent.

    Args:
        timeout: Seconds or None

    Returns:
        The timeout as float, or None

    Raises:
        InvalidInputError: If the timeout is negative, NaN or not a number
    """
    if timeout is None:
        return None
    if isinstance(timeout, bool) or not isinstance(timeout, Real):
        raise InvalidInputError(f"Invalid timeout: {timeout!r}")
    if math.isnan(timeout) or timeout < 0:
        raise InvalidInputError(f"Invalid timeout: {timeout!r}")
    return float(timeout)


def to_millis(timeout: Optional[float], maximum: int = MAXDWORD) -> int:
    """
    Convert a timeout intent to milliseconds.

    ``None`` becomes 0. Any other value is rounded up to whole milliseconds, so the
    wait is never shorter than asked for, then raised to at least 1 and saturated
    at :py:obj:`maximum`.
    """
    timeout = validate(timeout)
    if timeout is None:
        return 0
    if math.isinf(timeout):
        return maximum
    return min(max(math.ceil(timeout * 1000), 1), maximum)
