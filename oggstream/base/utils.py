# Licensed under the GPLv3 - see LICENSE
from operator import index

import numpy as np
from astropy.utils import lazyproperty


__all__ = ['byte_array', 'CRC']


def byte_array(data):
    """View data as a flat array of bytes.

    Parameters
    ----------
    data : ~numpy.ndarray or bytes-like
        Anything supporting the buffer protocol, such as `bytes`,
        `bytearray`, or `memoryview`.  An array is flattened and its
        items are viewed as bytes in memory order.

    Returns
    -------
    byte_array : `~numpy.ndarray` of uint8
        Sharing memory with ``data`` where possible.
    """
    if isinstance(data, np.ndarray):
        return np.ascontiguousarray(data).reshape(-1).view('u1')

    return np.frombuffer(data, dtype='u1')


class CRC:
    """Cyclic Redundancy Check of a byte stream.

    See https://en.wikipedia.org/wiki/Cyclic_redundancy_check

    Bytes are fed in most significant bit first into a register that
    starts at zero, and the register is returned without a final
    exclusive-or.  This is the variant used by Ogg.

    Parameters
    ----------
    polynomial : int
        Binary encoded CRC divisor, including the leading bit.  For Ogg
        pages, this is 0x104c11db7.
    """

    def __init__(self, polynomial):
        self.polynomial = index(polynomial)
        if len(self) < 8:
            raise ValueError('a byte-wise CRC needs at least 8 bits.')

    def __len__(self):
        return self.polynomial.bit_length() - 1

    def __call__(self, stream):
        """Calculate the CRC of the bytes in the stream.

        Parameters
        ----------
        stream : bytes-like or `~numpy.ndarray`

        Returns
        -------
        crc : int
        """
        if isinstance(stream, np.ndarray):
            stream = byte_array(stream).tobytes()
        lookup = self._lookup
        shift = len(self) - 8
        mask = (1 << len(self)) - 1
        crc = 0
        for byte in stream:
            crc = ((crc << 8) & mask) ^ lookup[(crc >> shift) ^ byte]
        return crc

    @lazyproperty
    def table(self):
        """CRC of each possible leading byte, shifted into the register."""
        ncrc = len(self)
        mask = (1 << ncrc) - 1
        top = 1 << (ncrc - 1)
        register = np.arange(256, dtype='u8') << (ncrc - 8)
        for _ in range(8):
            register = np.where(register & top,
                                (register << 1) ^ (self.polynomial & mask),
                                register << 1) & mask
        return register

    @lazyproperty
    def _lookup(self):
        # Indexing a list with python ints is much faster in the byte loop.
        return self.table.tolist()
