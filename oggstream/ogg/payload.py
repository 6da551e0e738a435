# Licensed under the GPLv3 - see LICENSE
"""
Definitions for Ogg page payloads.

Implements an OggPayload class used to store the bytes of a page, as well
as the functions that translate between sub-segment sizes and the lacing
values of a segment table.
"""
import numpy as np

from ..base.header import fixedvalue
from ..base.base import CapacityError
from ..base.utils import byte_array
from .header import MAX_SEGMENTS, MAX_LACING_VALUE, MAX_PAYLOAD_NBYTES


__all__ = ['lacing_values', 'segment_sizes', 'OggPayload']


def lacing_values(nbytes, max_segments=MAX_SEGMENTS):
    """Segment table entries for a single sub-segment.

    A sub-segment of ``nbytes`` is encoded as ``nbytes // 255`` entries of
    255, followed by a terminating entry with the remainder.  The terminator
    is always present, even if it is zero, so that a sub-segment with a
    length that is an exact multiple of 255 can be distinguished from one
    that continues.

    The exception is a sub-segment that fills all available entries with
    255 (e.g., 65025 bytes for an empty page).  There is no room for a
    terminator, and the sub-segment is left open, to be continued on the
    next page.

    Parameters
    ----------
    nbytes : int
        Size of the sub-segment.
    max_segments : int, optional
        Number of table entries available.  Default: 255.

    Returns
    -------
    lacing : `~numpy.ndarray` of uint8

    Raises
    ------
    ~oggstream.base.base.CapacityError
        If the sub-segment needs more entries than are available.
    """
    nfull, remainder = divmod(nbytes, MAX_LACING_VALUE)
    if nfull < max_segments:
        lacing = np.full(nfull + 1, MAX_LACING_VALUE, dtype='u1')
        lacing[-1] = remainder
        return lacing

    if nbytes == max_segments * MAX_LACING_VALUE:
        return np.full(max_segments, MAX_LACING_VALUE, dtype='u1')

    raise CapacityError("{0} bytes do not fit in {1} segment table entries."
                        .format(nbytes, max_segments))


def segment_sizes(segment_table):
    """Sizes of the sub-segments encoded in a segment table.

    Consecutive entries of 255 are added to the sub-segment, which is
    terminated by the first entry smaller than 255.  If the table ends in
    255, the last sub-segment continues on the next page; it is included
    with the size it has on this page.

    Parameters
    ----------
    segment_table : array of uint8
        Lacing values.

    Returns
    -------
    sizes : list of int
    """
    table = np.asarray(segment_table, dtype=int)
    if table.size == 0:
        return []
    # Index of the last entry of each sub-segment.
    ends = np.flatnonzero(table < MAX_LACING_VALUE)
    if ends.size == 0 or ends[-1] != table.size - 1:
        ends = np.append(ends, table.size - 1)
    cumulative = np.cumsum(table)[ends]
    return np.diff(cumulative, prepend=0).tolist()


class OggPayload:
    """Container for the bytes of an Ogg page.

    For reading, the bytes are held as given.  For writing, the payload is
    copied into a buffer that can hold a full page, so that bytes can be
    appended and the payload cleared without allocating new memory.

    Parameters
    ----------
    words : `~numpy.ndarray` of uint8, bytes-like, or None
        The payload bytes.  Default: empty.
    """
    # Type for the payload bytes.
    _dtype_word = np.dtype('u1')

    def __init__(self, words=None):
        if words is None:
            words = np.zeros(0, self._dtype_word)
        elif not isinstance(words, np.ndarray):
            words = byte_array(words)
        if words.dtype != self._dtype_word:
            raise ValueError("encoded data should have dtype {0}"
                             .format(self._dtype_word))
        if words.size > self.capacity:
            raise CapacityError("payload can have at most {0} bytes, not {1}."
                                .format(self.capacity, words.size))
        self._buffer = words
        self._nbytes = words.size

    @fixedvalue
    def capacity(cls):
        """Maximum number of bytes a payload can hold."""
        return MAX_PAYLOAD_NBYTES

    @classmethod
    def fromfile(cls, fh, header=None, payload_nbytes=None):
        """Read payload from filehandle.

        Parameters
        ----------
        fh : filehandle
            From which data is read.
        header : `~oggstream.ogg.OggHeader`, optional
            If given, used to infer ``payload_nbytes``.
        payload_nbytes : int, optional
            Number of bytes to read.  Required if no ``header`` is given.
        """
        if header is not None:
            payload_nbytes = header.payload_nbytes
        elif payload_nbytes is None:
            raise ValueError("payload_nbytes or header should be passed in.")

        s = fh.read(payload_nbytes)
        if len(s) < payload_nbytes:
            raise EOFError("could not read full payload.")
        return cls(np.frombuffer(s, dtype=cls._dtype_word))

    def tobytes(self):
        return self.words.tobytes()

    def tofile(self, fh):
        """Write payload to filehandle."""
        return fh.write(self.tobytes())

    @property
    def words(self):
        """Array holding the payload bytes."""
        return self._buffer[:self._nbytes]

    @property
    def nbytes(self):
        """Size of the payload in bytes."""
        return self._nbytes

    def __len__(self):
        return self._nbytes

    def append(self, data):
        """Append bytes, as far as they fit.

        Parameters
        ----------
        data : bytes-like or `~numpy.ndarray`
            Bytes to append.

        Returns
        -------
        nbytes : int
            Number of bytes actually appended.  Any excess is ignored.
        """
        data = byte_array(data)
        nbytes = min(data.size, self.capacity - self._nbytes)
        if nbytes == 0:
            return 0

        stop = self._nbytes + nbytes
        if self._buffer.size < stop or not self._buffer.flags.writeable:
            buffer = np.empty(self.capacity, self._dtype_word)
            buffer[:self._nbytes] = self.words
            self._buffer = buffer

        self._buffer[self._nbytes:stop] = data[:nbytes]
        self._nbytes = stop
        return nbytes

    def clear(self):
        """Remove all bytes, keeping the buffer for reuse."""
        self._nbytes = 0

    @property
    def data(self):
        """Payload as bytes."""
        return self.tobytes()

    def __getitem__(self, item):
        return self.words[item]

    def __eq__(self, other):
        return (type(self) is type(other)
                and np.array_equal(self.words, other.words))

    def __repr__(self):
        return "<{0} nbytes={1}>".format(self.__class__.__name__, self.nbytes)
