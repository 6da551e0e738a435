# Licensed under the GPLv3 - see LICENSE
"""
Definitions for Ogg page headers.

Implements an OggHeader class used to store the fixed header fields and
the segment table of a page, and decode/encode the information therein.

The format is defined in RFC 3533, https://www.rfc-editor.org/rfc/rfc3533
"""
import struct
from enum import IntEnum

import numpy as np

from ..base.header import HeaderParser, ParsedHeaderBase
from ..base.base import (MalformedHeaderError, TruncatedFrameError,
                         CapacityError)


__all__ = ['PageType', 'CAPTURE_PATTERN', 'MAX_SEGMENTS', 'MAX_LACING_VALUE',
           'MAX_PAYLOAD_NBYTES', 'MAX_PAGE_NBYTES', 'OggHeader']


CAPTURE_PATTERN = b'OggS'
"""Bytes with which every page starts."""
MAX_SEGMENTS = 255
"""Maximum number of entries in a segment table."""
MAX_LACING_VALUE = 255
"""Lacing value that signals the sub-segment continues."""
MAX_PAYLOAD_NBYTES = MAX_SEGMENTS * MAX_LACING_VALUE
"""Largest payload a single page can carry (65025 bytes)."""


class PageType(IntEnum):
    """Value of the header type byte.

    The first page of a logical stream is `BEGIN_OF_STREAM`, the last
    `END_OF_STREAM`, and all others `CONTINUATION`.
    """
    CONTINUATION = 0
    BEGIN_OF_STREAM = 2
    END_OF_STREAM = 4


_page_types = frozenset(int(page_type) for page_type in PageType)


class OggHeader(ParsedHeaderBase):
    """Decoder/encoder of an Ogg page header.

    The header consists of 27 bytes of fixed fields, followed by a segment
    table of up to 255 lacing values, whose sum gives the size of the
    payload that follows.  All values are little-endian.

    Parameters
    ----------
    words : tuple of int, or None
        Eight header fields, as unpacked from the 27 fixed bytes: capture
        pattern, version, header type, granule position, stream id, packet
        index, checksum, and segment count.  If `None`, set to a list of
        zeros for later initialisation.
    segment_table : array of uint8, optional
        Lacing values.  Should have the length given by the segment count.
        Default: empty.
    verify : bool, optional
        Whether to do basic verification of integrity.  Default: `True`.

    Returns
    -------
    header : `OggHeader`
    """

    _struct = struct.Struct('<IBBQIIIB')

    _header_parser = HeaderParser(
        (('capture_pattern', (0, 32, 0x5367674f)),  # b'OggS'
         ('version', (1, 8, 0)),
         ('header_type', (2, 8, int(PageType.BEGIN_OF_STREAM))),
         ('granule_position', (3, 64, 0)),
         ('stream_id', (4, 32)),
         ('packet_index', (5, 32, 0)),
         ('checksum', (6, 32, 0)),
         ('segment_count', (7, 8, 0))))

    _capture_pattern = _header_parser.defaults['capture_pattern']

    _properties = ('page_type', 'segment_table')
    """Properties accessible/usable in initialisation."""

    def __init__(self, words, segment_table=None, verify=True):
        if segment_table is None:
            segment_table = np.zeros(0, dtype='u1')
        self._segment_table = np.asarray(segment_table, dtype='u1')
        super().__init__(words, verify=verify)

    @classmethod
    def _verify_fixed(cls, words):
        """Check the capture pattern, version, and type of header fields."""
        if words[0] != cls._capture_pattern:
            raise MalformedHeaderError(
                "expected capture pattern {0!r}, got {1!r}".format(
                    CAPTURE_PATTERN, struct.pack('<I', words[0])))
        if words[1] != 0:
            raise MalformedHeaderError(
                "invalid version {0} (should be zero)".format(words[1]))
        if words[2] not in _page_types:
            raise MalformedHeaderError(
                "invalid header type {0} (should be 0, 2, or 4)"
                .format(words[2]))

    def verify(self):
        """Verify header integrity."""
        assert len(self.words) == 8
        self._verify_fixed(self.words)
        assert len(self._segment_table) == self['segment_count']

    def copy(self, **kwargs):
        return super().copy(segment_table=self._segment_table.copy(),
                            **kwargs)

    @classmethod
    def frombytes(cls, data, offset=0, verify=True):
        """Decode the header and segment table from the start of a buffer.

        Only the header itself needs to be present; the buffer may end
        anywhere after the segment table.  The header constructed will be
        immutable.

        Parameters
        ----------
        data : bytes-like
            Buffer holding (at least) the page header.
        offset : int, optional
            Position of the start of the page within ``data``.
        verify : bool, optional
            Whether to do basic verification of integrity.  Default: `True`.
            The capture pattern, version and type are checked before the
            segment table is looked at.

        Raises
        ------
        ~oggstream.base.base.TruncatedFrameError
            If the buffer ends before the segment table does.
        ~oggstream.base.base.MalformedHeaderError
            If the capture pattern, version or type are wrong.
        """
        available = len(data) - offset
        if available < cls._struct.size:
            raise TruncatedFrameError(
                "need {0} bytes for the page header, have {1}"
                .format(cls._struct.size, available))
        words = cls._struct.unpack_from(data, offset)
        if verify:
            cls._verify_fixed(words)
        start = offset + cls._struct.size
        stop = start + words[7]
        if len(data) < stop:
            raise TruncatedFrameError(
                "need {0} bytes for the page header and segment table, "
                "have {1}".format(stop - offset, available))
        segment_table = np.frombuffer(bytes(data[start:stop]), dtype='u1')
        return cls(words, segment_table, verify=verify)

    @classmethod
    def fromfile(cls, fh, verify=True):
        """Read Ogg header from file.

        The header constructed will be immutable.

        Raises
        ------
        EOFError
            If the file is at its end.
        ~oggstream.base.base.TruncatedFrameError
            If the file ends within the header.
        """
        s = fh.read(cls._struct.size)
        if len(s) == 0:
            raise EOFError("no more pages.")
        if len(s) < cls._struct.size:
            raise TruncatedFrameError(
                "file ended within page header ({0} of {1} bytes)"
                .format(len(s), cls._struct.size))
        words = cls._struct.unpack(s)
        if verify:
            cls._verify_fixed(words)
        table = fh.read(words[7])
        if len(table) < words[7]:
            raise TruncatedFrameError("file ended within segment table.")
        return cls(words, np.frombuffer(table, dtype='u1'), verify=verify)

    def tobytes(self):
        """Encode the header fields and segment table as bytes."""
        return super().tobytes() + self._segment_table.tobytes()

    @property
    def page_type(self):
        """Type of the page, i.e., its position in the logical stream."""
        return PageType(self['header_type'])

    @page_type.setter
    def page_type(self, page_type):
        self['header_type'] = int(PageType(page_type))

    @property
    def segment_table(self):
        """Lacing values describing the payload."""
        return self._segment_table

    @segment_table.setter
    def segment_table(self, segment_table):
        if not self.mutable:
            raise TypeError("header is immutable; make a copy to change it.")
        segment_table = np.asarray(segment_table)
        if len(segment_table) > MAX_SEGMENTS:
            raise CapacityError("segment table can have at most {0} entries, "
                                "not {1}.".format(MAX_SEGMENTS,
                                                  len(segment_table)))
        if segment_table.size and (segment_table.min() < 0
                                   or segment_table.max() > MAX_LACING_VALUE):
            raise ValueError("lacing values have to be between 0 and 255.")
        self['segment_count'] = len(segment_table)
        self._segment_table = segment_table.astype('u1')

    @property
    def nbytes(self):
        """Size of the header, including the segment table, in bytes."""
        return self._struct.size + len(self._segment_table)

    @property
    def payload_nbytes(self):
        """Size of the payload in bytes (the sum of the segment table)."""
        return int(self._segment_table.sum(dtype=int))

    @property
    def page_nbytes(self):
        """Size of the page in bytes.

        This only needs the header and segment table, so that it can be used
        to find how many bytes of a partially read page are still missing.
        """
        return self.nbytes + self.payload_nbytes

    @property
    def continues(self):
        """Whether the last sub-segment continues on the next page."""
        return (len(self._segment_table) > 0
                and self._segment_table[-1] == MAX_LACING_VALUE)

    def __eq__(self, other):
        return (super().__eq__(other)
                and np.array_equal(self._segment_table, other._segment_table))

    def _repr_value(self, key, value):
        if key in ('capture_pattern', 'checksum'):
            return '0x{:08x}'.format(value)
        if key == 'header_type':
            if value in _page_types:
                return PageType(value).name
        return super()._repr_value(key, value)

    def __repr__(self):
        out = super().__repr__()
        return (out[:-1] + ",\n  " + " "*len(self.__class__.__name__)
                + "segment_table: {}>".format(self._segment_table.tolist()))


MAX_PAGE_NBYTES = OggHeader._struct.size + MAX_SEGMENTS + MAX_PAYLOAD_NBYTES
"""Largest possible page, including header and segment table."""
