# Licensed under the GPLv3 - see LICENSE
"""
Definitions for Ogg pages.

Implements an OggPage class that can be used to hold a header and a
payload, providing access to the values encoded in both, as well as the
checksum functions that act on pages serialized to bytes.

The format is defined in RFC 3533, https://www.rfc-editor.org/rfc/rfc3533
"""
import numpy as np

from ..base.base import ChecksumError, TruncatedFrameError, CapacityError
from ..base.utils import CRC, byte_array
from .header import OggHeader, MAX_SEGMENTS, MAX_LACING_VALUE
from .payload import OggPayload, lacing_values, segment_sizes


__all__ = ['CRC32', 'crc32', 'get_checksum', 'fill_checksum_field',
           'OggPage']


CRC32 = 0x104c11db7
"""CRC polynomial used for Ogg pages.

x^32 + x^26 + x^23 + x^22 + x^16 + x^12 + x^11 + x^10 + x^8 + x^7 + x^5 +
x^4 + x^2 + x + 1, i.e., 0x04c11db7 with the leading bit.  Calculated
unreflected, starting from zero and without a final xor.
"""
crc32 = CRC(CRC32)

_checksum_slice = slice(22, 26)
"""Location of the checksum in the page header."""


def get_checksum(page):
    """Calculate the checksum of a serialized page.

    The checksum is calculated over the whole page, with the bytes of the
    checksum field itself taken to be zero.

    Parameters
    ----------
    page : bytes-like
        Complete page, starting with the capture pattern.

    Returns
    -------
    checksum : int
    """
    if len(page) < OggHeader._struct.size:
        raise TruncatedFrameError("page too small: {0} < {1} bytes"
                                  .format(len(page), OggHeader._struct.size))
    cleared = bytearray(page)
    cleared[_checksum_slice] = bytes(4)
    return crc32(cleared)


def fill_checksum_field(page):
    """Calculate the checksum of a serialized page and store it in place.

    Parameters
    ----------
    page : bytearray
        Complete page, starting with the capture pattern.
    """
    checksum = get_checksum(page)
    page[_checksum_slice] = checksum.to_bytes(4, 'little')


class OggPage:
    """Representation of an Ogg page, consisting of a header and payload.

    Parameters
    ----------
    header : `~oggstream.ogg.OggHeader`
        Wrapper around the encoded header fields and segment table,
        providing access to the header information.
    payload : `~oggstream.ogg.payload.OggPayload`
        Wrapper around the payload bytes.
    verify : bool
        Whether to do basic verification of integrity.  Default: `True`.

    Notes
    -----
    The page can also be instantiated using class methods:

      fromfile : read header and payload from a filehandle

      frombytes : read header and payload from a buffer

      fromdata : create a new page holding given bytes

    Of course, one can also do the opposite:

      tofile : method to write header and payload to filehandle

      tobytes : method to serialize header and payload, with checksum

    The page acts as a dictionary, with keys those of the header, and
    header keys and properties such as ``stream_id`` and ``page_type``
    can also be accessed as attributes.
    """

    _header_class = OggHeader
    _payload_class = OggPayload
    _header_attributes = ('page_type', 'segment_table', 'payload_nbytes',
                          'page_nbytes', 'continues')

    def __init__(self, header, payload, verify=True):
        self.header = header
        self.payload = payload
        if verify:
            self.verify()

    def verify(self):
        """Simple verification of the consistency of header and payload."""
        assert isinstance(self.header, self._header_class)
        assert isinstance(self.payload, self._payload_class)
        assert self.payload.nbytes == self.header.payload_nbytes

    @classmethod
    def fromdata(cls, data=None, header=None, verify=True, **kwargs):
        """Create a new page holding the given data.

        Parameters
        ----------
        data : bytes-like or sequence of bytes-like, optional
            Data to store.  If a sequence, each element is stored as a
            separate sub-segment.  Default: none, i.e., an empty page.
        header : `~oggstream.ogg.OggHeader`, optional
            Header to use, which should have an empty segment table.
            If not given, one is constructed using ``kwargs``.
        verify : bool
            Whether to do basic verification of integrity.  Default: `True`.
        **kwargs
            Values used to initialize the header, such as ``stream_id``,
            ``page_type``, ``packet_index``, and ``granule_position``.

        Raises
        ------
        ~oggstream.base.base.CapacityError
            If the data do not fit in a single page.
        """
        if header is None:
            header = cls._header_class.fromvalues(verify=verify, **kwargs)
        self = cls(header, cls._payload_class(), verify=verify)
        if data is None:
            return self

        if isinstance(data, (bytes, bytearray, memoryview, np.ndarray)):
            data = [data]
        for segment in data:
            segment = byte_array(segment)
            if self.write(segment) != segment.size or (segment.size == 0
                                                       and self.full):
                raise CapacityError("data do not fit in a single page.")
            if segment.size == 0:
                # Writing nothing adds no sub-segment; store it explicitly.
                self.header.segment_table = np.append(
                    self.header.segment_table, 0)
        return self

    @classmethod
    def fromfile(cls, fh, verify=True):
        """Read a page from a filehandle.

        Parameters
        ----------
        fh : filehandle
            Handle to read the page from.
        verify : bool
            Whether to verify the header and checksum.  Default: `True`.

        Raises
        ------
        EOFError
            If the file is at its end.
        ~oggstream.base.base.TruncatedFrameError
            If the file ends within the page.
        ~oggstream.base.base.ChecksumError
            If the checksum does not match the page contents.
        """
        header = cls._header_class.fromfile(fh, verify=verify)
        try:
            payload = cls._payload_class.fromfile(fh, header)
        except EOFError:
            raise TruncatedFrameError("file ended within page payload.")
        self = cls(header, payload, verify=verify)
        if verify:
            self._verify_checksum(header.tobytes() + payload.tobytes())
        return self

    @classmethod
    def frombytes(cls, data, offset=0, verify=True):
        """Read a page from a buffer.

        The size of the page, i.e., the number of bytes used from the
        buffer, is given by the ``nbytes`` attribute of the result.

        Parameters
        ----------
        data : bytes-like
            Buffer holding the page, possibly followed by more bytes.
        offset : int, optional
            Position of the start of the page within ``data``.
        verify : bool
            Whether to verify the header and checksum.  Default: `True`.

        Raises
        ------
        ~oggstream.base.base.TruncatedFrameError
            If the buffer ends within the page.
        ~oggstream.base.base.MalformedHeaderError
            If the capture pattern, version, or type are wrong.
        ~oggstream.base.base.ChecksumError
            If the checksum does not match the page contents.
        """
        header = cls._header_class.frombytes(data, offset, verify=verify)
        stop = offset + header.page_nbytes
        if len(data) < stop:
            raise TruncatedFrameError(
                "need {0} bytes for the page, have {1}"
                .format(header.page_nbytes, len(data) - offset))
        raw = bytes(data[offset:stop])
        payload = cls._payload_class(
            np.frombuffer(raw, dtype='u1', offset=header.nbytes))
        self = cls(header, payload, verify=verify)
        if verify:
            self._verify_checksum(raw)
        return self

    @classmethod
    def fromcursor(cls, fh, verify=True):
        """Read all pages from the current position to the end of a file.

        Parameters
        ----------
        fh : filehandle
            Handle to read pages from, e.g., a `~io.BytesIO` instance.
        verify : bool
            Whether to verify the header and checksum.  Default: `True`.

        Returns
        -------
        pages : list of `OggPage`

        Raises
        ------
        ~oggstream.base.base.TruncatedFrameError
            If the last page is incomplete.
        """
        pages = []
        while True:
            try:
                pages.append(cls.fromfile(fh, verify=verify))
            except TruncatedFrameError:
                raise
            except EOFError:
                return pages

    @staticmethod
    def get_length(data, offset=0):
        """Size of the page starting at ``offset`` in a buffer.

        Only the header and segment table need to be present.

        Raises
        ------
        ~oggstream.base.base.TruncatedFrameError
            If the buffer ends before the segment table does.
        """
        return OggHeader.frombytes(data, offset).page_nbytes

    def _verify_checksum(self, raw):
        checksum = get_checksum(raw)
        if checksum != self.header['checksum']:
            raise ChecksumError(
                "checksum does not match: should be 0x{0:08x}, got 0x{1:08x}"
                .format(checksum, self.header['checksum']))

    def tobytes(self):
        """Serialize the page, with the checksum calculated."""
        page = bytearray(self.header.tobytes())
        page[_checksum_slice] = bytes(4)
        page += self.payload.tobytes()
        fill_checksum_field(page)
        return bytes(page)

    def tofile(self, fh):
        """Write serialized page to filehandle."""
        return fh.write(self.tobytes())

    @property
    def full(self):
        """Whether all segment table entries are in use."""
        return len(self.header.segment_table) >= MAX_SEGMENTS

    def write(self, data):
        """Append data as a new sub-segment, as far as it fits.

        The data are laced into the remaining segment table entries.  If
        there are not enough, as many bytes as fit are appended, and the
        sub-segment is left open, to be continued on another page.

        Parameters
        ----------
        data : bytes-like or `~numpy.ndarray`
            Data to append.

        Returns
        -------
        nbytes : int
            Number of bytes actually written.  This is 0 if the page is
            full or ``data`` is empty.
        """
        data = byte_array(data)
        nfree = MAX_SEGMENTS - len(self.header.segment_table)
        nbytes = min(data.size, nfree * MAX_LACING_VALUE)
        if nbytes == 0:
            return 0

        lacing = lacing_values(nbytes, max_segments=nfree)
        self.payload.append(data[:nbytes])
        self.header.segment_table = np.concatenate(
            (self.header.segment_table, lacing))
        return nbytes

    def clear(self):
        """Remove all data, keeping the header values."""
        self.payload.clear()
        self.header.segment_table = np.zeros(0, dtype='u1')

    def get_segments(self):
        """The data split into sub-segments, as given by the segment table.

        Returns
        -------
        segments : list of bytes
        """
        data = self.payload.tobytes()
        segments = []
        start = 0
        for size in segment_sizes(self.header.segment_table):
            segments.append(data[start:start+size])
            start += size
        return segments

    @property
    def data(self):
        """All data in the page, as bytes."""
        return self.payload.data

    @property
    def nbytes(self):
        """Size of the encoded page in bytes."""
        return self.header.nbytes + self.payload.nbytes

    # Header behaves as a dictionary; let page behave appropriately.
    def __getitem__(self, item):
        return self.header.__getitem__(item)

    def __setitem__(self, item, value):
        self.header.__setitem__(item, value)

    def keys(self):
        return self.header.keys()

    def _ipython_key_completions_(self):
        # Enables tab-completion of header keys in IPython.
        return self.header.keys()

    def __contains__(self, key):
        return key in self.keys()

    # Try to get any attribute not on the page from the header.
    def __getattr__(self, attr):
        if attr != 'header' and not attr.startswith('_'):
            if attr in self.header.keys():
                return self.header[attr]
            if attr in self._header_attributes:
                return getattr(self.header, attr)
        # Raise appropriate error.
        return self.__getattribute__(attr)

    def __eq__(self, other):
        return (type(self) is type(other)
                and self.header == other.header
                and self.payload == other.payload)

    def __repr__(self):
        header = self.header
        return ("<{0} version={1}, page_type={2}, granule_position={3},\n"
                "    stream_id=0x{4:08x}, packet_index={5}, checksum=0x{6:08x},"
                "\n    segment_table={7}, data=[{8} bytes]>"
                .format(self.__class__.__name__, header['version'],
                        header.page_type.name, header['granule_position'],
                        header['stream_id'], header['packet_index'],
                        header['checksum'], header.segment_table.tolist(),
                        self.payload.nbytes))
