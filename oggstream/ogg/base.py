# Licensed under the GPLv3 - see LICENSE
import operator
import warnings

import numpy as np
from numpy.lib.stride_tricks import as_strided

from ..base.base import (
    HeaderNotFoundError, MalformedHeaderError, ChecksumError,
    TruncatedFrameError, FileBase, StreamBase, FileOpener)
from ..base.utils import byte_array
from .header import OggHeader, PageType, CAPTURE_PATTERN, MAX_PAGE_NBYTES
from .page import OggPage


__all__ = ['OggFileReader', 'OggFileWriter',
           'OggStreamReader', 'OggStreamWriter', 'open']


class OggFileReader(FileBase):
    """Simple reader for Ogg files.

    Wraps a binary filehandle, providing methods to help interpret the data,
    such as `read_page` and `find_header`.

    Parameters
    ----------
    fh_raw : filehandle
        Filehandle of the raw binary data file.
    """

    def read_header(self, verify=True):
        """Read a single page header, including its segment table.

        Returns
        -------
        header : `~oggstream.ogg.OggHeader`
        """
        return OggHeader.fromfile(self.fh_raw, verify=verify)

    def read_page(self, verify=True):
        """Read a single page (header plus payload).

        Parameters
        ----------
        verify : bool, optional
            Whether to check the header and checksum.  Default: `True`.

        Returns
        -------
        page : `~oggstream.ogg.OggPage`
            With ``header`` and ``data`` properties that return the
            `~oggstream.ogg.OggHeader` and bytes held in the page.
        """
        return OggPage.fromfile(self.fh_raw, verify=verify)

    def read_pages(self, verify=True):
        """Read all pages from the current position to the end of the file.

        Returns
        -------
        pages : list of `~oggstream.ogg.OggPage`

        Raises
        ------
        ~oggstream.base.base.TruncatedFrameError
            If the file ends within a page.
        """
        return OggPage.fromcursor(self.fh_raw, verify=verify)

    def locate_pages(self, *, forward=True, maximum=None, check=True):
        """Use the capture pattern to locate pages near the current position.

        Note that the current position is always included.

        Parameters
        ----------
        forward : bool, optional
            Seek forward if `True` (default), backward if `False`.
        maximum : int, optional
            Maximum number of bytes to search away from the present location.
            Default: twice the largest possible page size.  Use 0 to check
            only at the current position.
        check : bool, optional
            Whether to keep only locations at which a complete page with a
            valid header and checksum can be decoded.  Default: `True`.

        Returns
        -------
        locations : list of int
            Locations of capture patterns within the range scanned,
            in order of proximity to the starting position.
        """
        pattern = byte_array(CAPTURE_PATTERN)
        if maximum is None:
            maximum = 2 * MAX_PAGE_NBYTES
        # Extra bytes to read such that any page starting in the range
        # can be decoded completely.
        extra = MAX_PAGE_NBYTES if check else pattern.size

        with self.temporary_offset() as fh:
            position = fh.tell()
            if forward:
                start = position
                stop = position + maximum + 1
            else:
                start = max(position - maximum, 0)
                stop = position + 1
            fh.seek(start)
            raw = fh.read(stop - start + extra - 1)

        # We may have hit the end of the file, so only look where the
        # full pattern can still be present.
        size = min(stop - start, len(raw) - pattern.size + 1)
        if size <= 0:
            return []
        data = np.frombuffer(raw, dtype='u1')

        # Match in two steps, first the first pattern byte, and then the
        # rest in one go using a strided array.
        matches = np.nonzero(data[:size] == pattern[0])[0]
        strided = as_strided(data[1:], strides=(1, 1),
                             shape=(size, pattern.size-1), writeable=False)
        matches = matches[(strided[matches] == pattern[1:]).all(-1)]

        if not forward:
            # Order by proximity to the file position.
            matches = matches[::-1]

        locations = []
        for match in matches.tolist():
            if check:
                try:
                    OggPage.frombytes(raw, match)
                except (MalformedHeaderError, ChecksumError,
                        TruncatedFrameError):
                    continue
            locations.append(start + match)

        return locations

    def find_header(self, *args, **kwargs):
        """Find the nearest header from the current position.

        If successful, the file pointer is left at the start of the header.

        Parameters are as for ``locate_pages``.

        Returns
        -------
        header : `~oggstream.ogg.OggHeader`
            Retrieved header.

        Raises
        ------
        ~oggstream.base.base.HeaderNotFoundError
            If no header could be located.
        """
        locations = self.locate_pages(*args, **kwargs)
        if not locations:
            raise HeaderNotFoundError('could not locate a nearby page.')
        self.seek(locations[0])
        with self.temporary_offset():
            return self.read_header()


class OggFileWriter(FileBase):
    """Simple writer for Ogg files.

    Adds `write_page` method to the binary file wrapper.
    """

    def write_page(self, data, header=None, **kwargs):
        """Write a single page (header plus payload).

        Parameters
        ----------
        data : `~oggstream.ogg.OggPage`, bytes-like, or sequence of bytes
            If not a page, the data to store, which are put in a page
            using the header or keyword arguments.
        header : `~oggstream.ogg.OggHeader`, optional
            Header to use for a new page.
        **kwargs
            If no header is given, used to initialize one, e.g., with
            ``stream_id``, ``page_type``, and ``packet_index``.
        """
        if not isinstance(data, OggPage):
            data = OggPage.fromdata(data, header, **kwargs)
        return data.tofile(self.fh_raw)


class OggStreamReader(StreamBase):
    """Ogg page reader for a file or other source of bytes.

    Pages are returned in the order they appear, from whichever logical
    stream they belong to.  The source is only assumed to have a ``read``
    method, which may return fewer bytes than asked for, and returns no
    bytes at all when there are no more.

    Parameters
    ----------
    fh_raw : filehandle
        Binary file-like object from which bytes are read.
    read_size : int, optional
        Minimum number of bytes to ask for when more bytes are needed.
        With 0, just the bytes still missing for the next page are asked
        for.  Default: 2048.
    verify : bool, optional
        Whether to check headers and checksums.  Default: `True`.
    """

    _read_size = 2048

    def __init__(self, fh_raw, read_size=None, verify=True):
        super().__init__(fh_raw)
        self.read_size = self._read_size if read_size is None else read_size
        self.verify = verify
        self._cache = bytearray()
        self._start = 0
        self._stream_id = 0
        self._end_of_stream = False
        self._end_of_file = False

    @property
    def stream_id(self):
        """Stream id of the page last returned (0 if none yet)."""
        return self._stream_id

    @property
    def nbuffered(self):
        """Number of bytes read from the source but not yet returned."""
        return len(self._cache) - self._start

    def is_eos(self):
        """Whether a page ending a logical stream has been returned."""
        return self._end_of_stream

    def is_eof(self):
        """Whether the source is exhausted and no bytes remain buffered."""
        return self._end_of_file and self.nbuffered == 0

    def _fill(self, count):
        # Drop consumed bytes before adding new ones.
        del self._cache[:self._start]
        self._start = 0
        data = self.fh_raw.read(count)
        if not data:
            self._end_of_file = True
        else:
            self._cache += data

    def get_packet(self):
        """Get the next page.

        Bytes are read from the source until the page is complete.

        Returns
        -------
        page : `~oggstream.ogg.OggPage` or None
            The page, or `None` if the source ended cleanly, i.e., without
            any bytes left over.

        Raises
        ------
        ~oggstream.base.base.TruncatedFrameError
            If the source ended within a page.
        ~oggstream.base.base.MalformedHeaderError
            If the bytes at the current position are not a page header.
        ~oggstream.base.base.ChecksumError
            If the checksum does not match the page contents.
        """
        header_nbytes = OggHeader._struct.size
        while True:
            nbuffered = self.nbuffered
            needed = header_nbytes
            if nbuffered >= needed:
                try:
                    header = OggHeader.frombytes(self._cache, self._start,
                                                 verify=self.verify)
                except TruncatedFrameError:
                    # Only the segment table is still incomplete.
                    needed += self._cache[self._start + header_nbytes - 1]
                else:
                    needed = header.page_nbytes
                    if nbuffered >= needed:
                        return self._get_page()

            if self._end_of_file:
                if nbuffered == 0:
                    return None
                raise TruncatedFrameError(
                    "source ended with {0} bytes of an incomplete page "
                    "({1} needed).".format(nbuffered, needed))

            self._fill(max(needed - nbuffered, self.read_size))

    def _get_page(self):
        page = OggPage.frombytes(self._cache, self._start, verify=self.verify)
        self._start += page.nbytes
        self._stream_id = page['stream_id']
        if page['header_type'] == PageType.END_OF_STREAM:
            self._end_of_stream = True
        return page

    def __iter__(self):
        return iter(self.get_packet, None)

    def close(self):
        if self.nbuffered:
            warnings.warn("closing with {0} bytes of an incomplete page "
                          "remaining.".format(self.nbuffered))
        super().close()

    def __repr__(self):
        return ("<{0} stream_id=0x{1:08x}, eos={2}, eof={3},\n"
                "    nbuffered={4}, read_size={5}>"
                .format(self.__class__.__name__, self.stream_id,
                        self.is_eos(), self.is_eof(), self.nbuffered,
                        self.read_size))


class OggStreamWriter(StreamBase):
    """Ogg page writer for a file or other sink of bytes.

    Bytes written are collected in a page, which is written out when it is
    full or when it is sealed explicitly.  The first page of the logical
    stream is marked as beginning it, and the page sealed on `close` as
    ending it.  The sink is only assumed to have a ``write`` method that
    either accepts all bytes given or raises; if it has a ``flush`` method,
    it is called after every page.

    Parameters
    ----------
    fh_raw : filehandle
        Binary file-like object to which pages are written.
    stream_id : int
        Identifier of the logical stream, stored in every page.
    granule_position : int, optional
        Initial granule position.  Default: 0.
    on_seal : callable, optional
        Called with the number of bytes in a page that is sealed because it
        is full; it should return the granule position for that page.  By
        default, the current ``granule_position`` is used.
    """

    def __init__(self, fh_raw, stream_id, granule_position=0, on_seal=None):
        super().__init__(fh_raw)
        self._page = OggPage.fromdata(stream_id=stream_id,
                                      page_type=PageType.CONTINUATION)
        self.granule_position = granule_position
        self.on_seal = on_seal
        self._packet_index = 0
        self._bytes_written = 0
        self._end_marked = False
        self._ended = False

    @property
    def stream_id(self):
        """Identifier of the logical stream."""
        return self._page['stream_id']

    @property
    def packet_index(self):
        """Index of the page currently being filled."""
        return self._packet_index

    @property
    def bytes_written(self):
        """Number of payload bytes in pages written out so far."""
        return self._bytes_written

    @property
    def granule_position(self):
        """Granule position, used for pages sealed without another value."""
        return self._granule_position

    @granule_position.setter
    def granule_position(self, granule_position):
        self._granule_position = operator.index(granule_position)

    @property
    def on_seal(self):
        """Callable giving the granule position of a page sealed when full."""
        return self._on_seal

    @on_seal.setter
    def on_seal(self, on_seal):
        if on_seal is not None and not callable(on_seal):
            raise TypeError("on_seal should be callable or None.")
        self._on_seal = on_seal

    @property
    def page(self):
        """Page currently being filled."""
        return self._page

    def write(self, data):
        """Write bytes, sealing pages as they become full.

        Parameters
        ----------
        data : bytes-like or `~numpy.ndarray`
            Bytes to write.

        Returns
        -------
        nbytes : int
            Number of bytes accepted.
        """
        data = byte_array(data)
        nwritten = 0
        while nwritten < data.size:
            nwritten += self._page.write(data[nwritten:])
            if self._page.full:
                if self.on_seal is None:
                    granule_position = self.granule_position
                else:
                    granule_position = self.on_seal(self._page.payload_nbytes)
                self.seal_packet(granule_position)

        return nwritten

    def mark_cur_packet_as_end_of_stream(self):
        """Mark the page being filled as the last of the logical stream.

        The page is not written until it is full or sealed.
        """
        self._end_marked = True

    def seal_packet(self, granule_position, is_end_of_stream=False):
        """Write out the current page, however full it is.

        Parameters
        ----------
        granule_position : int
            Granule position to store in the page.  This also becomes the
            writer's current ``granule_position``.
        is_end_of_stream : bool, optional
            Whether the page ends the logical stream.  Default: `False`,
            unless the page was marked as such before.
        """
        if is_end_of_stream or self._end_marked:
            page_type = PageType.END_OF_STREAM
        elif self._packet_index == 0:
            page_type = PageType.BEGIN_OF_STREAM
        else:
            page_type = PageType.CONTINUATION

        header = self._page.header.copy()
        header.update(page_type=page_type,
                      granule_position=granule_position,
                      packet_index=self._packet_index)
        page = OggPage(header, self._page.payload)
        # Only change state once the sink has accepted the page.
        self.fh_raw.write(page.tobytes())

        self._bytes_written += page.payload_nbytes
        self._packet_index += 1
        self.granule_position = granule_position
        self._ended = page_type == PageType.END_OF_STREAM
        self._end_marked = False
        self._page.clear()
        self.flush()

    def flush(self):
        """Flush the sink, if it supports it."""
        flush = getattr(self.fh_raw, 'flush', None)
        if flush is not None:
            flush()

    def reset(self):
        """Start a new logical stream with the same stream id."""
        self._packet_index = 0
        self._bytes_written = 0
        self.granule_position = 0
        self._end_marked = False
        self._ended = False
        self._page.clear()

    def close(self):
        """Seal the current page as ending the stream, and close the sink.

        If the stream has already ended and nothing has been written since,
        no further page is written.  The sink is closed even if writing
        the last page fails.
        """
        try:
            if not (self._ended and self._page.payload_nbytes == 0
                    and not self._end_marked):
                self.seal_packet(self.granule_position, is_end_of_stream=True)
        finally:
            super().close()

    def __repr__(self):
        return ("<{0} stream_id=0x{1:08x}, packet_index={2},\n"
                "    granule_position={3}, bytes_written={4}>"
                .format(self.__class__.__name__, self.stream_id,
                        self.packet_index, self.granule_position,
                        self.bytes_written))


open = FileOpener.create(globals(), doc="""
--- For reading a stream : (see `~oggstream.ogg.base.OggStreamReader`)

read_size : int, optional
    Minimum number of bytes to ask for when more bytes are needed.
    Default: 2048.
verify : bool, optional
    Whether to check headers and checksums.  Default: `True`.

--- For writing a stream : (see `~oggstream.ogg.base.OggStreamWriter`)

stream_id : int
    Identifier of the logical stream.
granule_position : int, optional
    Initial granule position.  Default: 0.
on_seal : callable, optional
    Called with the number of bytes in a page sealed because it is full,
    returning the granule position for that page.

Returns
-------
Filehandle
    :class:`~oggstream.ogg.base.OggFileReader` or
    :class:`~oggstream.ogg.base.OggFileWriter` (binary), or
    :class:`~oggstream.ogg.base.OggStreamReader` or
    :class:`~oggstream.ogg.base.OggStreamWriter` (stream).
""")
