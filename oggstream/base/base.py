# Licensed under the GPLv3 - see LICENSE
"""Wrappers giving access to framed bitstreams as binary files and streams.

`~oggstream.base.base.FileBase` wraps a seekable binary file, to which
formats add methods such as ``read_page`` and ``write_page``.
`~oggstream.base.base.StreamBase` holds what stream readers and writers
have in common, and `~oggstream.base.base.FileOpener` turns a set of
these classes into an ``open`` function.

Also defined are the errors raised when frames cannot be decoded or
encoded.
"""
import io
import textwrap
from contextlib import contextmanager


__all__ = ['HeaderNotFoundError', 'MalformedHeaderError', 'ChecksumError',
           'TruncatedFrameError', 'CapacityError',
           'FileBase', 'StreamBase', 'FileOpener']


class HeaderNotFoundError(LookupError):
    """Error in finding a header in a stream."""
    pass


class MalformedHeaderError(ValueError):
    """Header with a wrong capture pattern, version, or type."""
    pass


class ChecksumError(ValueError):
    """Checksum stored in a frame does not match its contents."""
    pass


class TruncatedFrameError(EOFError):
    """Fewer bytes available than needed to complete a frame."""
    pass


class CapacityError(ValueError):
    """Frame contents exceed what the framing can represent."""
    pass


class StreamBase:
    """Wrapper of a binary file-like object read from or written to.

    Only ``read`` or ``write`` is assumed to exist, so that pipes and
    sockets can be used as well as files.  Closing the wrapper, including
    on leaving a ``with`` block, closes the underlying object.

    Parameters
    ----------
    fh_raw : filehandle
        Binary file-like object.
    """
    _passed_on = frozenset({'readable', 'writable', 'seekable', 'closed',
                            'name'})

    def __init__(self, fh_raw):
        self.fh_raw = fh_raw

    def __getattr__(self, attr):
        if attr in self._passed_on:
            return getattr(self.fh_raw, attr)
        raise AttributeError(f"{self.__class__.__name__!r} object has no "
                             f"attribute {attr!r}")

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()

    def close(self):
        self.fh_raw.close()


class FileBase(StreamBase):
    """Wrapper of a binary file, to which frame methods can be added.

    Any public attribute not defined on the wrapper, such as ``read``,
    ``seek``, or ``tell``, is taken from the underlying file.
    """

    def __getattr__(self, attr):
        if attr.startswith('_') or attr == 'fh_raw':
            return super().__getattr__(attr)
        return getattr(self.fh_raw, attr)

    @contextmanager
    def temporary_offset(self, offset=None, whence=0):
        """Return to the current file position on leaving a ``with`` block.

        Parameters are as for :meth:`io.IOBase.seek`; if ``offset`` is
        given, the file is positioned there on entering the block.
        """
        position = self.fh_raw.tell()
        try:
            if offset is not None:
                self.fh_raw.seek(offset, whence)
            yield self
        finally:
            self.fh_raw.seek(position)

    def __repr__(self):
        return f"{self.__class__.__name__}(fh_raw={self.fh_raw!r})"


class FileOpener:
    """Open files of a given format as binary files or frame streams.

    Parameters
    ----------
    fmt : str
        Name of the format.
    classes : dict
        File reader, file writer, stream reader, and stream writer classes,
        keyed by mode, i.e., 'rb', 'wb', 'rs', and 'ws'.
    """

    def __init__(self, fmt, classes):
        self.fmt = fmt
        self.classes = classes

    def normalize_mode(self, mode):
        """Return the mode as used for ``classes``, e.g., 'br' -> 'rb'.

        A bare 'r' or 'w' opens a stream.
        """
        if mode in ('r', 'w'):
            mode += 's'
        for known in self.classes:
            if sorted(known) == sorted(mode):
                return known

        raise ValueError(f"invalid mode {mode!r}; {self.fmt} files can be "
                         f"opened with {', '.join(self.classes)}.")

    @staticmethod
    def is_fh(name):
        """Whether name is a filehandle rather than a file name."""
        return hasattr(name, 'read') or hasattr(name, 'write')

    def __call__(self, name, mode='rs', **kwargs):
        """
        Open a file for reading or writing.

        As a binary file, the file handle gets methods to read or write
        single pages at any position.  As a stream, pages are read or
        written one after another, and the file need not be seekable.

        Parameters
        ----------
        name : str or filehandle
            File name or binary filehandle.
        mode : {'rb', 'wb', 'rs', or 'ws'}, optional
            Whether to open for reading or writing, and as a regular binary
            file or as a stream.  Default: 'rs', for reading a stream.
        **kwargs
            Additional arguments for the reader or writer class.
        """
        mode = self.normalize_mode(mode)
        if self.is_fh(name):
            return self.classes[mode](name, **kwargs)

        fh = io.open(name, mode[0] + 'b')
        try:
            return self.classes[mode](fh, **kwargs)
        except Exception:
            fh.close()
            raise

    @classmethod
    def create(cls, ns, doc=None):
        """Create an ``open`` function for the classes in a namespace.

        The namespace should hold ``<fmt>FileReader``, ``<fmt>FileWriter``,
        ``<fmt>StreamReader``, and ``<fmt>StreamWriter``; the format name
        is taken from the stream reader.

        Parameters
        ----------
        ns : dict
            Namespace to look in, generally ``globals()`` of the caller.
        doc : str, optional
            Text to append to the documentation of the function.
        """
        fmt = next((key[:-len('StreamReader')] for key in ns
                    if key.endswith('StreamReader')), None)
        if fmt is None:
            raise ValueError('namespace does not contain a StreamReader, '
                             'so the format cannot be inferred.')

        opener = cls(fmt, {mode: ns[fmt + kind] for mode, kind in (
            ('rb', 'FileReader'), ('wb', 'FileWriter'),
            ('rs', 'StreamReader'), ('ws', 'StreamWriter'))})

        def open(name, mode='rs', **kwargs):
            return opener(name, mode, **kwargs)

        open.__module__ = ns.get('__name__', __name__)
        open.__doc__ = (textwrap.dedent(cls.__call__.__doc__)
                        .replace('a file', f'{fmt} file') + (doc or ''))
        return open
