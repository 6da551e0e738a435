# Licensed under the GPLv3 - see LICENSE
"""
Base definitions for headers of framed bitstreams.

A header is held as the tuple (or list, if it is to be modified) of fields
that a `~struct.Struct` unpacks from its bytes.  A `HeaderParser` names
those fields and knows their sizes and defaults, and `ParsedHeaderBase`
uses it to give dict-like access to the values.
"""
import struct
import warnings
from collections.abc import Mapping
from operator import index, itemgetter

from astropy.utils import classproperty, lazyproperty


__all__ = ['fixedvalue', 'HeaderParser', 'ParsedHeaderBase']


class fixedvalue(classproperty):
    """Class property that instances cannot change.

    Setting it on an instance is allowed only to the value it already has;
    anything else raises `ValueError`.
    """
    def __set__(self, instance, value):
        fixed = self.__get__(instance, type(instance))
        if value != fixed:
            raise ValueError(f'{self.fget.__name__} is fixed at {fixed}.')


class HeaderParser(Mapping):
    """Names, sizes, and defaults of the fields of a header.

    Parameters
    ----------
    definitions : iterable of (str, tuple)
        Key and description for each header keyword, in order.  Each
        description is a tuple of the index of the field in the unpacked
        header, its size in bits, and, optionally, its default value.

    Notes
    -----
    The instance cannot be changed after creation, so that the ``parsers``,
    ``setters``, and ``defaults`` derived from it can be calculated once.
    """

    def __init__(self, definitions):
        self._definitions = dict(definitions)

    def __getitem__(self, key):
        return self._definitions[key]

    def __iter__(self):
        return iter(self._definitions)

    def __len__(self):
        return len(self._definitions)

    @lazyproperty
    def parsers(self):
        """Functions that get each keyword from a sequence of fields."""
        return {key: itemgetter(definition[0])
                for key, definition in self.items()}

    @lazyproperty
    def setters(self):
        """Functions that set a keyword in a list of fields."""
        return {key: self._make_setter(*definition)
                for key, definition in self.items()}

    @lazyproperty
    def defaults(self):
        """Default value of each keyword, `None` if it has none."""
        return {key: definition[2] if len(definition) > 2 else None
                for key, definition in self.items()}

    @staticmethod
    def _make_setter(field_index, bit_length, default=None):
        def setter(fields, value):
            if value is None:
                if default is None:
                    raise ValueError("no default value so cannot set to "
                                     "'None'.")
                value = default
            value = index(value)
            if not 0 <= value < 1 << bit_length:
                raise ValueError(f"{value} cannot be represented with "
                                 f"{bit_length} bits.")
            fields[field_index] = value

        return setter


class ParsedHeaderBase:
    """Base class for headers stored as a sequence of struct fields.

    Subclasses define:

      _struct : `~struct.Struct` instance that can pack/unpack the fields.

      _header_parser : `HeaderParser` instance describing the fields.

      _properties : names of properties that can be set on initialisation.

    Parameters
    ----------
    words : tuple or list of int, or None
        Header fields, as unpacked by ``_struct``.  If given as a tuple,
        the header is immutable.  If `None`, set to a list of zeros for
        later initialisation (and skip any verification).
    verify : bool, optional
        Whether to do basic verification of integrity.
    """

    _struct = struct.Struct('')
    _properties = ()

    def __init__(self, words, verify=True):
        if words is None:
            words = [0] * len(self._header_parser)
            verify = False

        self.words = words
        if verify:
            self.verify()

    def verify(self):
        assert len(self.words) == len(self._header_parser)

    def copy(self, **kwargs):
        """Create a mutable and independent copy of the header."""
        kwargs.setdefault('verify', False)
        return self.__class__(list(self.words), **kwargs)

    def __copy__(self):
        return self.copy()

    @property
    def mutable(self):
        """Whether the header can be modified."""
        return isinstance(self.words, list)

    @classmethod
    def fromvalues(cls, *args, verify=True, **kwargs):
        """Initialise a header from keyword values and properties.

        Keys not given are set to their defaults, where these are defined.
        For any header, ``cls.fromvalues(**header) == header``.

        Parameters
        ----------
        *args
            Further arguments required to initialize an empty header.
        verify : bool, optional
            Whether to verify the result.  Default: `True`.
        **kwargs
            Values of header keys or properties.
        """
        self = cls(None, *args, verify=False)
        values = {key: default
                  for key, default in self._header_parser.defaults.items()
                  if default is not None}
        values.update(kwargs)
        self.update(verify=verify, **values)
        return self

    def update(self, *, verify=True, **kwargs):
        """Update the header by setting keywords or properties.

        Header keys are set first, then properties, in the order given by
        ``_properties``.  Any remaining arguments cause a warning.

        Parameters
        ----------
        verify : bool, optional
            If `True` (default), verify integrity after updating.
        **kwargs
            Arguments used to set keywords and properties.
        """
        for key in self.keys():
            if key in kwargs:
                self[key] = kwargs.pop(key)

        for name in self._properties:
            if name in kwargs:
                setattr(self, name, kwargs.pop(name))

        if kwargs:
            warnings.warn(f"some keywords unused in header update: {kwargs}")

        if verify:
            self.verify()

    def __getitem__(self, item):
        if item not in self._header_parser:
            raise KeyError(f"{self.__class__.__name__} header does not "
                           f"contain {item}")
        return self._header_parser.parsers[item](self.words)

    def __setitem__(self, item, value):
        if item not in self._header_parser:
            raise KeyError(f"{self.__class__.__name__} header does not "
                           f"contain {item}")
        if not self.mutable:
            raise TypeError("header is immutable; make a copy to change it.")
        self._header_parser.setters[item](self.words, value)

    def keys(self):
        return self._header_parser.keys()

    def __contains__(self, key):
        return key in self._header_parser

    def __eq__(self, other):
        return (type(self) is type(other)
                and tuple(self.words) == tuple(other.words))

    def tobytes(self):
        """Encode the header fields as bytes."""
        return self._struct.pack(*self.words)

    def _repr_value(self, key, value):
        return str(value)

    def __repr__(self):
        name = self.__class__.__name__
        indent = ",\n  " + " " * len(name)
        return "<{} {}>".format(name, indent.join(
            f"{key}: {self._repr_value(key, self[key])}"
            for key in self.keys()))
