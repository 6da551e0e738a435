# Licensed under the GPLv3 - see LICENSE
"""Ogg page reader and writer.

Pages are the physical framing unit of an Ogg bitstream: each holds a
header, a segment table that lays out its payload in sub-segments, and
the payload itself.  Pages of several logical streams can be interleaved
in one bitstream.  Interpreting the payload is left to the codec.

The format is defined in RFC 3533, https://www.rfc-editor.org/rfc/rfc3533
"""
from .base import open  # noqa
from .header import OggHeader, PageType  # noqa
from .payload import OggPayload  # noqa
from .page import OggPage  # noqa
