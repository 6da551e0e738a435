# Licensed under the GPLv3 - see LICENSE
"""Base implementations for framed bitstreams.

Streams are considered as composed of multiple frames, each of which have a
header and payload.  The `~oggstream.base.header` module provides the
machinery to decode and encode header fields packed in a `~struct.Struct`,
exposing them with a dict-like interface.

The `~oggstream.base.base` module defines the errors raised when frames
cannot be decoded or encoded, as well as base classes for file and stream
readers and writers, and for the openers that create them.

Finally, `~oggstream.base.utils` contains some general utility routines,
such as for cyclic redundancy checks.
"""
