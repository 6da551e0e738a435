# Licensed under the GPLv3 - see LICENSE
import io

import pytest
import numpy as np
from numpy.testing import assert_array_equal

from ...base.base import (MalformedHeaderError, ChecksumError,
                          TruncatedFrameError, CapacityError)
from .. import OggHeader, OggPayload, OggPage, PageType
from ..header import CAPTURE_PATTERN, MAX_PAYLOAD_NBYTES, MAX_PAGE_NBYTES
from ..payload import lacing_values, segment_sizes
from ..page import crc32, get_checksum, fill_checksum_field


class TestOggHeader:
    def setup_class(cls):
        cls.header = OggHeader.fromvalues(
            stream_id=0x12345678, granule_position=1 << 40, packet_index=7,
            page_type=PageType.CONTINUATION, segment_table=[255, 10, 0])

    def test_basics(self):
        header = self.header
        assert header.mutable
        assert header['capture_pattern'] == 0x5367674f
        assert header['version'] == 0
        assert header['header_type'] == 0
        assert header.page_type is PageType.CONTINUATION
        assert header['granule_position'] == 1 << 40
        assert header['stream_id'] == 0x12345678
        assert header['packet_index'] == 7
        assert header['checksum'] == 0
        assert header['segment_count'] == 3
        assert_array_equal(header.segment_table, [255, 10, 0])
        assert header.nbytes == 30
        assert header.payload_nbytes == 265
        assert header.page_nbytes == 295
        assert not header.continues

    def test_defaults(self):
        header = OggHeader.fromvalues(stream_id=1)
        assert header.page_type is PageType.BEGIN_OF_STREAM
        assert header['packet_index'] == 0
        assert header['granule_position'] == 0
        assert header.segment_table.size == 0
        assert header.nbytes == 27
        assert header.page_nbytes == 27

    def test_tobytes(self):
        raw = self.header.tobytes()
        assert len(raw) == 30
        assert raw[:4] == CAPTURE_PATTERN
        assert raw[4] == 0
        assert raw[5] == 0
        assert raw[6:14] == (1 << 40).to_bytes(8, 'little')
        assert raw[14:18] == b'\x78\x56\x34\x12'
        assert raw[18:22] == b'\x07\x00\x00\x00'
        assert raw[22:26] == bytes(4)
        assert raw[26] == 3
        assert raw[27:] == bytes([255, 10, 0])

    def test_frombytes(self):
        raw = self.header.tobytes()
        header = OggHeader.frombytes(raw + b'more bytes')
        assert header == self.header
        assert not header.mutable
        with pytest.raises(TypeError):
            header['stream_id'] = 1
        with pytest.raises(TypeError):
            header.segment_table = []
        header2 = OggHeader.frombytes(b'xx' + raw, offset=2)
        assert header2 == self.header
        header3 = header2.copy()
        assert header3.mutable
        header3['stream_id'] = 1
        assert header3 != header2
        assert header2['stream_id'] == 0x12345678

    @pytest.mark.parametrize('nbytes', (0, 4, 26, 27, 29))
    def test_frombytes_truncated(self, nbytes):
        raw = self.header.tobytes()
        with pytest.raises(TruncatedFrameError):
            OggHeader.frombytes(raw[:nbytes])

    @pytest.mark.parametrize(('index', 'value'),
                             ((0, ord('o')), (3, ord('s')),
                              (4, 1), (5, 1), (5, 3), (5, 6)))
    def test_malformed(self, index, value):
        raw = bytearray(self.header.tobytes())
        raw[index] = value
        with pytest.raises(MalformedHeaderError):
            OggHeader.frombytes(raw)
        # The fixed fields are checked before the segment table is needed.
        with pytest.raises(MalformedHeaderError):
            OggHeader.frombytes(raw[:27])
        # Unless verification is turned off.
        header = OggHeader.frombytes(raw, verify=False)
        assert header.nbytes == 30

    def test_fromfile(self):
        raw = self.header.tobytes()
        fh = io.BytesIO(raw * 2)
        assert OggHeader.fromfile(fh) == self.header
        assert OggHeader.fromfile(fh) == self.header
        with pytest.raises(EOFError) as exc:
            OggHeader.fromfile(fh)
        assert type(exc.value) is EOFError
        with pytest.raises(TruncatedFrameError):
            OggHeader.fromfile(io.BytesIO(raw[:20]))
        with pytest.raises(TruncatedFrameError):
            OggHeader.fromfile(io.BytesIO(raw[:28]))

    def test_setters(self):
        header = self.header.copy()
        header.page_type = PageType.END_OF_STREAM
        assert header['header_type'] == 4
        with pytest.raises(ValueError):
            header.page_type = 3
        header.segment_table = [1, 2]
        assert header['segment_count'] == 2
        assert header.payload_nbytes == 3
        with pytest.raises(CapacityError):
            header.segment_table = np.zeros(256, 'u1')
        with pytest.raises(ValueError):
            header.segment_table = [256]
        with pytest.raises(ValueError):
            header.segment_table = [-1]
        with pytest.raises(ValueError):
            header['granule_position'] = 1 << 64
        with pytest.raises(ValueError):
            header['stream_id'] = -1

    def test_continues(self):
        header = OggHeader.fromvalues(stream_id=1, segment_table=[10, 255])
        assert header.continues
        header = OggHeader.fromvalues(stream_id=1, segment_table=[255, 0])
        assert not header.continues

    def test_repr(self):
        r = repr(self.header)
        assert r.startswith('<OggHeader capture_pattern: 0x5367674f')
        assert 'header_type: CONTINUATION' in r
        assert 'segment_table: [255, 10, 0]>' in r


@pytest.mark.parametrize(('nbytes', 'expected'), (
    (0, [0]),
    (1, [1]),
    (254, [254]),
    (255, [255, 0]),
    (256, [255, 1]),
    (510, [255, 255, 0]),
    (65024, [255] * 254 + [254]),
    (65025, [255] * 255)))
def test_lacing_values(nbytes, expected):
    lacing = lacing_values(nbytes)
    assert lacing.dtype == np.uint8
    assert_array_equal(lacing, expected)


def test_lacing_values_limited():
    assert_array_equal(lacing_values(254, max_segments=1), [254])
    assert_array_equal(lacing_values(255, max_segments=1), [255])
    assert_array_equal(lacing_values(510, max_segments=2), [255, 255])
    with pytest.raises(CapacityError):
        lacing_values(256, max_segments=1)
    with pytest.raises(CapacityError):
        lacing_values(MAX_PAYLOAD_NBYTES + 1)


def test_lacing_recovers_single_segment():
    for nbytes in list(range(0, MAX_PAYLOAD_NBYTES, 97)) + [
            255, 510, 765, 65024, 65025]:
        lacing = lacing_values(nbytes)
        assert lacing.sum(dtype=int) == nbytes
        assert len(lacing) <= 255
        assert segment_sizes(lacing) == [nbytes]


@pytest.mark.parametrize(('segment_table', 'sizes'), (
    ([], []),
    ([0], [0]),
    ([0, 0], [0, 0]),
    ([10, 255, 0, 3], [10, 255, 3]),
    ([255, 255], [510]),
    ([100, 255], [100, 255]),
    ([255, 1, 254], [256, 254])))
def test_segment_sizes(segment_table, sizes):
    assert segment_sizes(np.array(segment_table, 'u1')) == sizes


class TestOggPayload:
    def test_basics(self):
        payload = OggPayload(b'abc')
        assert payload.nbytes == 3
        assert len(payload) == 3
        assert payload.data == b'abc'
        assert payload[1] == ord('b')
        assert payload.capacity == MAX_PAYLOAD_NBYTES
        assert OggPayload.capacity == MAX_PAYLOAD_NBYTES
        assert payload == OggPayload(np.frombuffer(b'abc', 'u1'))
        assert payload != OggPayload(b'abd')
        assert repr(payload) == '<OggPayload nbytes=3>'

    def test_append_and_clear(self):
        # Initialized from bytes, so read-only; appending should copy.
        payload = OggPayload(b'abc')
        assert payload.append(b'def') == 3
        assert payload.data == b'abcdef'
        assert payload.append(np.zeros(70000, 'u1')) == 65019
        assert payload.nbytes == MAX_PAYLOAD_NBYTES
        assert payload.append(b'x') == 0
        payload.clear()
        assert payload.nbytes == 0
        assert payload.append(b'new') == 3
        assert payload.data == b'new'

    def test_fromfile(self):
        fh = io.BytesIO(b'0123456789')
        payload = OggPayload.fromfile(fh, payload_nbytes=4)
        assert payload.data == b'0123'
        with pytest.raises(ValueError):
            OggPayload.fromfile(fh)
        with pytest.raises(EOFError):
            OggPayload.fromfile(fh, payload_nbytes=10)

    def test_invalid(self):
        with pytest.raises(CapacityError):
            OggPayload(bytes(MAX_PAYLOAD_NBYTES + 1))
        with pytest.raises(ValueError):
            OggPayload(np.zeros(3, '<u4'))
        with pytest.raises(ValueError):
            OggPayload(b'abc').capacity = 1


class TestOggPage:
    def setup_class(cls):
        cls.segments = [b'first', b'x' * 255, b'', b'last' * 100]
        cls.page = OggPage.fromdata(
            cls.segments, stream_id=0xdeadbeef, packet_index=3,
            granule_position=12345, page_type=PageType.CONTINUATION)

    def test_basics(self):
        page = self.page
        assert_array_equal(page.segment_table, [5, 255, 0, 0, 255, 145])
        assert page.get_segments() == self.segments
        assert page.data == b''.join(self.segments)
        assert page.payload_nbytes == 660
        assert page.nbytes == 27 + 6 + 660
        assert page.page_nbytes == page.nbytes
        assert not page.continues
        assert not page.full

    def test_header_access(self):
        page = self.page
        assert page['stream_id'] == 0xdeadbeef
        assert page.stream_id == 0xdeadbeef
        assert page.packet_index == 3
        assert page.granule_position == 12345
        assert page.page_type is PageType.CONTINUATION
        assert 'segment_count' in page
        assert 'bla' not in page
        assert set(page.keys()) == set(page.header.keys())
        with pytest.raises(AttributeError):
            page.bla
        with pytest.raises(KeyError):
            page['bla']

    def test_tobytes_frombytes(self):
        raw = self.page.tobytes()
        assert len(raw) == self.page.nbytes
        assert raw[27:33] == bytes([5, 255, 0, 0, 255, 145])
        page = OggPage.frombytes(raw)
        assert page.nbytes == len(raw)
        assert page['checksum'] == get_checksum(raw) != 0
        for key in page.keys():
            if key != 'checksum':
                assert page[key] == self.page[key]
        assert page.get_segments() == self.segments
        assert page.payload == self.page.payload
        # With the checksum set, the round trip is exact.
        assert OggPage.frombytes(page.tobytes()) == page
        assert page.tobytes() == raw

    def test_checksum_by_division(self):
        raw = bytearray(self.page.tobytes())
        stored = int.from_bytes(raw[22:26], 'little')
        raw[22:26] = bytes(4)
        # Polynomial division of the page, shifted by the CRC width.
        remainder = int.from_bytes(raw, 'big') << 32
        while remainder.bit_length() > 32:
            remainder ^= 0x104c11db7 << (remainder.bit_length() - 33)
        assert remainder == stored
        assert crc32(raw) == stored

    def test_checksum_functions(self):
        raw = bytearray(self.page.tobytes())
        expected = bytes(raw)
        raw[22:26] = b'\x01\x02\x03\x04'
        assert get_checksum(raw) == int.from_bytes(expected[22:26], 'little')
        fill_checksum_field(raw)
        assert raw == expected
        with pytest.raises(TruncatedFrameError):
            get_checksum(raw[:26])
        with pytest.raises(TruncatedFrameError):
            fill_checksum_field(bytearray(10))

    def test_frombytes_offset(self):
        raw = self.page.tobytes()
        data = b'junk' + raw + raw
        page = OggPage.frombytes(data, 4)
        assert page.get_segments() == self.segments
        page2 = OggPage.frombytes(data, 4 + page.nbytes)
        assert page2 == page
        with pytest.raises(TruncatedFrameError):
            OggPage.frombytes(data, 4 + 2 * page.nbytes)

    def test_get_length(self):
        raw = self.page.tobytes()
        assert OggPage.get_length(raw) == len(raw)
        assert OggPage.get_length(raw[:33]) == len(raw)
        assert OggPage.get_length(b'xyz' + raw[:33], 3) == len(raw)
        with pytest.raises(TruncatedFrameError):
            OggPage.get_length(raw[:32])
        with pytest.raises(TruncatedFrameError):
            OggPage.frombytes(raw[:-1])

    def test_verify_false(self):
        raw = bytearray(self.page.tobytes())
        raw[-1] ^= 0x1
        with pytest.raises(ChecksumError):
            OggPage.frombytes(raw)
        page = OggPage.frombytes(raw, verify=False)
        assert page.data[-1] == raw[-1]

    def test_single_bit_flips(self):
        raw = OggPage.fromdata(b'hello', stream_id=1).tobytes()
        assert len(raw) == 33
        for index in range(len(raw)):
            for bit in range(8):
                corrupt = bytearray(raw)
                corrupt[index] ^= 1 << bit
                with pytest.raises((MalformedHeaderError, ChecksumError,
                                    TruncatedFrameError)):
                    OggPage.frombytes(corrupt)

    def test_fromfile_fromcursor(self):
        raw1 = self.page.tobytes()
        raw2 = OggPage.fromdata(b'second', stream_id=2).tobytes()
        fh = io.BytesIO(raw1 + raw2)
        page = OggPage.fromfile(fh)
        assert page == OggPage.frombytes(raw1)
        assert fh.tell() == len(raw1)
        fh.seek(0)
        pages = OggPage.fromcursor(fh)
        assert len(pages) == 2
        assert pages[1].stream_id == 2
        assert pages[1].data == b'second'
        assert OggPage.fromcursor(fh) == []
        assert OggPage.fromcursor(io.BytesIO()) == []
        for cut in (3, 10, 30, 33):
            with pytest.raises(TruncatedFrameError):
                OggPage.fromcursor(io.BytesIO(raw1 + raw2[:-cut]))
        corrupt = bytearray(raw2)
        corrupt[-1] ^= 0xff
        with pytest.raises(ChecksumError):
            OggPage.fromfile(io.BytesIO(corrupt))

    def test_tofile(self, tmpdir):
        name = str(tmpdir.join('test.ogg'))
        with open(name, 'wb') as fw:
            assert self.page.tofile(fw) == self.page.nbytes
        with open(name, 'rb') as fh:
            page = OggPage.fromfile(fh)
        assert page.get_segments() == self.segments

    def test_write_capacity(self):
        page = OggPage.fromdata(stream_id=1)
        assert page.write(b'') == 0
        assert page.segment_table.size == 0
        assert page.write(np.ones(70000, 'u1')) == MAX_PAYLOAD_NBYTES
        assert page.full
        assert page.continues
        assert page.payload_nbytes == MAX_PAYLOAD_NBYTES
        assert page.write(b'a') == 0
        assert page.get_segments() == [b'\x01' * MAX_PAYLOAD_NBYTES]
        raw = page.tobytes()
        assert len(raw) == MAX_PAGE_NBYTES
        assert OggPage.frombytes(raw).data == page.data

    def test_write_limited_by_table(self):
        page = OggPage.fromdata(stream_id=1)
        assert page.write(b'a' * 100) == 100
        assert page.write(bytes(70000)) == 254 * 255
        assert page.payload_nbytes == 100 + 254 * 255
        assert page.full
        page.clear()
        assert page.payload_nbytes == 0
        assert page.segment_table.size == 0
        assert page.stream_id == 1
        for i in range(255):
            assert page.write(b'a') == 1
        assert page.full
        assert page.write(b'b') == 0
        assert page.data == b'a' * 255
        assert len(page.get_segments()) == 255

    def test_write_exact_multiple(self):
        page = OggPage.fromdata(stream_id=1)
        assert page.write(b'a' * 255) == 255
        assert page.write(b'b') == 1
        assert_array_equal(page.segment_table, [255, 0, 1])
        assert page.get_segments() == [b'a' * 255, b'b']

    def test_fromdata_too_much(self):
        with pytest.raises(CapacityError):
            OggPage.fromdata(bytes(MAX_PAYLOAD_NBYTES + 1), stream_id=1)
        with pytest.raises(CapacityError):
            OggPage.fromdata([b'a'] * 256, stream_id=1)
        with pytest.raises(CapacityError):
            OggPage.fromdata([b''] * 256, stream_id=1)
        page = OggPage.fromdata([b''] * 255, stream_id=1)
        assert page.get_segments() == [b''] * 255

    def test_empty_page(self):
        page = OggPage.fromdata(stream_id=5, page_type=PageType.END_OF_STREAM)
        raw = page.tobytes()
        assert len(raw) == 27
        page2 = OggPage.frombytes(raw)
        assert page2.page_type is PageType.END_OF_STREAM
        assert page2.get_segments() == []
        assert page2.data == b''

    def test_repr(self):
        r = repr(self.page)
        assert r.startswith('<OggPage version=0, page_type=CONTINUATION')
        assert 'stream_id=0xdeadbeef' in r
        assert 'data=[660 bytes]>' in r
