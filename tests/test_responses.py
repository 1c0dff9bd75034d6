"""Tests for status reply parsing."""

import pytest

from qlprint.errors import MalformedStatus
from qlprint.media import MediaType
from qlprint.responses import (
    ErrorFlag,
    Phase,
    StatusFrame,
    StatusOffsets,
    StatusType,
    decode_status,
)

from conftest import make_status


def reply(**fields):
    """Status reply with the given offsets set."""
    data = bytearray(make_status().encode())
    for name, value in fields.items():
        data[StatusOffsets[name.upper()]] = value
    return bytes(data)


class TestDecodeStatus:
    def test_healthy_printer(self):
        status = decode_status(make_status().encode())

        assert status.ok
        assert status.error_flags == ErrorFlag.NONE
        assert status.media_width_mm == 62
        assert status.media_length_mm == 0
        assert status.media_type == MediaType.CONTINUOUS
        assert status.status_type == StatusType.REPLY
        assert status.phase == Phase.RECEIVING
        assert len(status.raw) == 32

    def test_die_cut_labels(self):
        status = decode_status(make_status(width_mm=29, length_mm=90).encode())
        assert status.media_type == MediaType.DIE_CUT
        assert status.media.identifier == "29x90"

    def test_unknown_media(self):
        status = decode_status(make_status(width_mm=77, length_mm=13).encode())
        assert status.media is None

    def test_unknown_media_type_byte(self):
        assert decode_status(reply(media_type=0x42)).media_type == MediaType.UNKNOWN

    def test_unknown_status_type(self):
        assert decode_status(reply(status_type=0x33)).status_type == StatusType.UNKNOWN

    @pytest.mark.parametrize(
        "phase_type,notification,expected",
        [
            (0x00, 0x00, Phase.RECEIVING),
            (0x01, 0x00, Phase.PRINTING),
            (0x01, 0x03, Phase.COOLING),
            (0x07, 0x00, Phase.UNKNOWN),
        ],
    )
    def test_phase(self, phase_type, notification, expected):
        data = reply(phase_type=phase_type, notification=notification)
        assert decode_status(data).phase == expected

    def test_trailing_bytes_ignored(self):
        status = decode_status(make_status().encode() + b"\xff" * 8)
        assert len(status.raw) == 32


class TestErrorBits:
    """Error information bytes 1 and 2 map onto ErrorFlag."""

    @pytest.mark.parametrize(
        "offset,mask,flag",
        [
            ("error_information_1", 0x01, ErrorFlag.NO_MEDIA),
            ("error_information_1", 0x02, ErrorFlag.END_OF_MEDIA),
            ("error_information_1", 0x04, ErrorFlag.PAPER_JAM),
            ("error_information_1", 0x10, ErrorFlag.PRINTER_IN_USE),
            ("error_information_1", 0x80, ErrorFlag.UNRECOVERABLE),
            ("error_information_2", 0x04, ErrorFlag.TRANSMISSION_ERROR),
            ("error_information_2", 0x10, ErrorFlag.COVER_OPEN),
            ("error_information_2", 0x40, ErrorFlag.PAPER_JAM),
            ("error_information_2", 0x80, ErrorFlag.UNRECOVERABLE),
        ],
    )
    def test_documented_bits(self, offset, mask, flag):
        status = decode_status(reply(**{offset: mask}))
        assert status.error_flags == flag
        assert not status.ok

    @pytest.mark.parametrize(
        "offset,mask",
        [
            ("error_information_1", 0x08),
            ("error_information_1", 0x20),
            ("error_information_1", 0x40),
            ("error_information_2", 0x01),
            ("error_information_2", 0x02),
            ("error_information_2", 0x08),
            ("error_information_2", 0x20),
        ],
    )
    def test_unmapped_bits_are_unrecognized(self, offset, mask):
        assert decode_status(reply(**{offset: mask})).error_flags == ErrorFlag.UNRECOGNIZED

    @staticmethod
    def expected_flags(byte, documented, unmapped):
        flags = ErrorFlag.NONE
        for mask, flag in documented:
            if byte & mask:
                flags |= flag
        if byte & unmapped:
            flags |= ErrorFlag.UNRECOGNIZED
        return flags

    @pytest.mark.parametrize("byte1", range(256))
    def test_every_combination_of_error_bytes(self, byte1):
        flags1 = self.expected_flags(byte1, [
            (0x01, ErrorFlag.NO_MEDIA),
            (0x02, ErrorFlag.END_OF_MEDIA),
            (0x04, ErrorFlag.PAPER_JAM),
            (0x10, ErrorFlag.PRINTER_IN_USE),
            (0x80, ErrorFlag.UNRECOVERABLE),
        ], unmapped=0x68)

        for byte2 in range(256):
            flags2 = self.expected_flags(byte2, [
                (0x04, ErrorFlag.TRANSMISSION_ERROR),
                (0x10, ErrorFlag.COVER_OPEN),
                (0x40, ErrorFlag.PAPER_JAM),
                (0x80, ErrorFlag.UNRECOVERABLE),
            ], unmapped=0x2B)

            status = decode_status(reply(error_information_1=byte1, error_information_2=byte2))
            assert status.error_flags == flags1 | flags2, (hex(byte1), hex(byte2))

    def test_several_errors(self):
        status = decode_status(reply(error_information_1=0x01, error_information_2=0x10))
        assert status.error_flags == ErrorFlag.NO_MEDIA | ErrorFlag.COVER_OPEN

    @pytest.mark.parametrize(
        "flags",
        [
            ErrorFlag.COVER_OPEN,
            ErrorFlag.NO_MEDIA | ErrorFlag.END_OF_MEDIA,
            ErrorFlag.PAPER_JAM | ErrorFlag.TRANSMISSION_ERROR | ErrorFlag.UNRECOGNIZED,
            ErrorFlag(0xFF),
        ],
    )
    def test_encoded_flags_survive_parsing(self, flags):
        assert decode_status(make_status(flags).encode()).error_flags == flags

    def test_describe(self):
        assert ErrorFlag.NONE.describe() == "none"
        assert ErrorFlag.COVER_OPEN.describe() == "cover open"
        assert (ErrorFlag.NO_MEDIA | ErrorFlag.PAPER_JAM).describe() == "no media, paper jam"


class TestMalformedStatus:
    @pytest.mark.parametrize("length", [0, 1, 31])
    def test_short_reply(self, length):
        data = make_status().encode()[:length]
        with pytest.raises(MalformedStatus, match="expected 32") as exc_info:
            decode_status(data)
        assert exc_info.value.raw == data

    def test_bad_mark(self):
        with pytest.raises(MalformedStatus, match="header"):
            decode_status(reply(print_head_mark=0x00))

    def test_bad_size(self):
        with pytest.raises(MalformedStatus, match="header"):
            decode_status(reply(size=0x10))

    def test_parse_equals_decode(self):
        data = make_status(ErrorFlag.END_OF_MEDIA).encode()
        assert StatusFrame.parse(data) == decode_status(data)


def test_str_mentions_errors():
    text = str(make_status(ErrorFlag.COVER_OPEN))
    assert "62x0mm continuous" in text
    assert "cover open" in text
