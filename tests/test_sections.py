"""Unit tests for the nest, node and channel section parsers."""

import pytest

import wire
from lwadvert.cursor import ByteCursor
from lwadvert.diagnostics import Diagnostics
from lwadvert.errors import (
    InvalidAdvertisementType,
    ProtocolViolation,
    Truncated,
    UnknownOpcode,
)
from lwadvert.header import Header
from lwadvert.model import Advertisement
from lwadvert.phrase import read_phrase
from lwadvert.sections import (
    interpret_quad,
    is_channel_marker,
    parse_channel_section,
    parse_nest,
    parse_node_section,
)


def _adv() -> Advertisement:
    return Advertisement(
        header=Header(wire.MAGIC, 1, b"\x00" * 8),
        protocol_version=2,
        advertisement_type=1,
    )


# ---------------------------------------------------------------------------
# Nest
# ---------------------------------------------------------------------------

class TestNest:
    def test_basic(self):
        cur = ByteCursor(wire.nest(version=2, adv_type=1, term=120))
        nest = parse_nest(cur, Diagnostics())
        assert nest.protocol_version == 2
        assert nest.advertisement_type == 1
        assert nest.declared_length == 120
        assert cur.at_end()

    def test_any_field_order(self):
        raw = (
            wire.u16("NEST", 0)
            + wire.u16("SEQH", 9)
            + wire.u8("ADVT", 2)
            + wire.u16("PVER", 2)
            + wire.u16("TERM", 0, tag=0x06)
        )
        nest = parse_nest(ByteCursor(raw), Diagnostics())
        assert nest.advertisement_type == 2
        assert nest.extras == {"SEQH": 9}

    def test_stops_after_term(self):
        cur = ByteCursor(wire.nest() + wire.u16("INDI", 0))
        parse_nest(cur, Diagnostics())
        assert cur.remaining() == len(wire.u16("INDI", 0))

    def test_must_start_with_nest(self):
        raw = wire.u16("PVER", 2) + wire.u8("ADVT", 1) + wire.u16("TERM", 0)
        with pytest.raises(ProtocolViolation, match="expected 'NEST'"):
            parse_nest(ByteCursor(raw), Diagnostics())

    @pytest.mark.parametrize("value", [0, 5, 255])
    def test_invalid_type(self, value):
        with pytest.raises(InvalidAdvertisementType) as excinfo:
            parse_nest(ByteCursor(wire.nest(adv_type=value)), Diagnostics())
        assert excinfo.value.value == value

    @pytest.mark.parametrize("value", [1, 2, 3, 4])
    def test_all_valid_types(self, value):
        nest = parse_nest(ByteCursor(wire.nest(adv_type=value)), Diagnostics())
        assert nest.advertisement_type == value

    def test_unknown_opcode(self):
        raw = wire.u16("NEST", 0) + wire.u16("ZZZZ", 1) + wire.nest()[7:]
        with pytest.raises(UnknownOpcode, match="'ZZZZ' in nest") as excinfo:
            parse_nest(ByteCursor(raw), Diagnostics())
        assert excinfo.value.section == "nest"

    def test_term_before_type(self):
        raw = wire.u16("NEST", 0) + wire.u16("PVER", 2) + wire.u16("TERM", 0)
        with pytest.raises(ProtocolViolation, match="reached before"):
            parse_nest(ByteCursor(raw), Diagnostics())

    def test_four_byte_term_is_a_length(self):
        raw = wire.u16("NEST", 0) + wire.u16("PVER", 2) + wire.u8("ADVT", 1) + wire.u32("TERM", 300)
        nest = parse_nest(ByteCursor(raw), Diagnostics())
        assert nest.declared_length == 300

    def test_text_term_rejected(self):
        raw = wire.u16("NEST", 0) + wire.u16("PVER", 2) + wire.u8("ADVT", 1) + wire.text("TERM", b"x")
        with pytest.raises(ProtocolViolation, match="expected an integer"):
            parse_nest(ByteCursor(raw), Diagnostics())

    def test_missing_term(self):
        raw = wire.u16("NEST", 0) + wire.u16("PVER", 2) + wire.u8("ADVT", 1)
        with pytest.raises(Truncated):
            parse_nest(ByteCursor(raw), Diagnostics())


# ---------------------------------------------------------------------------
# Node
# ---------------------------------------------------------------------------

class TestNodeSection:
    def _parse(self, raw: bytes) -> Advertisement:
        cur = ByteCursor(raw)
        indi = read_phrase(cur)
        adv = _adv()
        parse_node_section(indi.operand, cur, adv, Diagnostics())
        assert cur.at_end()
        return adv

    def test_fields(self):
        adv = self._parse(wire.node(0x98, b"Node\x00junk", "192.168.2.21", 8))
        assert adv.sequence_number == 0x98
        assert adv.node_name == "Node"
        assert adv.node_address == "192.168.2.21"
        assert adv.udp_port == 4001
        assert adv.hardware_id_suffix == 0x1A2B
        assert adv.declared_source_count == 8

    def test_opaque_field_kept(self):
        adv = self._parse(wire.section(wire.block("rsvd"), wire.text("atrn", b"N")))
        assert adv.node_extras == {"rsvd": b"\x00" * 8}
        assert adv.node_name == "N"

    def test_reads_exactly_count(self):
        raw = wire.section(wire.u32("advv", 1)) + wire.u16("S001", 0, tag=0x06)
        cur = ByteCursor(raw)
        indi = read_phrase(cur)
        parse_node_section(indi.operand, cur, _adv(), Diagnostics())
        assert read_phrase(cur).opcode == "S001"

    def test_unknown_opcode(self):
        with pytest.raises(UnknownOpcode, match="in node section"):
            self._parse(wire.section(wire.u16("xxxx", 1)))

    def test_wrong_operand_type(self):
        with pytest.raises(ProtocolViolation, match="expected text"):
            self._parse(wire.section(wire.u16("atrn", 1)))

    def test_address_must_be_quad(self):
        with pytest.raises(ProtocolViolation, match="expected an address"):
            self._parse(wire.section(wire.text("inip", b"1.2.3.4")))

    def test_count_overshoots_buffer(self):
        raw = wire.u16("INDI", 3) + wire.u32("advv", 1)
        with pytest.raises(Truncated):
            self._parse(raw)


# ---------------------------------------------------------------------------
# Channel
# ---------------------------------------------------------------------------

class TestChannelSection:
    def _parse(self, raw: bytes):
        cur = ByteCursor(raw)
        marker = read_phrase(cur)
        channel = parse_channel_section(marker, cur, Diagnostics())
        return channel, cur

    def test_fields(self):
        channel, cur = self._parse(wire.channel(
            "S004",
            wire.u32("psid", 6031),
            wire.text("psnm", b"MIC 1\x00\xff\xff"),
            wire.ip("fsid", "239.192.23.143"),
            wire.ip("bsid", "239.193.23.143"),
            wire.u8("shbl", 1),
        ))
        assert cur.at_end()
        assert channel.number == 4
        assert channel.livewire_channel == 6031
        assert channel.presentation_name == "MIC 1"
        assert channel.from_source == "239.192.23.143"
        assert channel.backfeed == "239.193.23.143"
        assert channel.shareable is True
        assert channel.declared_length == 0
        assert channel.extras == {}

    def test_unexplained_flags_preserved(self):
        channel, _ = self._parse(wire.channel(
            "S001",
            wire.u8("fsty", 2, tag=0x00),
            wire.u8("bsty", 0),
            wire.u32("lsid", 32767),
            wire.quad("styp", b"LWRP"),
            wire.u16("pscf", 0x0102),
        ))
        assert channel.extras == {
            "fsty": 2,
            "bsty": 0,
            "lsid": 32767,
            "styp": "LWRP",
            "pscf": 0x0102,
        }

    def test_shareable_defaults_false(self):
        channel, _ = self._parse(wire.channel("S001", wire.u32("psid", 1)))
        assert channel.shareable is False

    def test_four_byte_marker_is_a_length(self):
        raw = wire.u32("S002", 44) + wire.section(wire.u32("psid", 1))
        channel, cur = self._parse(raw)
        assert cur.at_end()
        assert channel.number == 2
        assert channel.declared_length == 44

    def test_must_open_with_indi(self):
        raw = wire.u16("S001", 0, tag=0x06) + wire.u32("psid", 1)
        with pytest.raises(ProtocolViolation, match="must open with 'INDI'"):
            self._parse(raw)

    def test_unknown_opcode(self):
        with pytest.raises(UnknownOpcode, match="in channel section"):
            self._parse(wire.channel("S001", wire.u8("wxyz", 1)))


class TestHelpers:
    @pytest.mark.parametrize("opcode", ["S001", "s999", "X123"])
    def test_channel_markers(self, opcode):
        assert is_channel_marker(opcode)

    @pytest.mark.parametrize("opcode", ["INDI", "S01a", "1001", "SS01", "S\x0012"])
    def test_not_channel_markers(self, opcode):
        assert not is_channel_marker(opcode)

    def test_quad_interpretation_by_opcode(self):
        raw = b"\x00\x00\x17\x8f"
        for opcode, expected in [
            ("psid", 6031),
            ("advv", 6031),
            ("lsid", 6031),
            ("fsid", "0.0.23.143"),
            ("inip", "0.0.23.143"),
        ]:
            phrase = read_phrase(ByteCursor(wire.quad(opcode, raw)))
            assert interpret_quad(phrase) == expected

    def test_non_quad_untouched(self):
        phrase = read_phrase(ByteCursor(wire.u16("psid", 7)))
        assert interpret_quad(phrase) == 7
