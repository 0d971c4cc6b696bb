from struct import unpack

import pytest

from synpack.checksum import verify
from synpack.packet import (ACK, FRAME_LEN, RST, SYN, EndpointAddress,
                            build_ipv4_header, build_rst_frame,
                            build_syn_frame, build_tcp_header, parse_frame,
                            pseudo_header)

SRC = EndpointAddress("192.168.1.10", 50000)
DST = EndpointAddress("93.184.216.34", 80)


def _reference_checksum(data: bytes) -> int:
    if len(data) % 2:
        data += b"\x00"
    total = sum(unpack("!%dH" % (len(data) // 2), data))
    while total > 0xFFFF:
        total = (total & 0xFFFF) + (total >> 16)
    return 0xFFFF - total


def test_ipv4_header_matches_reference():
    header = build_ipv4_header(SRC.ip, DST.ip)
    assert header == bytes.fromhex("450000280000400040064343c0a8010a5db8d822")
    assert verify(header)


def test_ipv4_total_length_includes_payload():
    header = build_ipv4_header(SRC.ip, DST.ip, payload_length=32)
    assert unpack("!H", header[2:4])[0] == 52
    assert verify(header)


def test_syn_header_layout():
    header = build_tcp_header(SRC, DST, 1000)

    fields = unpack("!HHLLBBHHH", header)
    assert len(header) == 20
    assert fields[0] == 50000
    assert fields[1] == 80
    assert fields[2] == 1000
    assert fields[3] == 0
    assert fields[4] == 0x50
    assert fields[5] == SYN
    assert fields[6] == 29200
    assert fields[8] == 0


def test_syn_checksum_matches_independent_computation():
    header = build_tcp_header(SRC, DST, 1000)
    zeroed = header[:16] + b"\x00\x00" + header[16 + 2:]
    pseudo = bytes.fromhex("c0a8010a5db8d82200060014")

    expected = _reference_checksum(pseudo + zeroed)
    assert unpack("!H", header[16:18])[0] == expected == 0x7EBC
    assert verify(pseudo_header(SRC.ip, DST.ip, 20) + header)


def test_rst_frame_continues_exchange():
    """RST keeps our SYN sequence and acknowledges with the peer's ack."""
    frame = build_rst_frame(SRC, DST, seq=1000, ack=1001)
    tcp = frame[20:]
    fields = unpack("!HHLLBBHHH", tcp)

    assert len(frame) == FRAME_LEN
    assert fields[2] == 1000
    assert fields[3] == 1001
    assert fields[5] == RST
    assert verify(frame[:20])
    assert verify(pseudo_header(SRC.ip, DST.ip, 20) + tcp)


def test_syn_frame_parses_back():
    parsed = parse_frame(build_syn_frame(SRC, DST, 0xFFFFFFFF))

    assert parsed.src_ip == SRC.ip
    assert parsed.dst_ip == DST.ip
    assert (parsed.src_port, parsed.dst_port) == (50000, 80)
    assert parsed.seq == 0xFFFFFFFF
    assert parsed.flags == SYN
    assert parsed.length == FRAME_LEN


def test_parse_frame_rejects_short_or_broken_frames():
    frame = build_syn_frame(SRC, DST, 1)
    assert parse_frame(frame[:39]) is None

    broken_ihl = bytes([0x44]) + frame[1:]
    assert parse_frame(broken_ihl) is None


def test_parse_frame_honours_ip_options():
    frame = build_syn_frame(SRC, DST, 5)
    with_options = bytes([0x46]) + frame[1:20] + b"\x01\x01\x01\x00" + frame[20:]
    parsed = parse_frame(with_options)
    assert parsed.seq == 5
    assert parsed.dst_port == 80


def test_flags_are_combined():
    header = build_tcp_header(DST, SRC, 9, SYN | ACK, ack=1001)
    assert header[13] == 0x12


@pytest.mark.parametrize("ip", ["10.1", "300.1.1.1", "example.com", ""])
def test_endpoint_rejects_invalid_ipv4(ip):
    with pytest.raises(ValueError):
        EndpointAddress(ip, 80)


def test_endpoint_rejects_invalid_port():
    with pytest.raises(ValueError):
        EndpointAddress("10.0.0.1", 0)
    with pytest.raises(TypeError):
        EndpointAddress("10.0.0.1", "80")


def test_sequence_must_fit_32_bits():
    with pytest.raises(ValueError):
        build_tcp_header(SRC, DST, 1 << 32)
    with pytest.raises(ValueError):
        build_tcp_header(SRC, DST, 1, RST, ack=-1)
