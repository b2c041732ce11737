import socket
import struct
import unittest
import zlib

from config import AgentConfig
from hep_encoder import Chunk, HEPEncoder
from hep_errors import (EncodeError, FieldRangeError, FrameTooLargeError, InvalidAddressError,
                        UnsupportedFamilyError, UnsupportedVersionError)
from hep_types import AF_INET, AF_INET6, IPPROTO_TCP, IPPROTO_UDP, ChunkType, ConnectionInfo, PayloadType


INVITE = b"INVITE sip:a@b SIP/2.0\r\n"

STANDARD_ORDER_V4 = [0x0001, 0x0002, 0x0003, 0x0004, 0x0007, 0x0008,
                     0x0009, 0x000a, 0x000b, 0x000c, 0x000f]


def parse_hep3(frame):
    """
    Reference HEP v3 parser used to check encoder output.

    Returns:
        tuple: (magic, total_length, [(vendor_id, type_id, declared_length, payload), ...])
    """
    magic, total_length = struct.unpack('!4sH', frame[:6])
    chunks = []
    offset = 6
    while offset < len(frame):
        vendor_id, type_id, length = struct.unpack('!HHH', frame[offset:offset + 6])
        if length < 6 or offset + length > len(frame):
            raise ValueError(f"Bad chunk length {length} at offset {offset}")
        chunks.append((vendor_id, type_id, length, frame[offset + 6:offset + length]))
        offset += length
    return magic, total_length, chunks


def decode_connection_info(chunks):
    """Rebuild a ConnectionInfo and payload from parsed v3 chunks."""
    fields = {type_id: payload for _, type_id, _, payload in chunks}
    family = fields[ChunkType.IP_FAMILY][0]
    if ChunkType.SRC_IP6 in fields:
        src_ip = socket.inet_ntop(socket.AF_INET6, fields[ChunkType.SRC_IP6])
        dst_ip = socket.inet_ntop(socket.AF_INET6, fields[ChunkType.DST_IP6])
    else:
        src_ip = socket.inet_ntop(socket.AF_INET, fields[ChunkType.SRC_IP4])
        dst_ip = socket.inet_ntop(socket.AF_INET, fields[ChunkType.DST_IP4])

    info = ConnectionInfo(
        ip_family=family,
        ip_proto=fields[ChunkType.IP_PROTO][0],
        src_ip=src_ip,
        dst_ip=dst_ip,
        src_port=struct.unpack('!H', fields[ChunkType.SRC_PORT])[0],
        dst_port=struct.unpack('!H', fields[ChunkType.DST_PORT])[0],
        time_sec=struct.unpack('!I', fields[ChunkType.TIME_SEC])[0],
        time_usec=struct.unpack('!I', fields[ChunkType.TIME_USEC])[0],
        proto_type=fields[ChunkType.PROTO_TYPE][0]
    )
    capture_id = struct.unpack('!I', fields[ChunkType.CAPTURE_ID])[0]
    payload = fields.get(ChunkType.PAYLOAD, fields.get(ChunkType.COMPRESSED_PAYLOAD))
    return info, capture_id, payload


def ipv4_info(**changes):
    values = dict(
        ip_family=AF_INET,
        ip_proto=IPPROTO_UDP,
        src_ip="192.168.1.1",
        dst_ip="192.168.1.2",
        src_port=5060,
        dst_port=5060,
        time_sec=1700000000,
        time_usec=123456,
        proto_type=PayloadType.SIP
    )
    values.update(changes)
    return ConnectionInfo(**values)


def ipv6_info(**changes):
    values = dict(ip_family=AF_INET6, src_ip="2001:db8::1", dst_ip="2001:db8::2")
    values.update(changes)
    return ipv4_info(**values)


class TestChunk(unittest.TestCase):
    def test_length_is_header_plus_payload(self):
        chunk = Chunk(ChunkType.PAYLOAD, b"abc")
        self.assertEqual(chunk.length, 9)
        self.assertEqual(chunk.to_bytes(), b'\x00\x00\x00\x0f\x00\x09abc')

    def test_integer_chunks_are_big_endian(self):
        self.assertEqual(Chunk.uint16(ChunkType.SRC_PORT, 5060, "src_port").payload, b'\x13\xc4')
        self.assertEqual(Chunk.uint32(ChunkType.CAPTURE_ID, 101, "capture_id").payload, b'\x00\x00\x00\x65')
        self.assertEqual(Chunk.uint8(ChunkType.IP_PROTO, 17, "ip_proto").length, 7)

    def test_out_of_range_integers(self):
        with self.assertRaises(FieldRangeError):
            Chunk.uint8(ChunkType.IP_PROTO, 256, "ip_proto")
        with self.assertRaises(FieldRangeError):
            Chunk.uint16(ChunkType.SRC_PORT, -1, "src_port")
        with self.assertRaises(FieldRangeError):
            Chunk.uint32(ChunkType.TIME_SEC, 1 << 32, "time_sec")
        with self.assertRaises(FieldRangeError):
            Chunk.uint16(ChunkType.SRC_PORT, "5060", "src_port")


class TestHEPv3Encoder(unittest.TestCase):
    def setUp(self):
        self.config = AgentConfig(version=3, compress=False, password=None, capture_id=101)

    def test_scenario_invite_length(self):
        frame = HEPEncoder.encode(self.config, ipv4_info(), INVITE)

        self.assertEqual(len(INVITE), 24)
        self.assertEqual(frame[:4], b'HEP3')
        self.assertEqual(frame[:4], bytes([0x48, 0x45, 0x50, 0x33]))
        self.assertEqual(struct.unpack('!H', frame[4:6])[0], 123)
        self.assertEqual(len(frame), 123)

    def test_declared_length_matches_actual_length(self):
        configs = [self.config, self.config.replace(password="secret")]
        infos = [ipv4_info(), ipv6_info()]
        payloads = [b"", INVITE, b"x" * 4000]
        for config in configs:
            for info in infos:
                for payload in payloads:
                    frame = HEPEncoder.encode(config, info, payload)
                    magic, total_length, chunks = parse_hep3(frame)
                    self.assertEqual(magic, b'HEP3')
                    self.assertEqual(total_length, len(frame))
                    self.assertEqual(total_length - 6, sum(c[2] for c in chunks))

    def test_chunk_order_without_auth(self):
        _, _, chunks = parse_hep3(HEPEncoder.encode(self.config, ipv4_info(), INVITE))
        self.assertEqual([c[1] for c in chunks], STANDARD_ORDER_V4)
        self.assertTrue(all(c[0] == 0 for c in chunks))

    def test_auth_chunk_before_payload(self):
        config = self.config.replace(password="secret")
        _, _, chunks = parse_hep3(HEPEncoder.encode(config, ipv4_info(), INVITE))

        expected = STANDARD_ORDER_V4[:-1] + [0x000e, 0x000f]
        self.assertEqual([c[1] for c in chunks], expected)
        self.assertEqual(chunks[-2][3], b"secret")
        self.assertEqual(chunks[-2][2], 12)

    def test_password_adds_exactly_its_chunk(self):
        plain = HEPEncoder.encode(self.config, ipv4_info(), INVITE)
        authed = HEPEncoder.encode(self.config.replace(password="secret"), ipv4_info(), INVITE)

        self.assertEqual(len(authed) - len(plain), 6 + 6)
        self.assertEqual(struct.unpack('!H', authed[4:6])[0], 123 + 12)

    def test_non_ascii_password_uses_utf8_length(self):
        config = self.config.replace(password="pässwörd")
        _, total_length, chunks = parse_hep3(HEPEncoder.encode(config, ipv4_info(), INVITE))

        auth = [c for c in chunks if c[1] == ChunkType.AUTH_KEY][0]
        self.assertEqual(auth[3], "pässwörd".encode('utf-8'))
        self.assertEqual(auth[2], 6 + 10)
        self.assertEqual(total_length, 123 + 16)

    def test_empty_password_still_sends_auth_chunk(self):
        config = self.config.replace(password="")
        _, _, chunks = parse_hep3(HEPEncoder.encode(config, ipv4_info(), INVITE))
        self.assertEqual(chunks[-2][1:3], (ChunkType.AUTH_KEY, 6))

    def test_ipv4_address_chunks(self):
        _, _, chunks = parse_hep3(HEPEncoder.encode(self.config, ipv4_info(), INVITE))
        self.assertEqual(chunks[2][1:], (0x0003, 10, b'\xc0\xa8\x01\x01'))
        self.assertEqual(chunks[3][1:], (0x0004, 10, b'\xc0\xa8\x01\x02'))

    def test_ipv6_address_chunks(self):
        frame = HEPEncoder.encode(self.config, ipv6_info(), INVITE)
        _, total_length, chunks = parse_hep3(frame)

        self.assertEqual(chunks[2][1:3], (0x0005, 22))
        self.assertEqual(chunks[3][1:3], (0x0006, 22))
        self.assertEqual(len(chunks[2][3]), 16)
        self.assertEqual(total_length, 123 + 2 * 12)

    def test_roundtrip_through_reference_parser(self):
        for info in [ipv4_info(), ipv6_info(ip_proto=IPPROTO_TCP, src_port=40000, dst_port=5061,
                                            proto_type=PayloadType.RTCP)]:
            frame = HEPEncoder.encode(self.config.replace(capture_id=0xDEADBEEF), info, INVITE)
            _, _, chunks = parse_hep3(frame)
            decoded, capture_id, payload = decode_connection_info(chunks)

            self.assertEqual(decoded, info)
            self.assertEqual(capture_id, 0xDEADBEEF)
            self.assertEqual(payload, INVITE)

    def test_encoding_is_deterministic(self):
        config = self.config.replace(password="secret")
        self.assertEqual(HEPEncoder.encode(config, ipv6_info(), INVITE),
                         HEPEncoder.encode(config, ipv6_info(), INVITE))

    def test_compressed_payload_chunk_type(self):
        compressed = zlib.compress(INVITE)
        frame = HEPEncoder.encode(self.config, ipv4_info(), compressed, is_compressed=True)
        _, total_length, chunks = parse_hep3(frame)

        self.assertEqual(chunks[-1][1], 0x0010)
        self.assertEqual(zlib.decompress(chunks[-1][3]), INVITE)
        self.assertEqual(total_length, 6 + 87 + 6 + len(compressed))

    def test_proto_type_is_opaque_byte(self):
        _, _, chunks = parse_hep3(HEPEncoder.encode(self.config, ipv4_info(proto_type=200), INVITE))
        self.assertEqual(chunks[8][3], b'\xc8')

    def test_frame_too_large(self):
        with self.assertRaises(FrameTooLargeError):
            HEPEncoder.encode(self.config, ipv4_info(), b"x" * 65500)

    def test_largest_payload_that_fits(self):
        payload = b"x" * (0xFFFF - 123 + len(INVITE))
        frame = HEPEncoder.encode(self.config, ipv4_info(), payload)
        self.assertEqual(len(frame), 0xFFFF)


class TestHEPv2Encoder(unittest.TestCase):
    def setUp(self):
        self.config = AgentConfig(version=2, capture_id=101)

    def test_ipv4_layout(self):
        frame = HEPEncoder.encode(self.config, ipv4_info(), INVITE)

        self.assertEqual(len(frame), 8 + 8 + 10 + len(INVITE))
        self.assertEqual(len(frame), 50)
        version, header_len, family, proto, src_port, dst_port = struct.unpack('!BBBBHH', frame[:8])
        self.assertEqual((version, header_len, family, proto), (2, 16, AF_INET, IPPROTO_UDP))
        self.assertEqual((src_port, dst_port), (5060, 5060))
        self.assertEqual(frame[8:16], b'\xc0\xa8\x01\x01\xc0\xa8\x01\x02')

        time_sec, time_usec, capture_id = struct.unpack('!IIH', frame[16:26])
        self.assertEqual((time_sec, time_usec, capture_id), (1700000000, 123456, 101))
        self.assertEqual(frame[26:], INVITE)

    def test_ipv6_header_length(self):
        frame = HEPEncoder.encode(self.config, ipv6_info(), INVITE)
        self.assertEqual(frame[1], 40)
        self.assertEqual(len(frame), 8 + 32 + 10 + len(INVITE))

    def test_capture_id_truncated_to_16_bits(self):
        frame = HEPEncoder.encode(self.config.replace(capture_id=0x12345678), ipv4_info(), INVITE)
        self.assertEqual(struct.unpack('!H', frame[24:26])[0], 0x5678)

    def test_password_and_compression_flag_ignored(self):
        config = self.config.replace(password="secret", compress=True)
        frame = HEPEncoder.encode(config, ipv4_info(), INVITE)
        self.assertEqual(frame, HEPEncoder.encode(self.config, ipv4_info(), INVITE))
        self.assertTrue(frame.endswith(INVITE))

    def test_version_1_has_no_trailer(self):
        frame = HEPEncoder.encode(AgentConfig(version=1), ipv4_info(), INVITE)
        self.assertEqual(frame[0], 1)
        self.assertEqual(frame[1], 16)
        self.assertEqual(len(frame), 8 + 8 + len(INVITE))
        self.assertEqual(frame[16:], INVITE)


class TestEncoderErrors(unittest.TestCase):
    def test_unsupported_versions(self):
        for version in (0, 4, 99):
            with self.assertRaises(UnsupportedVersionError):
                HEPEncoder.encode(AgentConfig(version=version), ipv4_info(), INVITE)

    def test_family_address_mismatch(self):
        for version in (2, 3):
            with self.assertRaises(InvalidAddressError):
                HEPEncoder.encode(AgentConfig(version=version), ipv4_info(dst_ip="2001:db8::2"), INVITE)
            with self.assertRaises(InvalidAddressError):
                HEPEncoder.encode(AgentConfig(version=version), ipv6_info(src_ip="10.0.0.1"), INVITE)

    def test_unsupported_family(self):
        for version in (2, 3):
            with self.assertRaises(UnsupportedFamilyError):
                HEPEncoder.encode(AgentConfig(version=version), ipv4_info(ip_family=10), INVITE)

    def test_field_out_of_range(self):
        with self.assertRaises(FieldRangeError):
            HEPEncoder.encode(AgentConfig(), ipv4_info(src_port=70000), INVITE)
        with self.assertRaises(FieldRangeError):
            HEPEncoder.encode(AgentConfig(capture_id=1 << 32), ipv4_info(), INVITE)
        with self.assertRaises(FieldRangeError):
            HEPEncoder.encode(AgentConfig(version=2), ipv4_info(time_sec=-1), INVITE)

    def test_unencodable_password(self):
        with self.assertRaises(EncodeError):
            HEPEncoder.encode(AgentConfig(password="\udcff"), ipv4_info(), INVITE)
        with self.assertRaises(EncodeError):
            HEPEncoder.encode(AgentConfig(password=1234), ipv4_info(), INVITE)

    def test_unencodable_password_ignored_by_v2(self):
        frame = HEPEncoder.encode(AgentConfig(version=2, password="\udcff"), ipv4_info(), INVITE)
        self.assertTrue(frame.endswith(INVITE))


class TestConnectionInfo(unittest.TestCase):
    def test_create_infers_family_and_time(self):
        info = ConnectionInfo.create("2001:db8::1", 5060, "2001:db8::2", 5060, timestamp=1700000000.25)
        self.assertEqual(info.ip_family, AF_INET6)
        self.assertTrue(info.is_ipv6)
        self.assertEqual(info.time_sec, 1700000000)
        self.assertEqual(info.time_usec, 250000)
        self.assertEqual(info.ip_proto, IPPROTO_UDP)
        self.assertEqual(info.proto_type, PayloadType.SIP)

        info = ConnectionInfo.create("10.0.0.1", 5060, "10.0.0.2", 5060)
        self.assertEqual(info.ip_family, AF_INET)
        self.assertGreater(info.time_sec, 0)

    def test_create_rejects_non_literal_without_family(self):
        with self.assertRaises(ValueError):
            ConnectionInfo.create("sip.example.com", 5060, "10.0.0.2", 5060)

    def test_create_keeps_microseconds_exact(self):
        info = ConnectionInfo.create("10.0.0.1", 5060, "10.0.0.2", 5060, timestamp=1700000000.1)
        self.assertEqual((info.time_sec, info.time_usec), (1700000000, 100000))

        info = ConnectionInfo.create("10.0.0.1", 5060, "10.0.0.2", 5060, timestamp=1700000000.9999999)
        self.assertEqual((info.time_sec, info.time_usec), (1700000001, 0))

        info = ConnectionInfo.create("10.0.0.1", 5060, "10.0.0.2", 5060, timestamp=1700000000)
        self.assertEqual((info.time_sec, info.time_usec), (1700000000, 0))


if __name__ == '__main__':
    unittest.main()
