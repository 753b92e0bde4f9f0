# A python module for Chaining of Proxies
# Copyright (C) 2023  acuifex
#
# This program is free software: you can redistribute it and/or modify
# it under the terms of the GNU Affero General Public License as published
# by the Free Software Foundation, either version 3 of the License, or
# (at your option) any later version.
#
# This program is distributed in the hope that it will be useful,
# but WITHOUT ANY WARRANTY; without even the implied warranty of
# MERCHANTABILITY or FITNESS FOR A PARTICULAR PURPOSE.  See the
# GNU Affero General Public License for more details.
#
# You should have received a copy of the GNU Affero General Public License
# along with this program.  If not, see <https://www.gnu.org/licenses/>.

"""SOCKS5 UDP relay frames (RFC 1928, section 7).

    +----+------+------+----------+----------+----------+
    |RSV | FRAG | ATYP | DST.ADDR | DST.PORT |   DATA   |
    +----+------+------+----------+----------+----------+
    | 2  |  1   |  1   | Variable |    2     | Variable |
    +----+------+------+----------+----------+----------+
"""
import struct

from .constants import Socks5HostType, SocksRemoteHost, SocksUDPFrameDetails
from .errors import InvalidInput, MalformedFrame
from .helpers import int32_to_ipv4, ip_to_bytes, ipv4_to_int32, is_ipv4, is_ipv6, bytes_to_ipv6

_HEADER = struct.Struct("!HBB")


def create_udp_frame(options: SocksUDPFrameDetails) -> bytes:
    host = options.remote_host.host
    port = options.remote_host.port
    frame_number = options.frame_number or 0
    if not 0 <= frame_number <= 255:
        raise InvalidInput("Frame number must be between 0 and 255: %r" % frame_number)
    if not 0 <= port <= 65535:
        raise InvalidInput("Port must be between 0 and 65535: %r" % port)
    frame = struct.pack("!HB", 0, frame_number)

    if is_ipv4(host):
        frame += struct.pack("!BI", Socks5HostType.IPv4, ipv4_to_int32(host))
    elif is_ipv6(host):
        frame += struct.pack("B", Socks5HostType.IPv6) + ip_to_bytes(host)
    else:
        encoded = host.encode("utf-8")
        if len(encoded) > 255:
            raise InvalidInput("Hostname is too long for a SOCKS5 UDP frame: %r" % host)
        frame += struct.pack("BB", Socks5HostType.Hostname, len(encoded)) + encoded

    return frame + struct.pack("!H", port) + bytes(options.data)


def parse_udp_frame(data: bytes) -> SocksUDPFrameDetails:
    data = bytes(data)
    if len(data) < _HEADER.size:
        raise MalformedFrame("UDP frame is too short (%d bytes)" % len(data))
    _, frame_number, host_type = _HEADER.unpack_from(data)

    offset = _HEADER.size
    if host_type == Socks5HostType.IPv4:
        needed = offset + 4 + 2
        if len(data) < needed:
            raise MalformedFrame("UDP frame is too short for an IPv4 address")
        host = int32_to_ipv4(struct.unpack_from("!I", data, offset)[0])
        offset += 4
    elif host_type == Socks5HostType.IPv6:
        needed = offset + 16 + 2
        if len(data) < needed:
            raise MalformedFrame("UDP frame is too short for an IPv6 address")
        host = bytes_to_ipv6(data[offset:offset + 16])
        offset += 16
    elif host_type == Socks5HostType.Hostname:
        if len(data) < offset + 1:
            raise MalformedFrame("UDP frame is too short for a hostname")
        length = data[offset]
        needed = offset + 1 + length + 2
        if len(data) < needed:
            raise MalformedFrame("UDP frame is too short for its hostname")
        try:
            host = data[offset + 1:offset + 1 + length].decode("utf-8")
        except UnicodeDecodeError:
            raise MalformedFrame("Invalid hostname in UDP frame") from None
        offset += 1 + length
    else:
        raise MalformedFrame("Unknown address type in UDP frame: 0x%02x" % host_type)

    port = struct.unpack_from("!H", data, offset)[0]
    return SocksUDPFrameDetails(
        remote_host=SocksRemoteHost(host, port),
        data=data[offset + 2:],
        frame_number=frame_number,
    )
