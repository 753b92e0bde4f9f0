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

"""
sockschain - SOCKS4/4a and SOCKS5 client connections for asyncio, with
support for BIND, UDP ASSOCIATE, custom SOCKS5 authentication and chaining
a connection through several proxies.
"""

from .chain import create_connection_chain, open_connection_chain
from .client import SocksClient, open_connection, open_streams
from .constants import (
    DEFAULT_TIMEOUT,
    ERRORS,
    Socks4Response,
    Socks5Auth,
    Socks5HostType,
    Socks5Response,
    SocksClientBoundEvent,
    SocksClientChainOptions,
    SocksClientEstablishedEvent,
    SocksClientOptions,
    SocksClientState,
    SocksCommand,
    SocksProxy,
    SocksRemoteHost,
    SocksUDPFrameDetails,
)
from .errors import InvalidInput, MalformedFrame, OutOfData, ProxyError, SocksClientError
from .events import EventEmitter
from .helpers import parse_proxy, proxy_from_environment
from .receive_buffer import ReceiveBuffer
from .udp import create_udp_frame, parse_udp_frame

__version__ = "1.0"
__all__ = [
    "SocksClient",
    "open_connection",
    "open_streams",
    "create_connection_chain",
    "open_connection_chain",
    "create_udp_frame",
    "parse_udp_frame",
    "parse_proxy",
    "proxy_from_environment",
    "ReceiveBuffer",
    "EventEmitter",
    "DEFAULT_TIMEOUT",
    "ERRORS",
    "Socks4Response",
    "Socks5Auth",
    "Socks5HostType",
    "Socks5Response",
    "SocksClientBoundEvent",
    "SocksClientChainOptions",
    "SocksClientEstablishedEvent",
    "SocksClientOptions",
    "SocksClientState",
    "SocksCommand",
    "SocksProxy",
    "SocksRemoteHost",
    "SocksUDPFrameDetails",
    "ProxyError",
    "SocksClientError",
    "InvalidInput",
    "OutOfData",
    "MalformedFrame",
]
