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

from dataclasses import dataclass
from enum import IntEnum
from typing import Any, Awaitable, Callable, Dict, List, Optional, Union

DEFAULT_TIMEOUT = 30000  # milliseconds
SOCKS5_CUSTOM_AUTH_START = 0x80
SOCKS5_CUSTOM_AUTH_END = 0xFE
SOCKS5_NO_ACCEPTABLE_AUTH = 0xFF
PROXY_DEFAULT_PORT = 1080


class SOCKS_INCOMING_PACKET_SIZES:
    Socks5InitialHandshakeResponse = 2
    Socks5UserPassAuthenticationResponse = 2
    Socks5ResponseHeader = 5
    Socks5ResponseIPv4 = 10
    Socks5ResponseIPv6 = 22
    Socks4Response = 8

    @staticmethod
    def Socks5ResponseHostname(host_name_length: int) -> int:
        return host_name_length + 7


ERRORS = {
    'InvalidSocksCommand': 'An invalid SOCKS command was provided. Valid options are connect, bind, and associate.',
    'InvalidSocksCommandForOperation': 'An invalid SOCKS command was provided. Only a subset of commands are supported for this operation.',
    'InvalidSocksCommandChain': 'An invalid SOCKS command was provided. Chaining currently only supports the connect command.',
    'InvalidSocksClientOptionsDestination': 'An invalid destination host was provided.',
    'InvalidSocksClientOptionsExistingSocket': 'An invalid existing socket was provided. This should be an instance of asyncio.BaseTransport.',
    'InvalidSocksClientOptionsProxy': 'Invalid SOCKS proxy details were provided.',
    'InvalidSocksClientOptionsTimeout': 'An invalid timeout value was provided. Please enter a value above 0 (in ms).',
    'InvalidSocksClientOptionsProxiesLength': 'At least two socks proxies must be provided for chaining.',
    'InvalidSocksClientOptionsCustomAuthRange': 'Custom auth must be a value between 0x80 and 0xFE.',
    'InvalidSocksClientOptionsCustomAuthOptions': 'When a custom_auth_method is provided, custom_auth_request_handler, custom_auth_response_size, and custom_auth_response_handler must also be provided and valid.',
    'NegotiationError': 'Negotiation error',
    'SocketClosed': 'Socket closed',
    'ProxyConnectionTimedOut': 'Proxy connection timed out',
    'InternalError': 'SocksClient internal error (this should not happen)',
    'InvalidSocks4HandshakeResponse': 'Received invalid Socks4 handshake response',
    'Socks4ProxyRejectedConnection': 'Socks4 Proxy rejected connection',
    'InvalidSocks4IncomingConnectionResponse': 'Socks4 invalid incoming connection response',
    'Socks4ProxyRejectedIncomingBoundConnection': 'Socks4 Proxy rejected incoming bound connection',
    'InvalidSocks5InitialHandshakeResponse': 'Received invalid Socks5 initial handshake response',
    'InvalidSocks5IntiailHandshakeSocksVersion': 'Received invalid Socks5 initial handshake (invalid socks version)',
    'InvalidSocks5InitialHandshakeNoAcceptedAuthType': 'Received invalid Socks5 initial handshake (no accepted authentication type)',
    'InvalidSocks5InitialHandshakeUnknownAuthType': 'Received invalid Socks5 initial handshake (unknown authentication type)',
    'Socks5AuthenticationFailed': 'Socks5 Authentication failed',
    'InvalidSocks5FinalHandshake': 'Received invalid Socks5 final handshake response',
    'InvalidSocks5FinalHandshakeRejected': 'Socks5 proxy rejected connection',
    'InvalidSocks5IncomingConnectionResponse': 'Received invalid Socks5 incoming connection response',
    'Socks5ProxyRejectedIncomingBoundConnection': 'Socks5 Proxy rejected incoming bound connection',
}


class SocksCommand(IntEnum):
    connect = 0x01
    bind = 0x02
    associate = 0x03


class Socks4Response(IntEnum):
    Granted = 0x5A
    Failed = 0x5B
    Rejected = 0x5C
    RejectedIdent = 0x5D


class Socks5Auth(IntEnum):
    NoAuth = 0x00
    GSSApi = 0x01
    UserPass = 0x02


class Socks5Response(IntEnum):
    Granted = 0x00
    Failure = 0x01
    NotAllowed = 0x02
    NetworkUnreachable = 0x03
    HostUnreachable = 0x04
    ConnectionRefused = 0x05
    TTLExpired = 0x06
    CommandNotSupported = 0x07
    AddressNotSupported = 0x08


class Socks5HostType(IntEnum):
    IPv4 = 0x01
    Hostname = 0x03
    IPv6 = 0x04


class SocksClientState(IntEnum):
    Created = 0
    Connecting = 1
    Connected = 2
    SentInitialHandshake = 3
    ReceivedInitialHandshakeResponse = 4
    SentAuthentication = 5
    ReceivedAuthenticationResponse = 6
    SentFinalHandshake = 7
    ReceivedFinalResponse = 8
    BoundWaitingForConnection = 9
    Established = 10
    Disconnected = 11
    Error = 99


@dataclass
class SocksRemoteHost:
    host: str = None
    port: int = 0


@dataclass
class SocksProxy:
    """A single SOCKS proxy server.

    host / ipaddress - The address of the server (IP or DNS). Only one of
            them is needed, they are treated the same way.
    port -        The port of the server.
    type -        4 (also used for 4a) or 5.
    user_id -     SOCKS4 userid, or the SOCKS5 username for
            username/password authentication.
    password -    SOCKS5 password for username/password authentication.
    custom_auth_method - An auth method code between 0x80 and 0xFE that is
            offered to a SOCKS5 server next to the standard ones. The three
            custom_auth_* callables below must be given along with it.
    """
    host: str = None
    ipaddress: str = None
    port: int = PROXY_DEFAULT_PORT
    type: int = 5
    user_id: str = None
    password: str = None
    custom_auth_method: int = None
    custom_auth_request_handler: Callable[[], Union[bytes, Awaitable[bytes]]] = None
    custom_auth_response_size: int = None
    custom_auth_response_handler: Callable[[bytes], Union[bool, Awaitable[bool]]] = None

    @property
    def address(self) -> str:
        return self.ipaddress or self.host


@dataclass
class SocksClientOptions:
    command: str
    destination: SocksRemoteHost
    proxy: SocksProxy
    timeout: int = DEFAULT_TIMEOUT
    # an asyncio transport to negotiate over instead of dialing the proxy
    existing_socket: Any = None
    set_tcp_nodelay: Optional[bool] = None
    # extra keyword arguments for loop.create_connection
    socket_options: Dict[str, Any] = None


@dataclass
class SocksClientChainOptions:
    destination: SocksRemoteHost
    proxies: List[SocksProxy]
    command: str = 'connect'
    timeout: int = DEFAULT_TIMEOUT
    randomize_chain: bool = False


@dataclass
class SocksClientEstablishedEvent:
    socket: Any
    remote_host: Optional[SocksRemoteHost] = None


SocksClientBoundEvent = SocksClientEstablishedEvent


@dataclass
class SocksUDPFrameDetails:
    remote_host: SocksRemoteHost
    data: bytes = b''
    frame_number: int = 0
