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

import asyncio
import dataclasses
import inspect
import logging
import socket
import struct

from . import udp
from .constants import (
    DEFAULT_TIMEOUT,
    ERRORS,
    SOCKS5_NO_ACCEPTABLE_AUTH,
    SOCKS_INCOMING_PACKET_SIZES,
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
    SocksRemoteHost,
)
from .errors import SocksClientError
from .events import EventEmitter
from .helpers import (
    bytes_to_ipv6,
    int32_to_ipv4,
    ip_to_bytes,
    is_ipv4,
    is_ipv6,
    validate_socks_client_options,
)
from .receive_buffer import ReceiveBuffer

log = logging.getLogger(__name__)


def _pascal_encode(s: str) -> bytes:
    data = s.encode("utf-8")
    length = len(data) if len(data) <= 255 else 255  # this will cut the rest.
    return struct.pack("B%ds" % length, length, data)


def _response_name(responses, code: int) -> str:
    try:
        return responses(code).name
    except ValueError:
        return "0x%02x" % code


async def _resolve(value):
    if inspect.isawaitable(value):
        return await value
    return value


def open_streams(transport: asyncio.Transport, limit: int = 2 ** 16):
    """open_streams(transport) -> (reader, writer)
    Takes over a promoted transport the same way asyncio.open_connection
    sets up a fresh one.
    """
    loop = asyncio.get_running_loop()
    reader = asyncio.StreamReader(limit=limit, loop=loop)
    protocol = asyncio.StreamReaderProtocol(reader, loop=loop)
    transport.set_protocol(protocol)
    protocol.connection_made(transport)
    writer = asyncio.StreamWriter(transport, protocol, reader, loop)
    return reader, writer


class _HandshakeProtocol(asyncio.Protocol):
    """Routes transport callbacks to the SocksClient negotiating over it
    until detach() hands the transport over to someone else."""

    def __init__(self, on_connect, on_data, on_close):
        self.__on_connect = on_connect
        self.__on_data = on_data
        self.__on_close = on_close

    def detach(self):
        self.__on_connect = self.__on_data = self.__on_close = None

    def connection_made(self, transport):
        if self.__on_connect is not None:
            self.__on_connect(transport)

    def data_received(self, data):
        if self.__on_data is not None:
            self.__on_data(data)

    def connection_lost(self, exc):
        if self.__on_close is not None:
            self.__on_close(exc)


class SocksClient(EventEmitter):
    """SocksClient(options) -> client
    Negotiates one SOCKS4/4a or SOCKS5 connection and reports the outcome
    through events:
        'established' (SocksClientEstablishedEvent) - the transport is ours
                to use, the handshake no longer listens on it.
        'bound' (SocksClientBoundEvent) - BIND only, the proxy is waiting for
                the remote peer. 'established' follows once it connects.
        'error' (SocksClientError) - fired at most once, the transport has
                been aborted.
    """

    create_udp_frame = staticmethod(udp.create_udp_frame)
    parse_udp_frame = staticmethod(udp.parse_udp_frame)

    def __init__(self, options: SocksClientOptions):
        super().__init__()
        validate_socks_client_options(options)
        self.__options = dataclasses.replace(options)

        self.__state = None
        self.__socket = None
        self.__protocol = None
        self.__receive_buffer = None
        self.__next_required_packet_buffer_size = None
        self.__socks5_offered_auth_types = ()
        self.__socks5_chosen_auth_type = None
        self.__suspended = False
        self.__timer = None
        self.__connect_task = None
        self.__tasks = set()
        self.__set_state(SocksClientState.Created)

    @staticmethod
    async def create_connection(options: SocksClientOptions) -> SocksClientEstablishedEvent:
        """create_connection(options) -> SocksClientEstablishedEvent
        Connects through the proxy with the CONNECT command.
        Raises SocksClientError if that fails.
        """
        validate_socks_client_options(options, ['connect'])

        result = asyncio.get_running_loop().create_future()
        client = SocksClient(options)

        def on_established(info):
            client.remove_all_listeners()
            if not result.done():
                result.set_result(info)

        def on_error(err):
            client.remove_all_listeners()
            if not result.done():
                result.set_exception(err)

        client.once('established', on_established)
        client.once('error', on_error)
        client.connect(options.existing_socket)
        return await result

    @staticmethod
    async def create_connection_chain(options: SocksClientChainOptions) -> SocksClientEstablishedEvent:
        """create_connection_chain(options) -> SocksClientEstablishedEvent
        See sockschain.chain.create_connection_chain.
        """
        from .chain import create_connection_chain
        return await create_connection_chain(options)

    @property
    def state(self) -> SocksClientState:
        return self.__state

    @property
    def socks_client_options(self) -> SocksClientOptions:
        return dataclasses.replace(self.__options)

    def __set_state(self, new_state: SocksClientState):
        if self.__state != SocksClientState.Error:
            self.__state = new_state

    def connect(self, existing_socket: asyncio.BaseTransport = None):
        """connect([existing_socket])
        Starts the negotiation. Without existing_socket the proxy is dialed
        first, otherwise the handshake is sent over the given transport.
        Must be called with a running event loop.
        """
        loop = asyncio.get_running_loop()
        self.__protocol = _HandshakeProtocol(self.__on_connect, self.__on_data_received, self.__on_close)

        self.__timer = loop.call_later((self.__options.timeout or DEFAULT_TIMEOUT) / 1000,
                                       self.__on_established_timeout)

        self.__set_state(SocksClientState.Connecting)
        self.__receive_buffer = ReceiveBuffer()

        if existing_socket is not None:
            existing_socket.set_protocol(self.__protocol)
            self.__protocol.connection_made(existing_socket)
        else:
            self.__connect_task = loop.create_task(self.__dial(loop))

    async def __dial(self, loop: asyncio.AbstractEventLoop):
        proxy = self.__options.proxy
        connect_options = dict(self.__options.socket_options or {})
        connect_options.update(host=proxy.address, port=proxy.port)
        log.debug('*** Connect: %s:%s', proxy.address, proxy.port)
        try:
            transport, _ = await loop.create_connection(lambda: self.__protocol, **connect_options)
        except Exception as e:
            self.__connect_task = None
            self.__close_socket(str(e))
            return
        self.__connect_task = None

        if self.__options.set_tcp_nodelay is not None:
            sock = transport.get_extra_info('socket')
            if sock is not None:
                sock.setsockopt(socket.IPPROTO_TCP, socket.TCP_NODELAY,
                                1 if self.__options.set_tcp_nodelay else 0)

    def __on_established_timeout(self):
        if self.__state not in (SocksClientState.Established,
                                SocksClientState.BoundWaitingForConnection):
            self.__close_socket(ERRORS['ProxyConnectionTimedOut'])

    def __on_connect(self, transport: asyncio.Transport):
        self.__socket = transport
        self.__set_state(SocksClientState.Connected)

        if self.__options.proxy.type == 4:
            self.__send_socks4_initial_handshake()
        else:
            self.__send_socks5_initial_handshake()

        self.__set_state(SocksClientState.SentInitialHandshake)

    def __on_data_received(self, data: bytes):
        self.__receive_buffer.append(data)
        self.__process_data()

    def __process_data(self):
        # Handle as many records as are already buffered.
        while (self.__state not in (SocksClientState.Established, SocksClientState.Error)
               and not self.__suspended
               and self.__next_required_packet_buffer_size is not None
               and self.__receive_buffer.length >= self.__next_required_packet_buffer_size):
            if self.__state == SocksClientState.SentInitialHandshake:
                if self.__options.proxy.type == 4:
                    # Socks v4 only has one handshake response.
                    self.__handle_socks4_final_handshake_response()
                else:
                    self.__handle_initial_socks5_handshake_response()
            elif self.__state == SocksClientState.SentAuthentication:
                self.__handle_initial_socks5_authentication_handshake_response()
            elif self.__state == SocksClientState.SentFinalHandshake:
                self.__handle_socks5_final_handshake_response()
            elif self.__state == SocksClientState.BoundWaitingForConnection:
                if self.__options.proxy.type == 4:
                    self.__handle_socks4_incoming_connection_response()
                else:
                    self.__handle_socks5_incoming_connection_response()
            else:
                self.__close_socket(ERRORS['InternalError'])
                break

    def __on_close(self, exc):
        if exc is None:
            self.__close_socket(ERRORS['SocketClosed'])
        else:
            self.__close_socket(str(exc))

    def __remove_internal_socket_handlers(self):
        if self.__timer is not None:
            self.__timer.cancel()
            self.__timer = None
        if self.__socket is not None:
            self.__socket.pause_reading()
        self.__protocol.detach()

    def __close_socket(self, err: str, code: int = None):
        # Only one 'error' event is fired for the lifetime of this client.
        if self.__state == SocksClientState.Error:
            return
        self.__set_state(SocksClientState.Error)

        if self.__connect_task is not None:
            self.__connect_task.cancel()
            self.__connect_task = None
        if self.__socket is not None:
            self.__socket.abort()
        self.__remove_internal_socket_handlers()

        log.debug('*** Negotiation with %s:%s failed: %s',
                  self.__options.proxy.address, self.__options.proxy.port, err)
        self.emit('error', SocksClientError(err, self.__options, code))

    def __set_established(self, remote_host: SocksRemoteHost = None):
        self.__set_state(SocksClientState.Established)
        self.__remove_internal_socket_handlers()

        info = SocksClientEstablishedEvent(self.__socket, remote_host)
        log.debug('*** Established: %s:%s (%s)', self.__options.destination.host,
                  self.__options.destination.port, remote_host)
        self.emit('established', info)
        # Listeners take the transport over synchronously, so the leftover
        # bytes go to whichever protocol they installed.
        asyncio.get_running_loop().call_soon(self.__redeliver_excess_data, info.socket)

    def __redeliver_excess_data(self, transport: asyncio.Transport):
        receive_buffer, self.__receive_buffer = self.__receive_buffer, None
        if receive_buffer.length > 0:
            excess_data = receive_buffer.get(receive_buffer.length)
            protocol = transport.get_protocol()
            if protocol is self.__protocol:
                log.warning('*** Dropping %d bytes, nobody took over the transport', len(excess_data))
            else:
                protocol.data_received(excess_data)
        transport.resume_reading()

    def __proxy_address_if_unspecified(self, host: str) -> str:
        # The proxy answers 0.0.0.0 when the address is its own.
        if host == '0.0.0.0':
            return self.__options.proxy.address
        return host

    def __send_socks4_initial_handshake(self):
        destination = self.__options.destination
        user_id = (self.__options.proxy.user_id or '').encode("utf-8")

        req = struct.pack("!BBH", 0x04, SocksCommand[self.__options.command], destination.port)
        if is_ipv4(destination.host):
            req += ip_to_bytes(destination.host) + user_id + b"\x00"
        else:
            # NOTE: This is actually an extension to the SOCKS4 protocol
            # called SOCKS4A and may not be supported in all cases.
            req += struct.pack("BBBB", 0x00, 0x00, 0x00, 0x01)
            req += user_id + b"\x00" + destination.host.encode("utf-8") + b"\x00"

        log.debug('*** SOCKS4: %s:%s', destination.host, destination.port)
        self.__next_required_packet_buffer_size = SOCKS_INCOMING_PACKET_SIZES.Socks4Response
        self.__socket.write(req)

    def __parse_socks4_remote_host(self, data: bytes) -> SocksRemoteHost:
        port, address = struct.unpack_from("!HI", data, 2)
        return SocksRemoteHost(self.__proxy_address_if_unspecified(int32_to_ipv4(address)), port)

    def __handle_socks4_final_handshake_response(self):
        data = self.__receive_buffer.get(SOCKS_INCOMING_PACKET_SIZES.Socks4Response)

        if data[1] != Socks4Response.Granted:
            self.__close_socket('%s - (%s)' % (ERRORS['Socks4ProxyRejectedConnection'],
                                               _response_name(Socks4Response, data[1])), data[1])
        elif SocksCommand[self.__options.command] == SocksCommand.bind:
            remote_host = self.__parse_socks4_remote_host(data)
            self.__set_state(SocksClientState.BoundWaitingForConnection)
            self.emit('bound', SocksClientBoundEvent(self.__socket, remote_host))
        else:
            self.__set_established()

    def __handle_socks4_incoming_connection_response(self):
        data = self.__receive_buffer.get(SOCKS_INCOMING_PACKET_SIZES.Socks4Response)

        if data[1] != Socks4Response.Granted:
            self.__close_socket('%s - (%s)' % (ERRORS['Socks4ProxyRejectedIncomingBoundConnection'],
                                               _response_name(Socks4Response, data[1])), data[1])
        else:
            self.__set_established(self.__parse_socks4_remote_host(data))

    def __send_socks5_initial_handshake(self):
        proxy = self.__options.proxy

        # No authentication is always supported; user/pass only if the
        # details were supplied.
        auth_types = [Socks5Auth.NoAuth]
        if proxy.user_id or proxy.password:
            auth_types.append(Socks5Auth.UserPass)
        if proxy.custom_auth_method is not None:
            auth_types.append(proxy.custom_auth_method)
        self.__socks5_offered_auth_types = tuple(auth_types)

        log.debug('*** SOCKS5: offering auth methods %s', list(map(int, auth_types)))
        self.__next_required_packet_buffer_size = SOCKS_INCOMING_PACKET_SIZES.Socks5InitialHandshakeResponse
        self.__socket.write(struct.pack("BB", 0x05, len(auth_types)) + bytes(auth_types))
        self.__set_state(SocksClientState.SentInitialHandshake)

    def __handle_initial_socks5_handshake_response(self):
        data = self.__receive_buffer.get(SOCKS_INCOMING_PACKET_SIZES.Socks5InitialHandshakeResponse)

        if data[0] != 0x05:
            self.__close_socket(ERRORS['InvalidSocks5IntiailHandshakeSocksVersion'])
            return
        if data[1] == SOCKS5_NO_ACCEPTABLE_AUTH:
            self.__close_socket(ERRORS['InvalidSocks5InitialHandshakeNoAcceptedAuthType'])
            return
        if data[1] not in self.__socks5_offered_auth_types:
            self.__close_socket(ERRORS['InvalidSocks5InitialHandshakeUnknownAuthType'])
            return

        self.__set_state(SocksClientState.ReceivedInitialHandshakeResponse)
        self.__socks5_chosen_auth_type = data[1]
        if data[1] == Socks5Auth.NoAuth:
            self.__send_socks5_command_request()
        elif data[1] == Socks5Auth.UserPass:
            self.__send_socks5_user_pass_authentication()
        else:
            self.__suspend(self.__send_socks5_custom_authentication())

    def __send_socks5_user_pass_authentication(self):
        proxy = self.__options.proxy
        req = b"\x01" + _pascal_encode(proxy.user_id or '') + _pascal_encode(proxy.password or '')

        self.__next_required_packet_buffer_size = SOCKS_INCOMING_PACKET_SIZES.Socks5UserPassAuthenticationResponse
        self.__socket.write(req)
        self.__set_state(SocksClientState.SentAuthentication)

    def __suspend(self, coro):
        # Nothing else is read from the buffer until the coroutine resumes us.
        self.__suspended = True
        task = asyncio.get_running_loop().create_task(coro)
        self.__tasks.add(task)
        task.add_done_callback(self.__tasks.discard)

    def __resume(self):
        self.__suspended = False
        self.__process_data()

    async def __send_socks5_custom_authentication(self):
        proxy = self.__options.proxy
        try:
            payload = await _resolve(proxy.custom_auth_request_handler())
        except Exception as e:
            self.__suspended = False
            self.__close_socket(str(e))
            return
        if self.__state == SocksClientState.Error:
            return

        self.__next_required_packet_buffer_size = proxy.custom_auth_response_size
        self.__socket.write(bytes(payload))
        self.__set_state(SocksClientState.SentAuthentication)
        self.__resume()

    async def __validate_socks5_custom_authentication(self, data: bytes):
        try:
            accepted = await _resolve(self.__options.proxy.custom_auth_response_handler(data))
        except Exception as e:
            self.__suspended = False
            self.__close_socket(str(e))
            return
        if self.__state == SocksClientState.Error:
            return

        self.__finish_socks5_authentication(bool(accepted))
        self.__resume()

    def __handle_initial_socks5_authentication_handshake_response(self):
        self.__set_state(SocksClientState.ReceivedAuthenticationResponse)

        if self.__socks5_chosen_auth_type == Socks5Auth.UserPass:
            data = self.__receive_buffer.get(SOCKS_INCOMING_PACKET_SIZES.Socks5UserPassAuthenticationResponse)
            self.__finish_socks5_authentication(data[1] == 0x00)
        else:
            data = self.__receive_buffer.get(self.__options.proxy.custom_auth_response_size)
            self.__suspend(self.__validate_socks5_custom_authentication(data))

    def __finish_socks5_authentication(self, accepted: bool):
        if not accepted:
            self.__close_socket(ERRORS['Socks5AuthenticationFailed'])
        else:
            self.__send_socks5_command_request()

    def __send_socks5_command_request(self):
        destination = self.__options.destination

        req = struct.pack("BBB", 0x05, SocksCommand[self.__options.command], 0x00)
        if is_ipv4(destination.host):
            req += struct.pack("B", Socks5HostType.IPv4) + ip_to_bytes(destination.host)
        elif is_ipv6(destination.host):
            req += struct.pack("B", Socks5HostType.IPv6) + ip_to_bytes(destination.host)
        else:
            req += struct.pack("B", Socks5HostType.Hostname) + _pascal_encode(destination.host)
        # network endian
        req += struct.pack("!H", destination.port)

        log.debug('*** SOCKS5 %s: %s:%s', self.__options.command, destination.host, destination.port)
        self.__next_required_packet_buffer_size = SOCKS_INCOMING_PACKET_SIZES.Socks5ResponseHeader
        self.__socket.write(req)
        self.__set_state(SocksClientState.SentFinalHandshake)

    def __read_socks5_remote_host(self, header: bytes, invalid_error: str):
        """Consumes a whole SOCKS5 reply and returns the host it names.
        Returns None if the reply isn't fully buffered yet, after recording
        how many bytes it needs.
        """
        address_type = header[3]
        if address_type == Socks5HostType.IPv4:
            data_needed = SOCKS_INCOMING_PACKET_SIZES.Socks5ResponseIPv4
        elif address_type == Socks5HostType.Hostname:
            data_needed = SOCKS_INCOMING_PACKET_SIZES.Socks5ResponseHostname(header[4])
        elif address_type == Socks5HostType.IPv6:
            data_needed = SOCKS_INCOMING_PACKET_SIZES.Socks5ResponseIPv6
        else:
            self.__close_socket(invalid_error)
            return None

        if self.__receive_buffer.length < data_needed:
            self.__next_required_packet_buffer_size = data_needed
            return None

        data = self.__receive_buffer.get(data_needed)
        if address_type == Socks5HostType.IPv4:
            host = self.__proxy_address_if_unspecified(int32_to_ipv4(struct.unpack_from("!I", data, 4)[0]))
        elif address_type == Socks5HostType.Hostname:
            host = data[5:5 + header[4]].decode("utf-8", errors="replace")
        else:
            host = bytes_to_ipv6(data[4:20])
        port = struct.unpack_from("!H", data, data_needed - 2)[0]
        return SocksRemoteHost(host, port)

    def __handle_socks5_final_handshake_response(self):
        # Peek first, the header tells us how long the whole reply is.
        header = self.__receive_buffer.peek(SOCKS_INCOMING_PACKET_SIZES.Socks5ResponseHeader)

        if header[0] != 0x05:
            self.__close_socket(ERRORS['InvalidSocks5FinalHandshake'])
            return
        if header[1] != Socks5Response.Granted:
            self.__close_socket('%s - %s' % (ERRORS['InvalidSocks5FinalHandshakeRejected'],
                                             _response_name(Socks5Response, header[1])), header[1])
            return

        remote_host = self.__read_socks5_remote_host(header, ERRORS['InvalidSocks5FinalHandshake'])
        if remote_host is None:
            return
        self.__set_state(SocksClientState.ReceivedFinalResponse)

        if SocksCommand[self.__options.command] == SocksCommand.bind:
            # The proxy now waits for a remote connection to the bound port.
            self.__set_state(SocksClientState.BoundWaitingForConnection)
            self.__next_required_packet_buffer_size = SOCKS_INCOMING_PACKET_SIZES.Socks5ResponseHeader
            self.emit('bound', SocksClientBoundEvent(self.__socket, remote_host))
        else:
            # For associate this TCP connection has to stay open for as long
            # as the UDP relay is used.
            self.__set_established(remote_host)

    def __handle_socks5_incoming_connection_response(self):
        header = self.__receive_buffer.peek(SOCKS_INCOMING_PACKET_SIZES.Socks5ResponseHeader)

        if header[0] != 0x05:
            self.__close_socket(ERRORS['InvalidSocks5IncomingConnectionResponse'])
            return
        if header[1] != Socks5Response.Granted:
            self.__close_socket('%s - %s' % (ERRORS['Socks5ProxyRejectedIncomingBoundConnection'],
                                             _response_name(Socks5Response, header[1])), header[1])
            return

        remote_host = self.__read_socks5_remote_host(header, ERRORS['InvalidSocks5IncomingConnectionResponse'])
        if remote_host is not None:
            self.__set_established(remote_host)


async def open_connection(options: SocksClientOptions, limit: int = 2 ** 16):
    """open_connection(options) -> (reader, writer)
    asyncio.open_connection analog that goes through a SOCKS proxy.
    """
    info = await SocksClient.create_connection(options)
    return open_streams(info.socket, limit)
