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

import logging

from .client import SocksClient, open_streams
from .constants import (
    SocksClientChainOptions,
    SocksClientEstablishedEvent,
    SocksClientOptions,
    SocksRemoteHost,
)
from .helpers import shuffle_array, validate_socks_client_chain_options

log = logging.getLogger(__name__)


async def create_connection_chain(options: SocksClientChainOptions) -> SocksClientEstablishedEvent:
    """create_connection_chain(options) -> SocksClientEstablishedEvent
    Connects to the destination through every proxy in options.proxies, in
    order. Only the first proxy is dialed, every later hop is negotiated
    through the tunnel the earlier ones built. The returned event holds that
    first transport. Raises SocksClientError if any hop fails.
    """
    validate_socks_client_chain_options(options)

    proxies = list(options.proxies)
    if options.randomize_chain:
        shuffle_array(proxies)

    sock = None
    result = None
    for i, proxy in enumerate(proxies):
        # The last proxy connects to the real destination, all others to
        # the proxy after them.
        if i == len(proxies) - 1:
            next_destination = options.destination
        else:
            next_destination = SocksRemoteHost(proxies[i + 1].address, proxies[i + 1].port)

        log.debug('*** Chain hop %d: %s:%s -> %s:%s', i, proxy.address, proxy.port,
                  next_destination.host, next_destination.port)
        result = await SocksClient.create_connection(SocksClientOptions(
            command='connect',
            destination=next_destination,
            proxy=proxy,
            timeout=options.timeout,
            existing_socket=sock,
        ))

        if sock is None:
            sock = result.socket

    log.debug('*** Chain established! (%s)', result.remote_host)
    return SocksClientEstablishedEvent(sock, result.remote_host)


async def open_connection_chain(options: SocksClientChainOptions, limit: int = 2 ** 16):
    """open_connection_chain(options) -> (reader, writer)"""
    info = await create_connection_chain(options)
    return open_streams(info.socket, limit)
