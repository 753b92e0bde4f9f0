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

class ProxyError(Exception): pass
class InvalidInput(ProxyError, ValueError): pass
class OutOfData(ProxyError): pass
class MalformedFrame(ProxyError): pass


class SocksClientError(ProxyError):
    """SocksClientError(message, options[, code])
    Raised (or emitted as the 'error' event) when a SOCKS negotiation fails.
    options - The SocksClientOptions / SocksClientChainOptions in use.
    code -    The reply code sent by the proxy, when it rejected us.
    """

    def __init__(self, message: str, options=None, code: int = None):
        super().__init__(message)
        self.options = options
        self.code = code
