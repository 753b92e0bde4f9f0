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

from .errors import InvalidInput, OutOfData


class ReceiveBuffer:
    """ReceiveBuffer([size]) -> buffer
    Collects stream chunks of any size and hands them back in exact-sized
    pieces. Bytes between the read cursor and the write cursor are unread.
    """

    def __init__(self, size: int = 4096):
        self.__buffer = bytearray(size)
        self.__start = 0
        self.__end = 0

    @property
    def length(self) -> int:
        return self.__end - self.__start

    def __len__(self) -> int:
        return self.length

    @property
    def capacity(self) -> int:
        return len(self.__buffer)

    def append(self, data) -> int:
        if not isinstance(data, (bytes, bytearray, memoryview)):
            raise InvalidInput("Attempted to append a non-buffer instance to ReceiveBuffer.")
        data = memoryview(data).cast('B')
        size = len(data)

        if self.__end + size > len(self.__buffer):
            unread = self.length
            if unread + size <= len(self.__buffer):
                # Moving the unread bytes to the front is enough.
                self.__buffer[0:unread] = self.__buffer[self.__start:self.__end]
            else:
                grown = bytearray(max(len(self.__buffer) * 2, unread + size))
                grown[0:unread] = self.__buffer[self.__start:self.__end]
                self.__buffer = grown
            self.__start = 0
            self.__end = unread

        self.__buffer[self.__end:self.__end + size] = data
        self.__end += size
        return self.length

    def peek(self, length: int) -> bytes:
        if length > self.length:
            raise OutOfData("Attempted to read beyond the bounds of the managed internal data.")
        return bytes(self.__buffer[self.__start:self.__start + length])

    def get(self, length: int) -> bytes:
        data = self.peek(length)
        self.__start += length
        if self.__start == self.__end:
            self.__start = self.__end = 0
        return data
