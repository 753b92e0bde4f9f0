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
Event system for sockschain.

SocksClient reports its outcome through 'established', 'bound' and 'error'.
"""

import asyncio
import inspect
import logging
from typing import Any, Callable, Dict, List, Set

log = logging.getLogger(__name__)


class EventEmitter:
    """Simple event emitter for SOCKS client events."""

    def __init__(self):
        self._listeners: Dict[str, List[Callable]] = {}
        self._listener_tasks: Set[asyncio.Future] = set()

    def on(self, event: str, callback: Callable) -> None:
        """Register an event listener."""
        if event not in self._listeners:
            self._listeners[event] = []
        self._listeners[event].append(callback)

    def once(self, event: str, callback: Callable) -> None:
        """Register a listener that is removed after its first call."""

        def wrapper(*args: Any) -> Any:
            self.off(event, wrapper)
            return callback(*args)

        wrapper.listener = callback
        self.on(event, wrapper)

    def off(self, event: str, callback: Callable) -> None:
        """Remove an event listener."""
        listeners = self._listeners.get(event)
        if not listeners:
            return
        for registered in listeners:
            if registered is callback or getattr(registered, 'listener', None) is callback:
                listeners.remove(registered)
                break
        if not listeners:
            del self._listeners[event]

    def listener_count(self, event: str) -> int:
        return len(self._listeners.get(event, ()))

    def emit(self, event: str, *args: Any) -> bool:
        """Emit an event to all listeners. Returns False if nobody listened."""
        listeners = self._listeners.get(event)
        if not listeners:
            return False
        for callback in listeners[:]:
            try:
                result = callback(*args)
                if inspect.isawaitable(result):
                    task = asyncio.ensure_future(result)
                    self._listener_tasks.add(task)
                    task.add_done_callback(self.__listener_task_done)
            except Exception:
                log.exception("Error in event listener for %s", event)
        return True

    def __listener_task_done(self, task: asyncio.Future) -> None:
        self._listener_tasks.discard(task)
        if not task.cancelled() and task.exception() is not None:
            log.error("Error in async event listener", exc_info=task.exception())

    def remove_all_listeners(self, event: str = None) -> None:
        """Remove all listeners for an event or all events."""
        if event:
            self._listeners.pop(event, None)
        else:
            self._listeners.clear()
