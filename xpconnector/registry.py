# Registry of requested datarefs, key = id, value = DataRefElement
#
from __future__ import annotations

import logging
import threading
import time
from typing import Callable, Dict, List

from .constant import SPAM_LEVEL
from .datagram import rref_path_fits
from .dataref import DataRefElement, StringDataRefElement
from .errors import InvalidArgument, ProtocolViolation

logger = logging.getLogger(__name__)
# logger.setLevel(SPAM_LEVEL)  # To see which dataref are registered
# logger.setLevel(logging.DEBUG)


class DataRefRegistry:
    """Datarefs currently requested from X-Plane.

    Structural changes and iterations are done under one lock.
    Iterations work on a copy so that the receive and request threads never see
    the mapping change under them.
    Element values are updated outside of the lock.
    """

    def __init__(self, clock: Callable[[], float] = time.monotonic):
        self.clock = clock
        self.datarefs: Dict[int, DataRefElement] = {}  # key = id, value = dataref
        self.strings: Dict[str, StringDataRefElement] = {}  # key = base path
        self.lock = threading.RLock()

    def __len__(self):
        with self.lock:
            return len(self.datarefs)

    def __contains__(self, dataref_id):
        with self.lock:
            return dataref_id in self.datarefs

    def next_id(self) -> int:
        # lowest id not in use, ids of removed datarefs are reused
        with self.lock:
            idx = 0
            while idx in self.datarefs:
                idx = idx + 1
            return idx

    def elements(self) -> List[DataRefElement]:
        with self.lock:
            return list(self.datarefs.values())

    def find(self, path: str) -> DataRefElement | None:
        with self.lock:
            for element in self.datarefs.values():
                if element.path == path:
                    return element
        return None

    def resolve(self, dataref_id: int) -> DataRefElement:
        with self.lock:
            element = self.datarefs.get(dataref_id)
        if element is None:
            raise ProtocolViolation(f"resolve: dataref id {dataref_id} not found in requested datarefs", dataref_id=dataref_id)
        return element

    # ################################
    # Subscriptions
    #
    def subscribe(self, dataref, frequency: int = 0, on_change: Callable | None = None, buffer_size: int | None = None):
        """Registers a dataref to be requested from X-Plane.

        dataref is a DataRefElement, a StringDataRefElement, or a dataref path.
        A path with a buffer_size is a string dataref of that length.
        A path already registered reuses its element and id.
        Returns the registered element.
        """
        if dataref is None:
            raise InvalidArgument("subscribe: no dataref")
        if isinstance(dataref, StringDataRefElement):
            return self.subscribe_string(dataref, frequency=frequency, on_change=on_change)
        if isinstance(dataref, str):
            if buffer_size is not None and buffer_size > 0:
                with self.lock:
                    composite = self.strings.get(dataref)
                if composite is None:
                    composite = StringDataRefElement(dataref, length=buffer_size)
                elif composite.length != buffer_size:
                    raise InvalidArgument(f"subscribe: {dataref} already subscribed with length {composite.length}, not {buffer_size}")
                return self.subscribe_string(composite, frequency=frequency, on_change=on_change)
            with self.lock:
                element = self.find(dataref)
                if element is None:
                    element = DataRefElement(dataref, clock=self.clock)
                return self.subscribe_element(element, frequency=frequency, on_change=on_change)
        if isinstance(dataref, DataRefElement):
            return self.subscribe_element(dataref, frequency=frequency, on_change=on_change)
        raise InvalidArgument(f"subscribe: invalid dataref {dataref!r}")

    def subscribe_element(self, element: DataRefElement, frequency: int = 0, on_change: Callable | None = None) -> DataRefElement:
        if element is None:
            raise InvalidArgument("subscribe: no dataref")
        if not element.path:
            raise InvalidArgument("subscribe: dataref has no path")
        if not rref_path_fits(element.path):
            raise InvalidArgument(f"subscribe: dataref path too long for a request: {element.path}")
        if on_change is not None:
            element.add_listener(on_change)
        if frequency > 0:
            element.frequency = frequency
        element.clock = self.clock
        with self.lock:
            if element.id is None:
                element.id = self.next_id()
            previous = self.datarefs.get(element.id)
            if previous is not None and previous is not element:
                logger.debug(f"subscribe: id {element.id} was {previous.path}, replaced by {element.path}")
            self.datarefs[element.id] = element
        logger.debug(f"subscribe: {element.path} id={element.id} freq={element.frequency}")
        return element

    def subscribe_string(self, element: StringDataRefElement, frequency: int = 0, on_change: Callable | None = None) -> StringDataRefElement:
        if element is None:
            raise InvalidArgument("subscribe: no string dataref")
        if not rref_path_fits(element.character_path(element.length - 1)):
            raise InvalidArgument(f"subscribe: string dataref path too long for a request: {element.path}")
        if on_change is not None:
            element.add_listener(on_change)
        if frequency > 0:
            element.frequency = frequency
        with self.lock:
            current = self.strings.get(element.path)
            if current is element:
                for character in element.elements:
                    character.frequency = element.frequency
                logger.debug(f"subscribe: string {element} already subscribed")
                return element
            if current is not None:
                raise InvalidArgument(f"subscribe: string dataref {element.path} already subscribed")
            self.strings[element.path] = element
            element.elements = []
            for offset in range(element.length):
                character = DataRefElement(element.character_path(offset), frequency=element.frequency, clock=self.clock)
                self.subscribe_element(character, on_change=self._character_listener(element, offset))
                element.elements.append(character)
        logger.debug(f"subscribe: string {element} ({element.length} datarefs)")
        return element

    @staticmethod
    def _character_listener(element: StringDataRefElement, offset: int) -> Callable:
        def character_changed(character: DataRefElement, value: float):
            element.update(offset, value)

        return character_changed

    def unsubscribe(self, path: str, on_change: Callable | None = None) -> List[DataRefElement]:
        """Removes datarefs registered for path.

        If on_change is given, only that listener is removed, and datarefs are
        removed only when they no longer have listeners.
        Returns the removed elements, for which X-Plane must stop sending values.
        """
        if not path:
            raise InvalidArgument("unsubscribe: no dataref path")
        with self.lock:
            composite = self.strings.get(path)
            if composite is not None:
                if on_change is not None:
                    if not composite.remove_listener(on_change):
                        logger.warning(f"unsubscribe: {path}: listener not found")
                    if len(composite.listeners) > 0:
                        logger.debug(f"unsubscribe: {path} still has {len(composite.listeners)} listeners")
                        return []
                del self.strings[path]
                # characters unsubscribed alone may have had their id reused
                removed = [self.remove(e.id) for e in composite.elements if self.datarefs.get(e.id) is e]
                logger.debug(f"unsubscribe: string {composite} removed")
                return removed

            element = self.find(path)
            if element is None:
                raise InvalidArgument(f"unsubscribe: no dataref matching {path} was found")
            if on_change is not None:
                if not element.remove_listener(on_change):
                    logger.warning(f"unsubscribe: {path}: listener not found")
                if len(element.listeners) > 0:
                    logger.debug(f"unsubscribe: {path} still has {len(element.listeners)} listeners")
                    return []
            return [self.remove(element.id)]

    def remove(self, dataref_id: int) -> DataRefElement:
        with self.lock:
            element = self.datarefs.pop(dataref_id, None)
        if element is None:
            raise InvalidArgument(f"remove: no dataref with id {dataref_id}")
        logger.debug(f"remove: {element.path} id={dataref_id} removed")
        return element

    def clear(self) -> List[DataRefElement]:
        with self.lock:
            removed = list(self.datarefs.values())
            self.datarefs = {}
            self.strings = {}
        return removed

    # ################################
    # Staleness
    #
    def stale(self, max_age: float, now: float | None = None) -> List[DataRefElement]:
        """Datarefs not updated for more than max_age seconds."""
        if now is None:
            now = self.clock()
        stale = [e for e in self.elements() if e.age_at(now) > max_age]
        if len(stale) > 0:
            logger.log(SPAM_LEVEL, f"stale: {len(stale)}/{len(self)} datarefs older than {max_age} secs")
        return stale
