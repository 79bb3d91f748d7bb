# Subscribed values
#
from __future__ import annotations

import logging
import math
import time
from typing import Callable, List

from .constant import SPAM_LEVEL, DEFAULT_FREQUENCY
from .errors import InvalidArgument

logger = logging.getLogger(__name__)
# logger.setLevel(SPAM_LEVEL)  # To see when datarefs are updated
# logger.setLevel(logging.DEBUG)

NUL = "\x00"


class DataRefElement:
    """
    A Dataref is an internal value of the simulation software made accessible to outside modules,
    plugins, or other software in general.

    A DataRefElement is one scalar dataref streamed by X-Plane.
    Its id correlates our request with X-Plane answers.
    It is assigned by the registry at subscription time if not provided.
    """

    def __init__(self, path: str, frequency: int = DEFAULT_FREQUENCY, dataref_id: int | None = None, description: str = "", clock: Callable[[], float] = time.monotonic):
        if not path:
            raise InvalidArgument("DataRefElement: no dataref path")
        if frequency is None or frequency <= 0:
            raise InvalidArgument(f"DataRefElement: {path}: invalid frequency {frequency}")
        self.path = path  # some/path/values[6]
        self.dataref = path  # some/path/values
        self.index = None  # 6
        if "[" in path:  # sim/some/values[4]
            self.dataref = path[: path.find("[")]
            try:
                self.index = int(path[path.find("[") + 1 : path.find("]")])
            except ValueError:
                raise InvalidArgument(f"DataRefElement: invalid index in {path}")

        self.id = dataref_id
        self.frequency = frequency
        self.description = description

        self.value: float | None = None
        self.last_update: float | None = None
        self.clock = clock

        self.listeners: List[Callable] = []  # callback(element, value), called in order

    def __str__(self) -> str:
        return f"{self.path} (id={self.id})"

    def __repr__(self) -> str:
        return f"DataRefElement({self.path!r}, frequency={self.frequency}, dataref_id={self.id})"

    @property
    def age(self) -> float:
        return self.age_at(self.clock())

    def age_at(self, now: float) -> float:
        # never updated elements are infinitely old
        if self.last_update is None:
            return math.inf
        return now - self.last_update

    def add_listener(self, callback: Callable):
        if not callable(callback):
            raise InvalidArgument(f"{self.path}: listener {callback!r} is not callable")
        self.listeners.append(callback)
        logger.debug(f"{self.path} added listener ({len(self.listeners)})")

    def remove_listener(self, callback: Callable) -> bool:
        if callback in self.listeners:
            self.listeners.remove(callback)
            logger.debug(f"{self.path} removed listener ({len(self.listeners)})")
            return True
        return False

    def update(self, value: float):
        self.value = value
        self.last_update = self.clock()
        logger.log(SPAM_LEVEL, f"dataref {self.path} updated to {value}")
        self.notify()

    def notify(self):
        # copy: a listener may unsubscribe itself
        for listener in list(self.listeners):
            listener(self, self.value)


class StringDataRefElement:
    """A string dataref is an array of bytes in X-Plane.

    Each character is requested as its own DataRefElement, path[0] to path[length-1],
    and written into a fixed size buffer when received.
    Listeners are called with the whole buffer on every character update,
    not once when all characters have been received.
    """

    def __init__(self, path: str, length: int, frequency: int = DEFAULT_FREQUENCY, description: str = ""):
        if not path:
            raise InvalidArgument("StringDataRefElement: no dataref path")
        if length is None or length <= 0:
            raise InvalidArgument(f"StringDataRefElement: {path}: invalid length {length}")
        if frequency is None or frequency <= 0:
            raise InvalidArgument(f"StringDataRefElement: {path}: invalid frequency {frequency}")
        self.path = path
        self.length = length
        self.frequency = frequency
        self.description = description
        self.buffer = [NUL] * length
        self.elements: List[DataRefElement] = []  # one per character, set at subscription
        self.listeners: List[Callable] = []  # callback(element, string)
        self.updates = 0

    def __str__(self) -> str:
        return f"{self.path}[{self.length}]"

    def character_path(self, offset: int) -> str:
        return f"{self.path}[{offset}]"

    @property
    def value(self) -> str:
        return "".join(self.buffer)

    @property
    def text(self) -> str:
        # X-Plane strings are NUL terminated
        return self.value.split(NUL, 1)[0]

    @property
    def complete(self) -> bool:
        return NUL not in self.buffer

    def add_listener(self, callback: Callable):
        if not callable(callback):
            raise InvalidArgument(f"{self.path}: listener {callback!r} is not callable")
        self.listeners.append(callback)

    def remove_listener(self, callback: Callable) -> bool:
        if callback in self.listeners:
            self.listeners.remove(callback)
            return True
        return False

    def update(self, offset: int, value: float):
        if offset < 0 or offset >= self.length:
            raise InvalidArgument(f"{self.path}: offset {offset} out of range [0,{self.length - 1}]")
        try:
            self.buffer[offset] = chr(int(value))
        except (ValueError, OverflowError):
            raise InvalidArgument(f"{self.path}[{offset}]: {value} is not a character code")
        self.updates = self.updates + 1
        logger.log(SPAM_LEVEL, f"string dataref {self.path}[{offset}] updated, now {self.value!r}")
        self.notify()

    def notify(self):
        current = self.value
        for listener in list(self.listeners):
            listener(self, current)
