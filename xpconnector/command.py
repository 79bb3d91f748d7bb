# X-Plane commands, sent once or repeatedly until cancelled
#
from __future__ import annotations

import logging
import threading
from typing import Callable

from .constant import SPAM_LEVEL, COMMAND_INTERVAL
from .errors import InvalidArgument

logger = logging.getLogger(__name__)
# logger.setLevel(SPAM_LEVEL)
# logger.setLevel(logging.DEBUG)

# The command keywords are not executed, ignored with a warning
NOT_A_COMMAND = ["none", "noop", "no-operation", "no-command", "do-nothing"]


class XPlaneCommand:
    """An X-Plane command, like sim/autopilot/heading_up."""

    def __init__(self, command: str, description: str = ""):
        if command is None or command == "":
            raise InvalidArgument("XPlaneCommand: no command")
        self.command = command
        self.description = description

    def __str__(self) -> str:
        return self.command

    def __repr__(self) -> str:
        return f"XPlaneCommand({self.command!r})"

    def __eq__(self, other):
        return isinstance(other, XPlaneCommand) and other.command == self.command

    def __hash__(self):
        return hash(self.command)

    def is_valid(self) -> bool:
        return self.command.lower() not in NOT_A_COMMAND

    def begin(self) -> XPlaneCommand:
        return XPlaneCommand(self.command + "/begin", description=self.description)

    def end(self) -> XPlaneCommand:
        return XPlaneCommand(self.command + "/end", description=self.description)


class CommandToken:
    """Cancellation handle of a command sent repeatedly.

    Each token owns its thread and cancellation event, several commands
    can be repeated at the same time, independently of the connector loops.
    With an interval of 0 the command is sent back-to-back.
    """

    def __init__(self, command: XPlaneCommand, send: Callable[[XPlaneCommand], None], interval: float = COMMAND_INTERVAL):
        self.command = command
        self.interval = interval
        self.count = 0
        self.error: Exception | None = None
        self._send = send
        self._cancel = threading.Event()
        self._thread = threading.Thread(target=self.run, name=f"XPlaneConnector::command::{command}", daemon=True)

    def __str__(self) -> str:
        return f"{self.command} ({self.count} sent)"

    @property
    def cancelled(self) -> bool:
        return self._cancel.is_set()

    def is_alive(self) -> bool:
        return self._thread.is_alive()

    def start(self):
        self._thread.start()
        logger.debug(f"command {self.command} repeat started (interval {self.interval} secs)")

    def run(self):
        try:
            while not self._cancel.is_set():
                self._send(self.command)
                self.count = self.count + 1
                if self.interval > 0:
                    self._cancel.wait(self.interval)
        except Exception as e:
            self.error = e
            logger.error(f"command {self.command} repeat terminated after {self.count} sends", exc_info=True)
        logger.log(SPAM_LEVEL, f"command {self.command} sent {self.count} times")

    def cancel(self, timeout: float | None = None):
        """Stops the repeat loop, raises the error that terminated it, if any."""
        self._cancel.set()
        if self._thread.is_alive() and self._thread is not threading.current_thread():
            self._thread.join(timeout)
        logger.debug(f"command {self.command} repeat stopped ({self.count} sends)")
        if self.error is not None:
            raise self.error
