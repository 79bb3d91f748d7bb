# Class for interface with X-Plane using UDP protocol.
#
# To be used when run as an external program via UDP access.
#
from __future__ import annotations

import socket
import threading
import logging
import time
from datetime import datetime
from enum import Enum
from typing import Callable, List

from .constant import SPAM_LEVEL, ROOT_DEBUG, CONFIG_KW, DEFAULT_VALUES, ANY, MAX_DATAGRAM_SIZE, STOP_TIMEOUT
from .command import XPlaneCommand, CommandToken
from .dataref import DataRefElement
from .datagram import rref_request, dref_request, cmnd_request, quit_request, fail_request, reco_request
from .datagram import is_rref, decode_rref, header
from .errors import XPlaneConnectorError, InvalidArgument, ProtocolViolation, NotReady, ShutdownTimeout
from .registry import DataRefRegistry

logger = logging.getLogger(__name__)
# logger.setLevel(SPAM_LEVEL)  # To see which dataref are requested
# logger.setLevel(logging.DEBUG)


class ConnectorState(Enum):
    IDLE = "idle"
    RUNNING = "running"
    STOPPING = "stopping"


class XPlaneConnector:
    """
    Get data from XPlane via network.

    start() opens an UDP socket on an ephemeral port and runs two threads until stop() is called:
    - the receive loop decodes RREF datagrams and updates subscribed datarefs,
    - the request loop requests datarefs again from X-Plane when they have not been received for a while.
    There is no acknowledgment in the protocol, requests are simply sent again.
    """

    def __init__(self, ip: str | None = None, port: int | None = None, environ: dict | None = None, clock: Callable[[], float] = time.monotonic):
        self._environ = environ if environ is not None else {}

        if ip is None:
            ip = self.config_value(CONFIG_KW.HOST)
        if port is None:
            port = self.config_value(CONFIG_KW.PORT)
        self.xplane_address = (ip, int(port))

        self.max_age = float(self.config_value(CONFIG_KW.MAX_AGE))
        self.check_interval = float(self.config_value(CONFIG_KW.CHECK_INTERVAL))
        self.socket_timeout = float(self.config_value(CONFIG_KW.SOCKET_TIMEOUT))
        self.command_interval = float(self.config_value(CONFIG_KW.COMMAND_INTERVAL))
        self.strict_decode = bool(self.config_value(CONFIG_KW.STRICT_DECODE))

        self._debug = [d for d in ROOT_DEBUG.split(",") if d != ""]
        debug = self._environ.get(CONFIG_KW.DEBUG.value)
        if debug:
            self._debug = self._debug + [d.strip() for d in str(debug).split(",")]
        self.set_logging_level(__name__)
        self.set_logging_level("xpconnector.registry")

        self.registry = DataRefRegistry(clock=clock)

        self.socket = None
        self.state = ConnectorState.IDLE
        self._state_lock = threading.RLock()
        self._send_lock = threading.Lock()
        self._cancel: threading.Event | None = None
        self._threads: List[threading.Thread] = []
        self._errors: List[Exception] = []

        self.commands = set()  # running command repeats

        # Hooks, called in order
        self.on_raw_receive: List[Callable[[bytes], None]] = []
        self.on_dataref_received: List[Callable[[DataRefElement], None]] = []

        self.last_receive: datetime | None = None
        self.last_buffer = b""

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_value, traceback):
        if self.state == ConnectorState.RUNNING:
            self.stop()
        else:
            self.close()

    def config_value(self, keyword: CONFIG_KW):
        value = self._environ.get(keyword.value)
        return value if value is not None else DEFAULT_VALUES.get(keyword.value)

    def set_logging_level(self, name):
        if name in self._debug:
            mylog = logging.getLogger(name)
            mylog.setLevel(logging.DEBUG)
            mylog.info(f"set_logging_level: {name} set to debug")

    @property
    def running(self) -> bool:
        return self.state == ConnectorState.RUNNING

    @property
    def local_address(self):
        return self.socket.getsockname() if self.socket is not None else None

    # ################################
    # Socket
    #
    def open(self):
        """Opens the UDP socket on an ephemeral port.

        Called by start(), but can be called before to send requests without running the loops.
        """
        with self._state_lock:
            if self.socket is not None:
                raise XPlaneConnectorError(f"open: socket already open on {self.local_address}")
            sock = socket.socket(socket.AF_INET, socket.SOCK_DGRAM, socket.IPPROTO_UDP)
            sock.bind((ANY, 0))
            sock.settimeout(self.socket_timeout)
            self.socket = sock
        logger.debug(f"open: socket bound to {self.local_address}, X-Plane at {self.xplane_address}")
        return self.local_address

    def close(self):
        with self._state_lock:
            if self.socket is None:
                return
            with self._send_lock:
                self.socket.close()
                self.socket = None
        logger.debug("close: socket closed")

    def send(self, message: bytes):
        with self._send_lock:
            if self.socket is None:
                raise NotReady(f"send: no socket, cannot send {header(message)} datagram")
            self.socket.sendto(message, self.xplane_address)
        logger.log(SPAM_LEVEL, f"send: {header(message)} datagram sent ({len(message)} bytes)")

    # ################################
    # Engine
    #
    def start(self):
        """Runs the receive and request loops and waits for both to terminate.

        Blocks until stop() is called from another thread, or a loop fails,
        in which case the error is raised here.
        """
        with self._state_lock:
            if self.state != ConnectorState.IDLE:
                raise XPlaneConnectorError(f"start: connector is {self.state.value}")
            if self.socket is None:
                self.open()
            self._cancel = threading.Event()
            self._errors = []
            self._threads = [
                threading.Thread(target=self._run_loop, args=(self.receive_loop,), name="XPlaneConnector::receive_loop", daemon=True),
                threading.Thread(target=self._run_loop, args=(self.request_loop,), name="XPlaneConnector::request_loop", daemon=True),
            ]
            self.state = ConnectorState.RUNNING
            threads = list(self._threads)

        for thread in threads:
            thread.start()
        logger.info(f"start: connector started, X-Plane at {self.xplane_address}")

        try:
            for thread in threads:
                thread.join()
        finally:
            with self._state_lock:
                self.close()
                self.state = ConnectorState.IDLE
            logger.info("start: ..terminated")

        if len(self._errors) > 0:
            raise self._errors[0]

    def _run_loop(self, loop: Callable):
        try:
            loop()
        except Exception as e:
            logger.error(f"{loop.__name__} failed, terminating connector", exc_info=True)
            self._errors.append(e)
            self._cancel.set()  # other loop terminates too

    def stop(self, timeout: float = STOP_TIMEOUT):
        """Stops requesting datarefs and terminates the loops.

        Raises ShutdownTimeout if the loops are not terminated after timeout seconds.
        """
        with self._state_lock:
            if self.socket is None:
                raise NotReady("stop: no socket available, connector not started")
            if self.state == ConnectorState.RUNNING:
                self.state = ConnectorState.STOPPING
            threads = list(self._threads)
        logger.debug("stop: stopping..")

        self.unsubscribe_all()
        with self._state_lock:
            tokens = list(self.commands)
        for token in tokens:
            try:
                self.stop_command(token)
            except (XPlaneConnectorError, OSError):
                logger.warning(f"stop: command {token.command} had failed", exc_info=True)

        if self._cancel is not None:
            self._cancel.set()
            logger.debug(f"stop: ..asked to stop loops (this may last {self.socket_timeout} secs. for UDP socket to timeout)..")
        deadline = time.monotonic() + timeout
        current = threading.current_thread()
        for thread in threads:
            if thread is not current:
                thread.join(max(0.0, deadline - time.monotonic()))
        alive = [t.name for t in threads if t.is_alive() and t is not current]
        if len(alive) > 0:
            logger.warning(f"stop: ..{', '.join(alive)} may hang..")
            raise ShutdownTimeout(f"stop: {', '.join(alive)} not terminated within {timeout} secs")

        with self._state_lock:
            self.close()
            self.state = ConnectorState.IDLE
            self._threads = []
        logger.debug("stop: ..stopped")

    def receive_loop(self):
        logger.debug("receive_loop: starting..")
        sock = self.socket
        total_reads = 0
        while not self._cancel.is_set():
            try:
                data, addr = sock.recvfrom(MAX_DATAGRAM_SIZE)
            except TimeoutError:  # socket timeout, check for cancellation
                continue
            total_reads = total_reads + 1
            self.receive(data)
        logger.debug(f"receive_loop: ..terminated ({total_reads} reads)")

    def request_loop(self):
        """Every check_interval, requests datarefs that have not been received recently."""
        logger.debug("request_loop: starting..")
        while not self._cancel.is_set():
            self.request_stale_datarefs()
            self._cancel.wait(self.check_interval)
        logger.debug("request_loop: ..terminated")

    def receive(self, buffer: bytes) -> int:
        self.last_receive = datetime.now()
        self.last_buffer = buffer
        for listener in list(self.on_raw_receive):
            listener(buffer)
        return self.parse_response(buffer)

    def parse_response(self, buffer: bytes) -> int:
        """Decodes an RREF datagram and updates the datarefs it contains.

        Other datagrams are ignored.
        Returns the number of updated datarefs.
        """
        if not is_rref(buffer):
            logger.log(SPAM_LEVEL, f"parse_response: ignored {header(buffer)!r} datagram ({len(buffer)} bytes)")
            return 0
        count = 0
        for dataref_id, value in decode_rref(buffer):
            try:
                element = self.registry.resolve(dataref_id)
            except ProtocolViolation:
                if self.strict_decode:
                    raise
                logger.warning(f"parse_response: no dataref at index {dataref_id}, probably no longer monitored")
                continue
            element.update(value)
            for listener in list(self.on_dataref_received):
                listener(element)
            count = count + 1
        return count

    def request_stale_datarefs(self) -> int:
        # registry locked until requests are sent, an unsubscribe cannot slip in between
        count = 0
        with self.registry.lock:
            for element in self.registry.stale(self.max_age):
                if self.registry.datarefs.get(element.id) is not element:  # unsubscribed meanwhile
                    continue
                self.request_dataref(element)
                count = count + 1
        return count

    def request_dataref(self, element: DataRefElement, frequency: int | None = None):
        """Asks X-Plane to send this dataref.
        X-Plane sends data back to the address and port that sent the request.
        """
        if element is None:
            raise InvalidArgument("request_dataref: no dataref")
        if not element.path:
            raise InvalidArgument("request_dataref: no dataref path")
        if frequency is None:
            frequency = element.frequency
        self.send(rref_request(frequency, element.id, element.path))
        logger.log(SPAM_LEVEL, f"request_dataref: {element.path} id={element.id} freq={frequency}")

    # ################################
    # Datarefs
    #
    def subscribe(self, dataref, frequency: int = 0, on_change: Callable | None = None, buffer_size: int | None = None):
        """Subscribes to a dataref, on_change(element, value) is called every time a value is received.

        dataref is a dataref path, a DataRefElement, or a StringDataRefElement.
        A path with a buffer_size is a string dataref of that length.
        The request is sent by the request loop.
        """
        return self.registry.subscribe(dataref, frequency=frequency, on_change=on_change, buffer_size=buffer_size)

    def unsubscribe(self, path: str, on_change: Callable | None = None):
        """Informs X-Plane to stop sending this dataref.

        path includes the [index] if it is used. A string dataref is unsubscribed by its path.
        If on_change is given, it is removed, and X-Plane is informed only when no listener remains.
        """
        for element in self.registry.unsubscribe(path, on_change=on_change):
            if self.socket is None:
                logger.debug(f"unsubscribe: not connected, no request sent for {element.path}")
                continue
            self.request_dataref(element, frequency=0)
            logger.debug(f"unsubscribe: {element.path} id={element.id} unsubscribed")

    def unsubscribe_all(self):
        prnt = []
        for element in self.registry.clear():
            if self.socket is None:
                continue
            try:
                self.request_dataref(element, frequency=0)
                prnt.append(element.path)
            except (OSError, NotReady):
                logger.warning(f"unsubscribe_all: could not unsubscribe {element.path}", exc_info=True)
        logger.debug(f"unsubscribe_all: unsubscribed {prnt}")

    def set_dataref_value(self, dataref: DataRefElement | str, value: float | str):
        """Informs X-Plane to change the value of the dataref."""
        if dataref is None:
            raise InvalidArgument("set_dataref_value: no dataref")
        path = dataref.path if isinstance(dataref, DataRefElement) else dataref
        if not path:
            raise InvalidArgument("set_dataref_value: no dataref path")
        self.send(dref_request(path, value))
        logger.debug(f"set_dataref_value: {path}={value}")

    # ################################
    # Commands
    #
    def _command(self, command: XPlaneCommand | str) -> XPlaneCommand:
        if command is None:
            raise InvalidArgument("no command")
        if isinstance(command, str):
            return XPlaneCommand(command)
        return command

    def send_command(self, command: XPlaneCommand | str):
        command = self._command(command)
        if not command.is_valid():
            logger.warning(f"send_command: command {command} not sent (command placeholder, no command, do nothing)")
            return
        self.send(cmnd_request(command.command))
        logger.log(SPAM_LEVEL, f"send_command: executed {command}")

    def command_begin(self, command: XPlaneCommand | str):
        self.send_command(self._command(command).begin())

    def command_end(self, command: XPlaneCommand | str):
        self.send_command(self._command(command).end())

    def start_command(self, command: XPlaneCommand | str) -> CommandToken:
        """Sends a command continuously. Use the returned token to stop it."""
        command = self._command(command)
        if not command.is_valid():
            raise InvalidArgument(f"start_command: {command} is not a command")
        if self.socket is None:
            raise NotReady(f"start_command: no socket, cannot send {command}")
        token = CommandToken(command, send=self.send_command, interval=self.command_interval)
        with self._state_lock:
            self.commands.add(token)
        token.start()
        return token

    def stop_command(self, token: CommandToken):
        if token is None:
            raise InvalidArgument("stop_command: no command token")
        with self._state_lock:
            self.commands.discard(token)
        token.cancel(timeout=self.socket_timeout + self.command_interval)

    def quit_simulator(self):
        """Requests X-Plane to close, a notification message will appear."""
        self.send(quit_request())
        logger.info("quit_simulator: quit requested")

    def fail(self, system: int):
        """Informs X-Plane that a system is failed."""
        self.send(fail_request(system))
        logger.debug(f"fail: system {system} failed")

    def recover(self, system: int):
        """Informs X-Plane that a system is back to normal functioning."""
        self.send(reco_request(system))
        logger.debug(f"recover: system {system} recovered")
