#
# X P C O N N E C T O R
#
# X-Plane UDP dataref protocol client.
#
#
import os
import logging
from collections.abc import MutableMapping
from enum import Enum
import ruamel
from ruamel.yaml import YAML


# ##############################################################
# A few constants and default values
# Adjust with care...
#
# ROOT_DEBUG = "xpconnector.connector,xpconnector.registry"
ROOT_DEBUG = ""

SPAM_LEVEL = 15
SPAM = "SPAM"
logging.addLevelName(SPAM_LEVEL, SPAM)

LOGFILE = "xpconnector.log"
FORMAT = "[%(asctime)s] %(levelname)s %(threadName)s %(filename)s:%(funcName)s:%(lineno)d: %(message)s"

# Network
DEFAULT_XPLANE_HOST = "127.0.0.1"
DEFAULT_XPLANE_PORT = 49000  # X-Plane listens for UDP requests on that port
ANY = "0.0.0.0"
MAX_DATAGRAM_SIZE = 1472  # maximum bytes of an RREF answer X-Plane will send (Ethernet MTU - IP hdr - UDP hdr)

# Data too delicate to be changed
# !! adjust with care !!
DEFAULT_FREQUENCY = 1  # times per second X-Plane sends a requested dataref
MAX_DATAREF_AGE = 5.0  # secs, a dataref not updated for that long is requested again
CHECK_INTERVAL = 1.0  # secs, datarefs age is checked that often
SOCKET_TIMEOUT = 0.5  # secs, receive loop checks for cancellation that often
COMMAND_INTERVAL = 0.1  # secs between two repeated commands, 0 sends back-to-back
STOP_TIMEOUT = 5.0  # secs

# Datagram headers and fixed lengths.
RREF = "RREF"
DREF = "DREF"
CMND = "CMND"
QUIT = "QUIT"
FAIL = "FAIL"
RECO = "RECO"

RREF_LENGTH = 413  # RREF\0 + freq + id + 400 bytes path
RREF_PATH_LENGTH = 400  # path and its NUL terminator must fit
DREF_LENGTH = 509  # DREF\0 + value + 500 bytes path
HEADER_LENGTH = 4
RREF_VALUES_START = 5  # RREF, + (id, value) pairs
RREF_VALUE_LENGTH = 8


# Configuration attribute keywords
#
class CONFIG_KW(Enum):
    CHECK_INTERVAL = "check-interval"
    COMMAND_INTERVAL = "command-interval"
    DATAREFS = "datarefs"
    DEBUG = "debug"
    FREQUENCY = "frequency"
    HOST = "host"
    MAX_AGE = "max-age"
    PORT = "port"
    SOCKET_TIMEOUT = "socket-timeout"
    STRICT_DECODE = "strict-decode"
    STRINGS = "strings"


DEFAULT_VALUES = {
    CONFIG_KW.HOST.value: DEFAULT_XPLANE_HOST,
    CONFIG_KW.PORT.value: DEFAULT_XPLANE_PORT,
    CONFIG_KW.MAX_AGE.value: MAX_DATAREF_AGE,
    CONFIG_KW.CHECK_INTERVAL.value: CHECK_INTERVAL,
    CONFIG_KW.SOCKET_TIMEOUT.value: SOCKET_TIMEOUT,
    CONFIG_KW.COMMAND_INTERVAL.value: COMMAND_INTERVAL,
    CONFIG_KW.STRICT_DECODE.value: True,
    CONFIG_KW.FREQUENCY.value: DEFAULT_FREQUENCY,
}


# ############################################################
#
# Prevent aliasing
# https://stackoverflow.com/questions/64716894/ruamel-yaml-disabling-alias-for-dumping
ruamel.yaml.representer.RoundTripRepresenter.ignore_aliases = lambda x, y: True

yaml = YAML(typ="safe", pure=True)
yaml.default_flow_style = False

init_logger = logging.getLogger(__name__)
init_logger.setLevel(logging.WARNING)

#
#  Yaml config file reader
#
CONFIG_FILENAME = "__filename__"


class Config(MutableMapping):
    """
    A dictionary that loads from a yaml config file.
    """

    def __init__(self, filename: str | None = None):
        self.store = dict()
        if filename is not None:
            if os.path.exists(filename):
                filename = os.path.abspath(filename)
                with open(filename, "r") as fp:
                    self.store = yaml.load(fp)
                if self.store is None:  # empty file
                    self.store = dict()
                if not isinstance(self.store, dict):
                    raise ValueError(f"config file {filename} does not contain a mapping")
                init_logger.info(f"loaded config from {filename}")
                self.store[CONFIG_FILENAME] = filename
            else:
                init_logger.warning(f"no file {filename}")

    def __getitem__(self, key):
        return self.store[self._keytransform(key)]

    def __setitem__(self, key, value):
        self.store[self._keytransform(key)] = value

    def __delitem__(self, key):
        del self.store[self._keytransform(key)]

    def __iter__(self):
        return iter(self.store)

    def __len__(self):
        return len(self.store)

    def _keytransform(self, key) -> str:
        """Allows CONFIG_KW members as keys"""
        if isinstance(key, CONFIG_KW):
            return key.value
        return key

    def value(self, key, default=None):
        """Returns the configured value, or the application default."""
        key = self._keytransform(key)
        if key in self.store:
            return self.store[key]
        return DEFAULT_VALUES.get(key, default)

    def is_valid(self) -> bool:
        return self.store is not None and len(self.store) > 1  # because there always is self.store[CONFIG_FILENAME]

    def filename(self) -> str | None:
        return self.store.get(CONFIG_FILENAME)

    def from_filename(self) -> bool:
        return self.filename() is not None and self.filename() != ""
