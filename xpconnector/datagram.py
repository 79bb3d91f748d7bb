# Binary datagrams exchanged with X-Plane over UDP.
#
# Outbound: a NUL terminated 4 character header followed by typed fields,
# little endian, zero padded to a fixed length for RREF and DREF.
# Inbound: only RREF value streams are decoded.
#
import struct
import logging

from .constant import SPAM_LEVEL, RREF, DREF, CMND, QUIT, FAIL, RECO
from .constant import RREF_LENGTH, RREF_PATH_LENGTH, DREF_LENGTH, HEADER_LENGTH, RREF_VALUES_START, RREF_VALUE_LENGTH
from .errors import InvalidArgument

logger = logging.getLogger(__name__)
# logger.setLevel(SPAM_LEVEL)  # To see each datagram content
# logger.setLevel(logging.DEBUG)

ENCODING = "utf-8"


class XPDatagram:
    """Builds one outbound datagram, field by field."""

    def __init__(self):
        self._buffer = bytearray()

    def __len__(self):
        return len(self._buffer)

    def __repr__(self):
        return f"XPDatagram({bytes(self._buffer[:HEADER_LENGTH])!r}, {len(self)} bytes)"

    def add_string(self, value: str):
        self._buffer.extend(value.encode(ENCODING))
        self._buffer.append(0)
        return self

    def add_int(self, value: int):
        self._buffer.extend(struct.pack("<i", value))
        return self

    def add_float(self, value: float):
        self._buffer.extend(struct.pack("<f", value))
        return self

    def add(self, value):
        # bool is an int, but X-Plane has no bool field
        if isinstance(value, str):
            return self.add_string(value)
        if isinstance(value, bool):
            raise InvalidArgument(f"add: cannot encode boolean {value}")
        if isinstance(value, int):
            return self.add_int(value)
        if isinstance(value, float):
            return self.add_float(value)
        raise InvalidArgument(f"add: cannot encode {type(value).__name__} {value!r}")

    def fill_to(self, length: int):
        """Pads with zeroes up to length bytes.

        Content longer than length is a malformed request, for example a dataref path
        that does not fit the fixed size field.
        """
        if len(self._buffer) > length:
            raise InvalidArgument(f"fill_to: datagram is {len(self._buffer)} bytes, more than {length} bytes allowed")
        self._buffer.extend(bytes(length - len(self._buffer)))
        return self

    def get(self) -> bytes:
        return bytes(self._buffer)


# ################################
# Outbound requests
#
def rref_path_fits(path: str) -> bool:
    return len(path.encode(ENCODING)) + 1 <= RREF_PATH_LENGTH


def rref_request(frequency: int, dataref_id: int, path: str) -> bytes:
    """Asks X-Plane to send dataref path frequency times per second, tagged with dataref_id.
    A frequency of 0 stops the stream.
    """
    if not path:
        raise InvalidArgument("rref_request: no dataref path")
    dg = XPDatagram().add_string(RREF).add_int(frequency).add_int(dataref_id).add_string(path).fill_to(RREF_LENGTH)
    logger.log(SPAM_LEVEL, f"rref_request: {path} id={dataref_id} freq={frequency}")
    return dg.get()


def dref_request(path: str, value: float | str) -> bytes:
    if not path:
        raise InvalidArgument("dref_request: no dataref path")
    dg = XPDatagram().add_string(DREF)
    if isinstance(value, str):
        dg.add_string(value)
    elif isinstance(value, (int, float)) and not isinstance(value, bool):
        dg.add_float(float(value))
    else:
        raise InvalidArgument(f"dref_request: {path}: invalid value {value!r}")
    dg.add_string(path).fill_to(DREF_LENGTH)
    logger.log(SPAM_LEVEL, f"dref_request: {path}={value}")
    return dg.get()


def cmnd_request(command: str) -> bytes:
    if not command:
        raise InvalidArgument("cmnd_request: no command")
    return XPDatagram().add_string(CMND).add_string(command).get()


def quit_request() -> bytes:
    return XPDatagram().add_string(QUIT).get()


def fail_request(system: int | str) -> bytes:
    return XPDatagram().add_string(FAIL).add_string(str(system)).get()


def reco_request(system: int | str) -> bytes:
    return XPDatagram().add_string(RECO).add_string(str(system)).get()


# ################################
# Inbound datagrams
#
def header(buffer: bytes) -> str:
    return buffer[:HEADER_LENGTH].decode(ENCODING, errors="replace")


def is_rref(buffer: bytes) -> bool:
    return buffer[:HEADER_LENGTH] == RREF.encode(ENCODING)


def decode_rref(buffer: bytes):
    """Yields (id, value) pairs of an RREF datagram.

    We get 8 bytes for every dataref sent: an integer for id and the float value.
    Trailing bytes that do not make a complete pair are reported and ignored.
    """
    count, extra = divmod(len(buffer) - RREF_VALUES_START, RREF_VALUE_LENGTH)
    for i in range(count):
        start = RREF_VALUES_START + RREF_VALUE_LENGTH * i
        yield struct.unpack_from("<if", buffer, start)
    if count >= 0 and extra > 0:
        logger.warning(f"decode_rref: malformed datagram, {extra} trailing bytes ignored after {count} values")
