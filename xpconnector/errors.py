# ###############################################
# XPlaneConnector errors
#
# All errors are raised to the caller of the operation that failed.
#


class XPlaneConnectorError(Exception):
    "base class of all connector errors"
    pass


class InvalidArgument(XPlaneConnectorError, ValueError):
    "missing or malformed dataref, path, or command"
    pass


class ProtocolViolation(XPlaneConnectorError):
    "inbound datagram references a dataref id that was never requested"

    def __init__(self, message: str, dataref_id: int | None = None):
        XPlaneConnectorError.__init__(self, message)
        self.dataref_id = dataref_id


class NotReady(XPlaneConnectorError):
    "send attempted while no socket is open"
    pass


class ShutdownTimeout(XPlaneConnectorError, TimeoutError):
    "network loops did not terminate in time"
    pass
