#
# X P C O N N E C T O R
#
# X-Plane UDP dataref protocol client
#
#
from datetime import datetime

# ##############################################################
# References used throughout XPConnector
#
from .constant import *  # noqa: F403

#
# ##############################################################
# Version and information
#
__NAME__ = "xpconnector"
__COPYRIGHT__ = f"© 2023-{datetime.now().strftime('%Y')} XPConnector contributors"
__DESCRIPTION__ = "Subscribe to X-Plane datarefs, set their values, and send commands over UDP"

__version__ = "1.2.0"

from .errors import XPlaneConnectorError, InvalidArgument, ProtocolViolation, NotReady, ShutdownTimeout  # noqa: E402
from .dataref import DataRefElement, StringDataRefElement  # noqa: E402
from .command import XPlaneCommand, CommandToken  # noqa: E402
from .registry import DataRefRegistry  # noqa: E402
from .connector import XPlaneConnector, ConnectorState  # noqa: E402
