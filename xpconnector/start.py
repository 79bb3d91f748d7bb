"""Command line monitor for XPConnector

Subscribes to the datarefs given on the command line or in the config file,
and prints their values as they are received from X-Plane.

Press CTRL-C ** once ** to gracefully stop. X-Plane is asked to stop sending all datarefs.
"""

import os
import sys
import logging
import threading
import argparse

from xpconnector import XPlaneConnector, Config, __NAME__, __version__, __COPYRIGHT__
from xpconnector.constant import CONFIG_KW, FORMAT, LOGFILE, STOP_TIMEOUT
from xpconnector.errors import XPlaneConnectorError

logger = logging.getLogger(__name__)
startup_logger = logging.getLogger("XPConnector startup")


def string_dataref(value: str):
    # path:length
    path, sep, length = value.rpartition(":")
    if sep == "" or path == "":
        raise argparse.ArgumentTypeError(f"{value}: string dataref must be path:length")
    try:
        return path, int(length)
    except ValueError:
        raise argparse.ArgumentTypeError(f"{value}: invalid length {length}")


def get_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Monitor X-Plane datarefs")
    parser.add_argument("--version", action="store_true", help="show version information and exit")
    parser.add_argument("-c", "--config", metavar="config_file", type=str, help="yaml configuration file")
    parser.add_argument("--host", type=str, help="X-Plane host address")
    parser.add_argument("--port", type=int, help="X-Plane UDP port")
    parser.add_argument("-f", "--frequency", type=int, default=0, help="times per second X-Plane sends each dataref")
    parser.add_argument("-s", "--string", metavar="path:length", type=string_dataref, action="append", default=[], help="string dataref")
    parser.add_argument("-l", "--logfile", action="store_true", help=f"also log to {LOGFILE}")
    parser.add_argument("-v", "--verbose", action="store_true", help="show debug information")
    parser.add_argument("datarefs", metavar="dataref", type=str, nargs="*", help="dataref path")
    return parser


def configure_logging(verbose: bool = False, logfile: str | None = None):
    logging.basicConfig(level=logging.DEBUG if verbose else logging.INFO, format=FORMAT, datefmt="%H:%M:%S")
    if logfile is not None:
        formatter = logging.Formatter(FORMAT)
        handler = logging.FileHandler(logfile, mode="a")
        handler.setFormatter(formatter)
        logging.getLogger().addHandler(handler)


def print_value(element, value):
    print(f"{element.path} = {value}", flush=True)


def print_string(element, value):
    print(f"{element.path} = {element.text!r}", flush=True)


def main(argv=None) -> int:
    args = get_parser().parse_args(argv)

    if args.version:
        print(f"{__NAME__} {__version__} {__COPYRIGHT__}")
        return 0

    configure_logging(verbose=args.verbose, logfile=LOGFILE if args.logfile else None)
    startup_logger.info(f"{os.path.basename(sys.argv[0])} {__version__}")

    environ = Config(args.config)
    connector = XPlaneConnector(ip=args.host, port=args.port, environ=environ)

    frequency = args.frequency if args.frequency > 0 else int(environ.value(CONFIG_KW.FREQUENCY))
    datarefs = list(environ.get(CONFIG_KW.DATAREFS.value, [])) + args.datarefs
    strings = list(dict(environ.get(CONFIG_KW.STRINGS.value, {})).items()) + args.string
    if len(datarefs) + len(strings) == 0:
        startup_logger.warning("no dataref to monitor")
        return 1

    for path in datarefs:
        connector.subscribe(path, frequency=frequency, on_change=print_value)
    for path, length in strings:
        connector.subscribe(path, frequency=frequency, on_change=print_string, buffer_size=int(length))
    logger.info(f"monitoring {len(datarefs)} datarefs and {len(strings)} string datarefs from {connector.xplane_address}")

    errors = []

    def run():
        try:
            connector.start()
        except Exception as e:
            errors.append(e)

    thread = threading.Thread(target=run, name="XPConnector::start")
    thread.start()
    try:
        while thread.is_alive():
            thread.join(1.0)
    except KeyboardInterrupt:
        print("")  # to highlight CTRL-C in log window
        logger.info("terminating (please wait)..")
        try:
            connector.stop(timeout=STOP_TIMEOUT)
        except XPlaneConnectorError:
            logger.error("..could not terminate", exc_info=True)
            return 1
        thread.join()
        logger.info("..terminated")

    if len(errors) > 0:
        logger.error(f"connector failed: {errors[0]}")
        return 1
    return 0


# Run if unwrapped
if __name__ == "__main__":
    sys.exit(main())
