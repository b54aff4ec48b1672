"""Command-line entry point that runs the capture servers."""

import argparse
import logging
import os
import signal
import sys
import threading
import time
import tomllib
from dataclasses import dataclass, fields, replace
from datetime import timezone
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from .tcp import start_tcp_server
from .tlsserver import load_tls_context, start_tls_server
from .udp import start_udp_server
from .writer import RotWriter

logger = logging.getLogger(__name__)

VERSION = "0.4.0"
_LOG_FORMAT = ("%(asctime)s %(message)s", "%Y/%m/%d %H:%M:%S")

_CONFIG_KEYS = {
    "host": ("host", str), "port": ("port", int), "timeout": ("timeout", int),
    "tcpFileFmt": ("file_name_fmt", str), "rotInt": ("rot_int", int),
    "rotOffset": ("rot_offset", int), "logFile": ("log_file", str),
    "timezone": ("timezone", str), "maxFdNum": ("max_fd_num", int),
    "x509Cert": ("x509_cert", str), "x509Key": ("x509_key", str),
}


@dataclass(frozen=True)
class Settings:
    """Runtime options of the capture servers."""

    host: str = "0.0.0.0"
    port: int = 12345
    timeout: int = 60
    file_name_fmt: str = ""
    rot_int: int = 0
    rot_offset: int = 0
    log_file: str = ""
    timezone: str = "Local"
    max_fd_num: int = 0
    x509_cert: str = ""
    x509_key: str = ""
    config: str = ""
    disable_tcp_server: bool = False
    disable_udp_server: bool = False


class _Abort(Exception):
    pass


def _non_negative(text):
    value = int(text)
    if value < 0:
        raise argparse.ArgumentTypeError(f"must not be negative: {text}")
    return value


def build_parser():
    """Return the parser for the command-line options."""
    d = Settings()
    p = argparse.ArgumentParser(prog="tcppc",
                                description="Capture TCP, TLS and UDP sessions as JSON lines.")
    add = p.add_argument
    add("-H", dest="host", default=d.host, help="hostname to listen on.")
    add("-p", dest="port", type=int, default=d.port, help="port number to listen on.")
    add("-t", dest="timeout", type=int, default=d.timeout, help="timeout for TCP/TLS connection.")
    add("-w", dest="file_name_fmt", default="", help="session file (JSON lines format).")
    add("-T", dest="rot_int", type=int, default=0, help="rotation interval [sec].")
    add("-offset", "--offset", dest="rot_offset", type=int, default=0,
        help="rotation interval offset [sec].")
    add("-L", dest="log_file", default="", help="[deprecated] log file.")
    add("-z", dest="timezone", default=d.timezone, help="timezone used for session file.")
    add("-R", dest="max_fd_num", type=_non_negative, default=0,
        help="maximum number of file descriptors (need root privilege).")
    add("-C", dest="x509_cert", default="", help="TLS certificate file.")
    add("-K", dest="x509_key", default="", help="TLS key file.")
    add("-c", dest="config", default="", help="configuration file.")
    add("-disable-tcp-server", "--disable-tcp-server", dest="disable_tcp_server",
        action="store_true", help="disable TCP/TLS server.")
    add("-disable-udp-server", "--disable-udp-server", dest="disable_udp_server",
        action="store_true", help="disable UDP server.")
    add("-v", dest="version", action="store_true", help="show version and exit.")
    return p


def load_config(path, settings):
    """Override ``settings`` with every value of the [tcppc] table in a TOML file."""
    with open(path, "rb") as fh:
        section = tomllib.load(fh).get("tcppc")
    if not isinstance(section, dict):
        raise ValueError("missing [tcppc] table")
    values = {}
    for key, (attr, kind) in _CONFIG_KEYS.items():
        if key not in section:
            raise ValueError(f"missing key: tcppc.{key}")
        value = section[key]
        if isinstance(value, bool) or not isinstance(value, kind):
            raise ValueError(f"tcppc.{key} must be of type {kind.__name__}")
        values[attr] = value
    if values["max_fd_num"] < 0:
        raise ValueError("tcppc.maxFdNum must not be negative")
    return replace(settings, **values)


def select_mode(x509_cert, x509_key):
    """Return "tls" when both files are given, "tcp" when neither is."""
    if x509_cert and x509_key:
        return "tls"
    if not x509_cert and not x509_key:
        return "tcp"
    raise ValueError(
        "Either TLS certificate or key file is given. "
        "TCP handshaker: neither TLS certificate nor TLS key files are required. "
        "TLS handshaker: both TLS certificate and TLS key files are required.")


def _open_log_file(path):
    try:
        os.close(os.open(path, os.O_RDWR | os.O_CREAT | os.O_APPEND, 0o640))
        handler = logging.FileHandler(path)
    except OSError as exc:
        raise _Abort(f"Failed to open log file: {exc}") from exc
    root = logging.getLogger()
    for old in list(root.handlers):
        root.removeHandler(old)
    handler.setFormatter(logging.Formatter(*_LOG_FORMAT))
    root.addHandler(handler)
    logger.info("Open log file: %s", path)


def _apply_fd_limit(max_fd_num):
    import resource

    if max_fd_num > 0:
        try:
            resource.setrlimit(resource.RLIMIT_NOFILE, (max_fd_num, max_fd_num))
        except (ValueError, OSError) as exc:
            raise _Abort(f"Failed to set maximum number of file descriptors: {exc}") from exc
    logger.info("Maximum number of file descriptors: %d",
                resource.getrlimit(resource.RLIMIT_NOFILE)[0])


def _load_timezone(name):
    if name == "Local":
        return None
    if name in ("", "UTC"):
        return timezone.utc
    try:
        return ZoneInfo(name)
    except (ZoneInfoNotFoundError, ValueError) as exc:
        raise _Abort(f"Failed to load timezone: {name} {exc}") from exc


def _spawn(target, done, failed, *args):
    def run():
        try:
            target(*args)
        except Exception as exc:  # a server that stops takes the process with it
            logger.critical("%s failed: %s", target.__name__, exc)
            failed.set()
            done.set()

    threading.Thread(target=run, name=target.__name__, daemon=True).start()


def _run(settings):
    if not sys.platform.startswith("linux"):
        raise _Abort("This program runs only in Linux.")
    if settings.config:
        try:
            settings = load_config(settings.config, settings)
        except (OSError, tomllib.TOMLDecodeError, ValueError) as exc:
            raise _Abort(f"Failed to load configuration file: {exc}") from exc
    if settings.log_file:
        _open_log_file(settings.log_file)
    _apply_fd_limit(settings.max_fd_num)

    tz = _load_timezone(settings.timezone)
    logger.info("Timezone: %s", settings.timezone)
    logger.info("Timeout: %d", settings.timeout)

    mode = context = None
    if not settings.disable_tcp_server:
        try:
            mode = select_mode(settings.x509_cert, settings.x509_key)
        except ValueError as exc:
            raise _Abort(f"{exc} Abort.") from exc
    if mode == "tls":
        logger.info("Certificate: %s, Key: %s", settings.x509_cert, settings.x509_key)
        try:
            context = load_tls_context(settings.x509_cert, settings.x509_key)
        except OSError as exc:
            raise _Abort(f"Failed to load X509 key pair: {exc}") from exc

    writer = None
    if settings.file_name_fmt:
        logger.info("Session data file: %s (Rotate every %d seconds w/ %d seconds offset)",
                    settings.file_name_fmt, settings.rot_int, settings.rot_offset)
        writer = RotWriter(settings.file_name_fmt, settings.rot_int, settings.rot_offset, tz)
        writer.start()
    else:
        logger.info("Session data file: none.")
        logger.info("!!!CAUTION!!! Session data will not be written to files.")

    done, failed = threading.Event(), threading.Event()
    previous = {sig: signal.signal(sig, lambda *_: done.set())
                for sig in (signal.SIGHUP, signal.SIGINT, signal.SIGTERM)}
    try:
        if mode == "tcp":
            _spawn(start_tcp_server, done, failed,
                   settings.host, settings.port, writer, settings.timeout)
        elif mode == "tls":
            _spawn(start_tls_server, done, failed,
                   settings.host, settings.port, context, writer, settings.timeout)
        if not settings.disable_udp_server:
            time.sleep(0.1)
            _spawn(start_udp_server, done, failed, settings.host, settings.port, writer)
        while not done.wait(0.5):
            pass
    finally:
        for sig, handler in previous.items():
            signal.signal(sig, handler)
        if writer is not None:
            writer.close()

    if failed.is_set():
        return 1
    logger.info("Exit.")
    return 0


def main(argv=None):
    """Run the servers until a signal arrives; return the exit status."""
    ns = build_parser().parse_args(argv)
    if ns.version:
        print(VERSION)
        return 0
    logging.basicConfig(level=logging.INFO, format=_LOG_FORMAT[0], datefmt=_LOG_FORMAT[1])
    settings = Settings(**{f.name: getattr(ns, f.name) for f in fields(Settings)})
    try:
        return _run(settings)
    except _Abort as exc:
        logger.critical("%s", exc)
        return 1


if __name__ == "__main__":
    sys.exit(main())