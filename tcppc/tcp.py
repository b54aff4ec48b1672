"""TCP listener and the stream session handler shared with TLS."""

import ipaddress
import logging
import socket
import threading

from .counter import counter
from .session import Session, tcp_flow
from .writer import WriterError

logger = logging.getLogger(__name__)

SOL_IP = getattr(socket, "SOL_IP", socket.IPPROTO_IP)
IP_TRANSPARENT = getattr(socket, "IP_TRANSPARENT", 19)
IP_RECVORIGDSTADDR = getattr(socket, "IP_RECVORIGDSTADDR", 20)


def _address(host):
    """Return the address family and bind host for ``host``."""
    try:
        addr = ipaddress.ip_address(host)
    except ValueError:
        return socket.AF_INET, ""
    return (socket.AF_INET6 if addr.version == 6 else socket.AF_INET), host


def listen_tcp(host, port, transparent=True):
    """Open a listening TCP socket, optionally in transparent-proxy mode."""
    family, bind_host = _address(host)
    sock = socket.socket(family, socket.SOCK_STREAM)
    try:
        sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
        if transparent:
            sock.setsockopt(SOL_IP, IP_TRANSPARENT, 1)
            sock.setsockopt(SOL_IP, IP_RECVORIGDSTADDR, 1)
        sock.bind((bind_host, port))
        sock.listen(socket.SOMAXCONN)
    except BaseException:
        sock.close()
        raise
    return sock


def _write_session(session, writer):
    if writer is None:
        return
    try:
        writer.write(session.to_json())
    except (WriterError, OSError) as exc:
        logger.error("Failed to write session data: %s (%s)", session, exc)
    else:
        logger.info("Wrote data: %s", session)


def handle_stream_session(conn, flow_factory, writer, timeout):
    """Read from ``conn`` until EOF, error or timeout; record and store the session."""
    with conn, counter.track():
        session = Session(flow_factory(conn.getpeername(), conn.getsockname()))
        prefix = session.flow.proto.upper()
        logger.info("%s: Established: %s (#Sessions: %d)", prefix, session, counter.count())
        error = None
        while True:
            try:
                conn.settimeout(max(timeout, 0))
                data = conn.recv(4096)
            except OSError as exc:
                error = exc
                break
            if not data:
                break
            session.add_payload(data)
            logger.info("%s: Received: %s: %r (%d bytes)", prefix, session, data, len(data))

        _write_session(session, writer)
        if error is None:
            logger.info("Closed: %s (#Sessions: %d)", session, counter.count())
        else:
            logger.info("Aborted: %s %s (#Sessions: %d)", session, error, counter.count())
    return session


def handle_tcp_session(conn, writer, timeout):
    """Handle one accepted TCP connection."""
    return handle_stream_session(conn, tcp_flow, writer, timeout)


def start_tcp_server(host, port, writer, timeout):
    """Accept TCP connections forever, one handler thread per connection."""
    logger.info("Server Mode: TCP")
    logger.info("Listen: %s:%d", host, port)
    with listen_tcp(host, port, True) as ln:
        logger.info("Start TCP server.")
        while True:
            conn, _ = ln.accept()
            threading.Thread(target=handle_tcp_session,
                             args=(conn, writer, timeout), daemon=True).start()