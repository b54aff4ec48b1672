"""UDP listener that records every datagram as a one-payload session."""

from __future__ import annotations

import ipaddress
import logging
import socket
import struct
import threading
from collections.abc import Iterable
from typing import Any

from .session import Session, udp_flow
from .tcp import IP_RECVORIGDSTADDR, IP_TRANSPARENT, SOL_IP
from .writer import WriterError

logger = logging.getLogger(__name__)

_BUF_SIZE = 2048
_OOB_SIZE = 1024
_SOCKADDR_IN = struct.Struct("<H2s4s8x")


class OrigDstError(ValueError):
    """Raised when the original destination cannot be read from a datagram."""


def parse_orig_dst(ancdata: Iterable[tuple[int, int, bytes]]) -> tuple[str, int]:
    """Return the original (address, port) from ``recvmsg`` ancillary data."""
    orig_dst: tuple[str, int] | None = None
    for level, kind, data in ancdata:
        if level != SOL_IP or kind != IP_RECVORIGDSTADDR:
            continue
        if len(data) < _SOCKADDR_IN.size:
            raise OrigDstError("Truncated original destination address.")
        family, port, addr = _SOCKADDR_IN.unpack_from(data)
        if family != socket.AF_INET:
            raise OrigDstError("Unsupported network family.")
        orig_dst = (str(ipaddress.IPv4Address(addr)), int.from_bytes(port, "big"))
    if orig_dst is None:
        raise OrigDstError("No original destination in control messages.")
    return orig_dst


def handle_udp_session(
    src: tuple, dst: tuple, data: bytes, writer: Any
) -> Session:
    """Record one datagram as a session and store it."""
    session = Session(udp_flow(src, dst))
    session.add_payload(data)
    logger.info("UDP: Received: %s: %r (%d bytes)", session, bytes(data), len(data))

    if writer is not None:
        try:
            writer.write(session.to_json())
        except (WriterError, OSError) as exc:
            logger.error("Failed to write session data: %s (%s)", session, exc)
        else:
            logger.info("Wrote data: %s", session)
    return session


def _listen_udp(host: str, port: int) -> socket.socket:
    try:
        addr = ipaddress.ip_address(host)
    except ValueError:
        family, bind_host = socket.AF_INET, ""
    else:
        family = socket.AF_INET6 if addr.version == 6 else socket.AF_INET
        bind_host = host
    sock = socket.socket(family, socket.SOCK_DGRAM)
    try:
        sock.setsockopt(SOL_IP, IP_TRANSPARENT, 1)
        sock.setsockopt(SOL_IP, IP_RECVORIGDSTADDR, 1)
        sock.bind((bind_host, port))
    except BaseException:
        sock.close()
        raise
    return sock


def start_udp_server(host: str, port: int, writer: Any) -> None:
    """Receive datagrams forever, one handler thread per datagram."""
    logger.info("Server Mode: UDP")
    logger.info("Listen: %s:%d", host, port)

    with _listen_udp(host, port) as sock:
        logger.info("Start UDP server.")
        while True:
            try:
                data, ancdata, _flags, src = sock.recvmsg(_BUF_SIZE, _OOB_SIZE)
            except OSError as exc:
                logger.error("Failed to read UDP message: %s", exc)
                continue
            try:
                orig_dst = parse_orig_dst(ancdata)
            except OrigDstError as exc:
                logger.error("Failed to get the original destination: %s", exc)
                continue
            threading.Thread(
                target=handle_udp_session,
                args=(src, orig_dst, data, writer),
                daemon=True,
            ).start()