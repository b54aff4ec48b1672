"""TLS listener built on the TCP stream session handler."""

from __future__ import annotations

import logging
import socket
import ssl
import threading
from typing import Any

from .session import Session, tls_flow
from .tcp import handle_stream_session, listen_tcp

logger = logging.getLogger(__name__)


def load_tls_context(cert_file: str, key_file: str) -> ssl.SSLContext:
    """Build a server-side TLS context from a certificate and key file."""
    context = ssl.SSLContext(ssl.PROTOCOL_TLS_SERVER)
    context.load_cert_chain(cert_file, key_file)
    return context


def handle_tls_session(conn: socket.socket, writer: Any, timeout: float) -> Session:
    """Handle one accepted TLS connection; the handshake happens on first read."""
    return handle_stream_session(conn, tls_flow, writer, timeout)


def start_tls_server(
    host: str, port: int, context: ssl.SSLContext, writer: Any, timeout: float
) -> None:
    """Accept TLS connections forever, one handler thread per connection."""
    logger.info("Server Mode: TLS")
    logger.info("Listen: %s:%d", host, port)

    with listen_tcp(host, port, True) as ln:
        logger.info("Start TLS server.")
        while True:
            raw, _ = ln.accept()
            try:
                conn = context.wrap_socket(
                    raw, server_side=True, do_handshake_on_connect=False
                )
            except OSError as exc:
                logger.error("Failed to set up TLS connection: %s", exc)
                raw.close()
                continue
            threading.Thread(
                target=handle_tls_session,
                args=(conn, writer, timeout),
                daemon=True,
            ).start()