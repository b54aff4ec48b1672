# tcppc

`tcppc` is a small listener for Linux. It accepts TCP, TLS and UDP traffic on
one port, completes the handshake, and records everything that clients send.
Each session can be written as one JSON object per line to a session file.
The file name may hold strftime fields, and the file can be rotated on a
fixed interval.

It is meant to sit behind an iptables `TPROXY` rule. Its sockets are opened
with `IP_TRANSPARENT` and `IP_RECVORIGDSTADDR`, so one instance can take
traffic sent to any address and port. For TCP and TLS the recorded destination
is the socket's local address; for UDP it is the original destination read
from the datagram's control messages (IPv4 only).

## Installation

```
pip install .
```

Python 3.11 or newer is required. There are no third-party dependencies. The
command refuses to run on anything but Linux, and setting `IP_TRANSPARENT`
needs root or `CAP_NET_ADMIN`.

## Usage

```
tcppc [options]
```

| Option | Default | Meaning |
| --- | --- | --- |
| `-H HOST` | `0.0.0.0` | address to listen on |
| `-p PORT` | `12345` | port to listen on |
| `-t SECONDS` | `60` | idle timeout for TCP/TLS connections |
| `-w FORMAT` | none | session file name; strftime fields allowed |
| `-T SECONDS` | `0` | rotation interval (0 turns rotation off) |
| `-offset SECONDS`, `--offset` | `0` | rotation interval offset |
| `-L FILE` | none | log file (deprecated); replaces logging to stderr |
| `-z ZONE` | `Local` | time zone used in session file names |
| `-R NUM` | `0` | maximum number of open file descriptors (needs root) |
| `-C FILE` | none | TLS certificate file |
| `-K FILE` | none | TLS key file |
| `-c FILE` | none | TOML configuration file |
| `-disable-tcp-server`, `--disable-tcp-server` | off | do not start the TCP/TLS server |
| `-disable-udp-server`, `--disable-udp-server` | off | do not start the UDP server |
| `-v` | | print the version and exit |

If both `-C` and `-K` are given, the stream server speaks TLS; if neither is
given, it speaks plain TCP. Giving only one of them is an error. `-z` takes
`Local` (the system time zone), `UTC`, or any IANA zone name.

Without `-w`, sessions are only logged, not written to a file.

With `-T`, the session file is closed and a new one opened whenever the Unix
time modulo the interval equals the offset. The new file name is computed
from the current time, and missing directories are created.

The process runs until SIGHUP, SIGINT or SIGTERM and then exits with status 0.
It exits with status 1 if start-up fails or a server stops with an error.

### Example

```
tcppc -p 12345 -w 'logs/%Y/%m/%d/tcppc-%Y%m%d-%H%M.jsonl' -T 86400 -z UTC
```

This starts a new session file every day at midnight UTC.

### Configuration file

With `-c`, the values below are read from the `[tcppc]` table of a TOML file
and override the matching command-line options. Every key must be present
with the type shown; `-disable-tcp-server` and `-disable-udp-server` still
come from the command line.

```toml
[tcppc]
host = "0.0.0.0"
port = 12345
timeout = 60
tcpFileFmt = "logs/tcppc-%Y%m%d.jsonl"
rotInt = 86400
rotOffset = 0
logFile = ""
timezone = "UTC"
maxFdNum = 0
x509Cert = ""
x509Key = ""
```

## Session records

Each line of a session file holds one session, written as compact JSON:

```json
{"timestamp":"2024-01-01T00:00:00.5Z","flow":{"proto":"tcp","src":"192.0.2.1","sport":40000,"dst":"198.51.100.1","dport":80},"payloads":[{"index":0,"timestamp":"2024-01-01T00:00:01Z","data":"R0VUIC8gSFRUUC8xLjANCg0K"}]}
```

- `proto` is `tcp`, `tls` or `udp`.
- Timestamps are RFC 3339, with a `Z` for UTC or a `+hh:mm` offset otherwise.
- `data` is base64-encoded. A TCP/TLS read brings at most 4096 bytes per
  payload; a UDP datagram is one session with one payload of at most 2048 bytes.
- `payloads` is `null` for a connection that sent nothing.

## Library use

The pieces can be used on their own:

- `tcppc.session`: `Flow`, `Payload` and `Session` dataclasses, the
  `tcp_flow`, `tls_flow` and `udp_flow` constructors taking `(host, port)`
  pairs, `Session.add_payload()` and `Session.to_json()`.
- `tcppc.writer`: `RotWriter(file_name_fmt, rot_int, rot_offset, tz)` appends
  one line per `write()` and flushes it; `start()` runs the rotation thread,
  and it works as a context manager. Failures raise `WriterError`.
- `tcppc.counter`: `SessionCounter` with `inc()`, `dec()`, `count()` and the
  `track()` context manager.
- `tcppc.tcp`: `listen_tcp()`, `handle_stream_session()`,
  `handle_tcp_session()` and `start_tcp_server()`.
- `tcppc.tlsserver`: `load_tls_context()`, `handle_tls_session()` and
  `start_tls_server()`.
- `tcppc.udp`: `parse_orig_dst()` (raises `OrigDstError`),
  `handle_udp_session()` and `start_udp_server()`.
- `tcppc.cli`: `Settings`, `build_parser()`, `load_config()`,
  `select_mode()` and `main()`.