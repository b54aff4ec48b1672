"""Flows, payloads and sessions captured by the servers."""

import base64
import ipaddress
import json
from dataclasses import asdict, dataclass, field
from datetime import datetime

TIME_FMT = "%Y-%m-%dT%H:%M:%S%z"


def _now():
    return datetime.now().astimezone()


def _aware(t):
    return t.astimezone() if t.utcoffset() is None else t


def format_time_str(t):
    """Format a time the way it appears in log lines."""
    return _aware(t).strftime(TIME_FMT)


def _rfc3339(t):
    t = _aware(t)
    text = t.strftime("%Y-%m-%dT%H:%M:%S")
    if t.microsecond:
        text += "." + f"{t.microsecond:06d}".rstrip("0")
    total = int(t.utcoffset().total_seconds())
    if not total:
        return text + "Z"
    hours, rest = divmod(abs(total), 3600)
    return f"{text}{'+' if total > 0 else '-'}{hours:02d}:{rest // 60:02d}"


def _ip_text(host):
    addr = ipaddress.ip_address(host.split("%", 1)[0])
    if addr.version == 6 and addr.ipv4_mapped is not None:
        addr = addr.ipv4_mapped
    return str(addr)


@dataclass(frozen=True)
class Flow:
    """Protocol and endpoints of a captured exchange."""

    proto: str
    src: str
    sport: int
    dst: str
    dport: int

    def __str__(self):
        return f"Flow: {self.proto} {self.src}:{self.sport} <-> {self.dst}:{self.dport}"

    def to_dict(self):
        return asdict(self)


def _flow(proto, src, dst):
    return Flow(proto, _ip_text(src[0]), int(src[1]), _ip_text(dst[0]), int(dst[1]))


def tcp_flow(src, dst):
    return _flow("tcp", src, dst)


def tls_flow(src, dst):
    return _flow("tls", src, dst)


def udp_flow(src, dst):
    return _flow("udp", src, dst)


@dataclass
class Payload:
    """One chunk of data received within a session."""

    index: int
    timestamp: datetime
    data: bytes

    def __str__(self):
        shown = " ".join(str(b) for b in self.data)
        return f"Payload {self.index}: {format_time_str(self.timestamp)}: [{shown}]"

    def to_dict(self):
        return {
            "index": self.index,
            "timestamp": _rfc3339(self.timestamp),
            "data": base64.b64encode(self.data).decode("ascii"),
        }


@dataclass
class Session:
    """A flow together with every payload received on it."""

    flow: Flow
    timestamp: datetime = field(default_factory=_now)
    payloads: list = field(default_factory=list)

    def __str__(self):
        return (f"Session: {format_time_str(self.timestamp)}: {self.flow} "
                f"({len(self.payloads)} payloads)")

    def add_payload(self, data):
        """Append a copy of ``data`` as the next payload and return it."""
        payload = Payload(len(self.payloads), _now(), bytes(data))
        self.payloads.append(payload)
        return payload

    def to_dict(self):
        return {
            "timestamp": _rfc3339(self.timestamp),
            "flow": self.flow.to_dict(),
            "payloads": [p.to_dict() for p in self.payloads] or None,
        }

    def to_json(self):
        return json.dumps(self.to_dict(), separators=(",", ":"))