import base64
import json
from datetime import datetime, timedelta, timezone

from tcppc.session import (
    TIME_FMT,
    Flow,
    Payload,
    Session,
    format_time_str,
    tcp_flow,
    tls_flow,
    udp_flow,
)

SRC = ("192.0.2.1", 1234)
DST = ("198.51.100.2", 80)


def test_format_time_str():
    t = datetime(2020, 1, 2, 3, 4, 5, tzinfo=timezone(timedelta(hours=9)))
    assert format_time_str(t) == "2020-01-02T03:04:05+0900"


def test_format_time_str_matches_time_fmt():
    t = datetime(2021, 6, 7, 8, 9, 10, tzinfo=timezone.utc)
    assert format_time_str(t) == t.strftime(TIME_FMT)


def test_flow_string():
    flow = tcp_flow(SRC, DST)
    assert str(flow) == "Flow: tcp 192.0.2.1:1234 <-> 198.51.100.2:80"


def test_flow_protocols():
    assert tcp_flow(SRC, DST).proto == "tcp"
    assert tls_flow(SRC, DST).proto == "tls"
    assert udp_flow(SRC, DST).proto == "udp"


def test_flow_ipv4_mapped_and_ipv6_tuples():
    flow = udp_flow(("::ffff:192.0.2.1", 5, 0, 0), ("2001:db8::1", 53, 0, 0))
    assert flow.src == "192.0.2.1"
    assert flow.sport == 5
    assert flow.dst == "2001:db8::1"
    assert flow.dport == 53


def test_flow_to_dict_keys_in_order():
    d = tcp_flow(SRC, DST).to_dict()
    assert list(d) == ["proto", "src", "sport", "dst", "dport"]
    assert d["src"] == SRC[0] and d["dport"] == DST[1]


def test_add_payload_indices_and_copies():
    session = Session(tcp_flow(SRC, DST))
    buf = bytearray(b"abc")
    first = session.add_payload(buf)
    buf[0] = ord("z")
    second = session.add_payload(b"def")
    assert [p.index for p in session.payloads] == [0, 1]
    assert first.data == b"abc"
    assert second is session.payloads[1]


def test_session_string_counts_payloads():
    session = Session(tcp_flow(SRC, DST))
    session.add_payload(b"a")
    session.add_payload(b"b")
    text = str(session)
    assert text.startswith("Session: ")
    assert str(session.flow) in text
    assert text.endswith("(2 payloads)")


def test_payload_string():
    ts = datetime(2020, 1, 2, 3, 4, 5, tzinfo=timezone.utc)
    payload = Payload(0, ts, b"\x01\x02\x03")
    assert str(payload) == f"Payload 0: {format_time_str(ts)}: [1 2 3]"


def test_payload_timestamp_utc_uses_z():
    payload = Payload(3, datetime(1970, 1, 1, tzinfo=timezone.utc), b"")
    d = payload.to_dict()
    assert d["timestamp"] == "1970-01-01T00:00:00Z"
    assert d["data"] == ""
    assert d["index"] == 3


def test_payload_timestamp_fraction_and_offset():
    tz = timezone(timedelta(hours=-5, minutes=-30))
    payload = Payload(0, datetime(2020, 1, 2, 3, 4, 5, 120000, tzinfo=tz), b"x")
    assert payload.to_dict()["timestamp"].endswith(".12-05:30")


def test_empty_session_payloads_null():
    session = Session(udp_flow(SRC, DST))
    assert json.loads(session.to_json())["payloads"] is None


def test_to_json_round_trip():
    session = Session(tcp_flow(SRC, DST))
    session.add_payload(b"GET / HTTP/1.0\r\n\r\n")
    session.add_payload(b"\x00\xff")
    text = session.to_json()
    assert " " not in text
    doc = json.loads(text)
    assert list(doc) == ["timestamp", "flow", "payloads"]
    assert doc["flow"] == session.flow.to_dict()
    decoded = [base64.b64decode(p["data"]) for p in doc["payloads"]]
    assert decoded == [p.data for p in session.payloads]


def test_flow_is_hashable_and_comparable():
    assert tcp_flow(SRC, DST) == Flow("tcp", SRC[0], SRC[1], DST[0], DST[1])
    assert len({tcp_flow(SRC, DST), tcp_flow(SRC, DST)}) == 1