import pytest

from .._connection import DEFAULT_READ_SIZE, Connection
from .._state import *
from .._util import (
    BadStatusLine,
    LocalProtocolError,
    RemoteProtocolError,
    TransportError,
    UnexpectedConnectionClose,
)

from .helpers import FakeNetwork, Recorder, make_connection, pump_until_done


def test_putrequest_wire_format():
    conn, network, rec = make_connection()
    assert not conn.connected
    assert conn.request_state is IDLE

    conn.putrequest("GET", "/index.html")
    assert conn.request_state is REQUEST_STARTED
    assert conn.outstanding()
    # nothing goes out until the head is finished
    assert not network.transports

    conn.putheader("Accept", "text/plain")
    conn.putheader("X-Count", 3)
    conn.endheaders()
    assert conn.request_state is IDLE
    assert conn.connected
    assert network.transport.host == "example.com"
    assert network.transport.port == 80
    assert bytes(network.transport.sent) == (
        b"GET /index.html HTTP/1.1\r\n"
        b"Host: example.com\r\n"
        b"Accept-Encoding: identity\r\n"
        b"Accept: text/plain\r\n"
        b"X-Count: 3\r\n"
        b"\r\n"
    )


def test_host_header_carries_non_default_port():
    conn, network, rec = make_connection(host="localhost", port=8080)
    conn.request("GET", "/")
    assert b"Host: localhost:8080\r\n" in network.transport.sent
    assert network.transport.port == 8080


def test_request_state_misuse():
    conn, network, rec = make_connection()
    with pytest.raises(LocalProtocolError):
        conn.putheader("Accept", "*/*")
    with pytest.raises(LocalProtocolError):
        conn.endheaders()

    conn.putrequest("GET", "/")
    with pytest.raises(LocalProtocolError):
        conn.putrequest("GET", "/other")
    # the failed putrequest didn't queue anything
    assert len(conn._outstanding) == 1

    conn.endheaders()
    with pytest.raises(LocalProtocolError):
        conn.putheader("Accept", "*/*")

    # a bad header is rejected before it touches the request
    conn.putrequest("GET", "/")
    with pytest.raises(LocalProtocolError):
        conn.putheader("X-Evil", "a\r\nInjected: yes")
    conn.endheaders()
    assert b"Injected" not in network.transport.sent


def test_request_adds_content_length():
    conn, network, rec = make_connection()
    conn.request(
        "POST",
        "/form",
        [("Content-Type", "application/x-www-form-urlencoded")],
        b"answer=42",
    )
    assert bytes(network.transport.sent) == (
        b"POST /form HTTP/1.1\r\n"
        b"Host: example.com\r\n"
        b"Accept-Encoding: identity\r\n"
        b"Content-Length: 9\r\n"
        b"Content-Type: application/x-www-form-urlencoded\r\n"
        b"\r\n"
        b"answer=42"
    )


def test_request_respects_existing_content_length():
    conn, network, rec = make_connection()
    conn.request("PUT", "/x", {"content-length": "3"}, b"abc")
    sent = bytes(network.transport.sent)
    assert sent.count(b"ength: ") == 1
    assert b"content-length: 3\r\n" in sent
    assert sent.endswith(b"\r\n\r\nabc")


def test_request_body_length_and_no_body():
    conn, network, rec = make_connection()
    conn.request("POST", "/", body=b"abcdef", body_length=4)
    assert b"Content-Length: 4\r\n" in network.transport.sent

    conn, network, rec = make_connection()
    conn.request("GET", "/")
    assert b"Content-Length" not in network.transport.sent
    assert network.transport.sent.endswith(b"\r\n\r\n")


def test_low_level_body_send():
    conn, network, rec = make_connection()
    conn.putrequest("POST", "/upload")
    conn.putheader("Content-Length", 5)
    conn.endheaders()
    conn.send(b"12345")
    assert network.transport.sent.endswith(b"Content-Length: 5\r\n\r\n12345")


def test_pump_simple_response():
    conn, network, rec = make_connection()
    conn.request("GET", "/")
    network.transport.incoming.append(
        b"HTTP/1.1 200 OK\r\nContent-Length: 5\r\n\r\nhello"
    )
    conn.pump()
    assert not conn.outstanding()
    assert rec.events == [("begin", 200), ("data", b"hello"), ("complete", 200)]
    # the connection stays open for the next request
    assert conn.connected

    # nothing outstanding: pump does nothing at all
    network.transport.readable_calls.clear()
    conn.pump()
    assert network.transport.readable_calls == []


def test_pump_never_blocks_by_default():
    conn, network, rec = make_connection()
    conn.request("GET", "/")
    conn.pump()
    conn.pump(timeout=0.5)
    assert network.transport.readable_calls == [0.0, 0.5]
    assert conn.outstanding()
    assert rec.events == []


def test_pump_requires_connection():
    conn, network, rec = make_connection()
    conn.putrequest("GET", "/")
    with pytest.raises(LocalProtocolError):
        conn.pump()


def test_pump_reads_in_read_size_pieces():
    conn, network, rec = make_connection(read_size=4)
    conn.request("GET", "/")
    network.transport.incoming.append(
        b"HTTP/1.1 200 OK\r\nContent-Length: 10\r\n\r\n0123456789"
    )
    pump_until_done(conn)
    assert rec.normalized() == [
        ("begin", 200),
        ("data", b"0123456789"),
        ("complete", 200),
    ]
    assert all(len(e[1]) <= 4 for e in rec.events if e[0] == "data")


def test_pipelining_in_one_read():
    conn, network, rec = make_connection()
    conn.request("GET", "/1")
    conn.request("GET", "/2")
    conn.request("HEAD", "/3")
    assert conn.outstanding()
    sent = bytes(network.transport.sent)
    assert sent.index(b"GET /1 ") < sent.index(b"GET /2 ") < sent.index(b"HEAD /3 ")
    # one connection for all three
    assert len(network.transports) == 1

    network.transport.incoming.append(
        b"HTTP/1.1 200 OK\r\nContent-Length: 3\r\n\r\none"
        b"HTTP/1.1 201 Created\r\nTransfer-Encoding: chunked\r\n\r\n"
        b"3\r\ntwo\r\n0\r\n\r\n"
        b"HTTP/1.1 202 Accepted\r\nContent-Length: 100\r\n\r\n"
    )
    conn.pump()
    assert not conn.outstanding()
    assert rec.events == [
        ("begin", 200),
        ("data", b"one"),
        ("complete", 200),
        ("begin", 201),
        ("data", b"two"),
        ("complete", 201),
        ("begin", 202),
        ("complete", 202),
    ]


def test_pipelining_split_anywhere():
    wire = (
        b"HTTP/1.1 200 OK\r\nContent-Length: 3\r\n\r\none"
        b"HTTP/1.1 200 OK\r\nTransfer-Encoding: chunked\r\n\r\n"
        b"3\r\ntwo\r\n0\r\n\r\n"
    )
    expected = [
        ("begin", 200),
        ("data", b"one"),
        ("complete", 200),
        ("begin", 200),
        ("data", b"two"),
        ("complete", 200),
    ]
    for split in range(1, len(wire)):
        conn, network, rec = make_connection()
        conn.request("GET", "/1")
        conn.request("GET", "/2")
        network.transport.incoming.extend([wire[:split], wire[split:]])
        pump_until_done(conn)
        assert rec.normalized() == expected


def test_callbacks_and_context():
    rec = Recorder()
    network = FakeNetwork()
    conn = Connection("example.com", transport_factory=network)

    # no callbacks registered is fine
    conn.request("GET", "/quiet")

    contexts = []
    conn.set_callbacks(
        on_begin=lambda r: contexts.append(r.context),
        on_data=rec.on_data,
        on_complete=rec.on_complete,
        context="ctx",
    )
    conn.request("GET", "/loud")
    network.transport.incoming.append(
        b"HTTP/1.1 200 OK\r\nContent-Length: 1\r\n\r\na"
        b"HTTP/1.1 200 OK\r\nContent-Length: 1\r\n\r\nb"
    )
    conn.pump()
    assert not conn.outstanding()
    # only the response created after set_callbacks reports anything
    assert contexts == ["ctx"]
    assert rec.events == [("data", b"b"), ("complete", 200)]


def test_eof_terminated_body_then_reconnect():
    conn, network, rec = make_connection()
    conn.request("GET", "/")
    network.transport.incoming.extend(
        [b"HTTP/1.0 200 OK\r\n\r\nuntil ", b"the end", b""]
    )
    pump_until_done(conn)
    assert rec.normalized() == [
        ("begin", 200),
        ("data", b"until the end"),
        ("complete", 200),
    ]
    assert not conn.connected
    assert network.transport.closed

    # a new request opens a new connection
    conn.request("GET", "/again")
    assert len(network.transports) == 2
    assert conn.connected


def test_eof_discards_rest_of_queue():
    conn, network, rec = make_connection()
    conn.request("GET", "/1")
    conn.request("GET", "/2")
    network.transport.incoming.extend([b"HTTP/1.1 200 OK\r\nConnection: close\r\n\r\nx", b""])
    pump_until_done(conn)
    assert rec.normalized() == [("begin", 200), ("data", b"x"), ("complete", 200)]
    assert not conn.outstanding()
    assert network.transport.closed


@pytest.mark.parametrize(
    "data",
    [
        b"",
        b"HTTP/1.1 200 OK\r\nContent-Length: 5\r\n",
        b"HTTP/1.1 200 OK\r\nTransfer-Encoding: chunked\r\n\r\n5\r\nab",
    ],
)
def test_unexpected_eof(data):
    conn, network, rec = make_connection()
    conn.request("GET", "/1")
    conn.request("GET", "/2")
    if data:
        network.transport.incoming.append(data)
    network.transport.incoming.append(b"")
    with pytest.raises(UnexpectedConnectionClose):
        pump_until_done(conn)
    assert not conn.outstanding()
    assert not conn.connected
    assert ("complete", 200) not in rec.events


def test_protocol_error_closes_connection():
    conn, network, rec = make_connection()
    conn.request("GET", "/1")
    conn.request("GET", "/2")
    network.transport.incoming.append(
        b"HTTP/1.1 200 OK\r\nContent-Length: 1\r\n\r\na" b"HTTP/1.1 xyz Bad\r\n"
    )
    with pytest.raises(BadStatusLine):
        conn.pump()
    # the first response made it through before things went wrong
    assert rec.events == [("begin", 200), ("data", b"a"), ("complete", 200)]
    assert not conn.outstanding()
    assert network.transport.closed


def test_unsolicited_data():
    conn, network, rec = make_connection()
    conn.request("GET", "/")
    network.transport.incoming.append(
        b"HTTP/1.1 200 OK\r\nContent-Length: 2\r\n\r\nokSURPRISE"
    )
    with pytest.raises(RemoteProtocolError):
        conn.pump()
    assert rec.events == [("begin", 200), ("data", b"ok"), ("complete", 200)]
    assert conn.trailing_data == b"SURPRISE"
    assert not conn.connected


def test_callback_usage_error_stays_local():
    conn, network, rec = make_connection()

    def on_begin(response):
        # too late, the request went out already
        conn.putheader("X-Too-Late", "yes")

    conn.set_callbacks(on_begin=on_begin)
    conn.request("GET", "/")
    network.transport.incoming.append(b"HTTP/1.1 200 OK\r\nContent-Length: 2\r\n\r\nok")
    with pytest.raises(LocalProtocolError) as excinfo:
        conn.pump()
    assert type(excinfo.value) is LocalProtocolError
    assert "putheader" in str(excinfo.value)
    assert not conn.outstanding()
    assert network.transport.closed


def test_on_complete_error_still_drops_response():
    conn, network, rec = make_connection()

    def on_complete(response):
        rec.on_complete(response)
        raise ValueError("boom")

    conn.set_callbacks(
        on_begin=rec.on_begin, on_data=rec.on_data, on_complete=on_complete
    )
    conn.request("GET", "/1")
    conn.request("GET", "/2")
    network.transport.incoming.append(
        b"HTTP/1.1 200 OK\r\nContent-Length: 1\r\n\r\na"
        b"HTTP/1.1 200 OK\r\nContent-Length: 1\r\n\r\nb"
    )
    with pytest.raises(ValueError):
        conn.pump()
    assert rec.events == [("begin", 200), ("data", b"a"), ("complete", 200)]
    # the rest of the read is lost, so the connection can't be trusted
    assert not conn.outstanding()
    assert network.transport.closed

    # nothing left to get stuck on, and the next request reconnects
    conn.pump()
    conn.request("GET", "/3")
    assert len(network.transports) == 2
    assert conn.outstanding()


def test_bad_host_leaves_request_state_alone():
    conn, network, rec = make_connection(host="evil.example\r\nX-Injected: yes")
    with pytest.raises(LocalProtocolError):
        conn.putrequest("GET", "/")
    assert conn.request_state is IDLE
    assert not conn.outstanding()
    with pytest.raises(LocalProtocolError):
        conn.endheaders()
    assert not network.transports


def test_close_discards_without_notifying():
    conn, network, rec = make_connection()
    conn.request("GET", "/1")
    network.transport.incoming.append(b"HTTP/1.1 200 OK\r\nContent-Length: 9\r\n\r\npart")
    conn.pump()
    assert rec.events == [("begin", 200), ("data", b"part")]
    conn.close()
    assert not conn.outstanding()
    assert not conn.connected
    assert network.transport.closed
    assert rec.events == [("begin", 200), ("data", b"part")]
    # closing twice is fine
    conn.close()

    # close() in the middle of a request throws the half-built request away
    conn.putrequest("GET", "/half")
    conn.close()
    assert conn.request_state is IDLE
    assert not conn.outstanding()


def test_connect_failure():
    conn, network, rec = make_connection()
    network.refuse = True
    with pytest.raises(TransportError) as excinfo:
        conn.request("GET", "/")
    assert excinfo.value.connection is conn
    assert isinstance(excinfo.value.__cause__, ConnectionRefusedError)
    assert not conn.outstanding()
    assert conn.request_state is IDLE

    # the caller can just try again
    network.refuse = False
    conn.request("GET", "/")
    assert conn.outstanding()


def test_send_failure():
    conn, network, rec = make_connection()
    conn.request("GET", "/1")
    network.transport.fail_send = True
    with pytest.raises(TransportError):
        conn.request("GET", "/2")
    assert not conn.outstanding()
    assert not conn.connected


def test_recv_failure():
    conn, network, rec = make_connection()
    conn.request("GET", "/1")
    network.transport.fail_recv = True
    with pytest.raises(TransportError) as excinfo:
        conn.pump()
    assert isinstance(excinfo.value.__cause__, ConnectionResetError)
    assert not conn.outstanding()
    assert network.transport.closed


def test_defaults_and_repr():
    conn = Connection("example.com")
    assert conn.port == 80
    assert conn._read_size == DEFAULT_READ_SIZE == 2048
    assert not conn.outstanding()
    assert repr(conn) == "<Connection example.com:80 outstanding=0>"
