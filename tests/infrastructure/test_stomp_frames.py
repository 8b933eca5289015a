"""STOMP Frames — encoding, parsing, heart-beat negotiation."""

import pytest

from territory_sync.infrastructure.stomp_frames import (
    HEARTBEAT, NUL, StompFrame, StompFrameError,
    connect_frame, negotiate_heartbeat, parse_frames, subscribe_frame,
)


def test_encode_ends_with_nul_and_blank_line():
    raw = StompFrame("SEND", {"destination": "/app/x"}, "hi").encode()
    assert raw == "SEND\ndestination:/app/x\n\nhi" + NUL


def test_parse_round_trips_escaped_headers():
    frame = StompFrame("MESSAGE", {"message": "a:b\nc"}, '{"type":"WORLD_RESET"}')
    [parsed] = parse_frames(frame.encode())
    assert parsed == frame


def test_connect_headers_are_not_escaped():
    raw = connect_frame("game.example.com", "abc", 4000, 4000).encode()
    assert "heart-beat:4000,4000" in raw
    assert "Authorization:Bearer abc" in raw
    assert "accept-version:1.2,1.1" in raw


def test_connect_without_token_has_no_authorization():
    raw = connect_frame("h", None, 0, 0).encode()
    assert "Authorization" not in raw


def test_parse_skips_heartbeats_and_splits_frames():
    data = HEARTBEAT + StompFrame("MESSAGE", body="1").encode() + "\n" + StompFrame("MESSAGE", body="2").encode()
    assert [f.body for f in parse_frames(data)] == ["1", "2"]
    assert parse_frames(HEARTBEAT) == []


def test_first_repeated_header_wins():
    [frame] = parse_frames("MESSAGE\nfoo:1\nfoo:2\n\n" + NUL)
    assert frame.headers["foo"] == "1"


@pytest.mark.parametrize("data", [
    "MESSAGE\nno-terminator" + NUL,
    "MESSAGE\nbroken-header\n\n" + NUL,
    "MESSAGE\nbad:esc\\q\n\n" + NUL,
])
def test_malformed_frames_raise(data):
    with pytest.raises(StompFrameError):
        parse_frames(data)


def test_subscribe_frame_targets_topic():
    frame = subscribe_frame("sub-0", "/topic/worlds/alpha")
    assert frame.headers["destination"] == "/topic/worlds/alpha"
    assert frame.headers["id"] == "sub-0"


@pytest.mark.parametrize("client_out,client_in,server,expected", [
    (4000, 4000, "4000,4000", (4000, 4000)),
    (4000, 4000, "10000,0", (0, 10000)),
    (4000, 0, "1000,1000", (4000, 0)),
    (4000, 4000, None, (0, 0)),
])
def test_negotiate_heartbeat(client_out, client_in, server, expected):
    assert negotiate_heartbeat(client_out, client_in, server) == expected


def test_negotiate_rejects_malformed_header():
    with pytest.raises(StompFrameError):
        negotiate_heartbeat(4000, 4000, "fast")
