"""STOMP Frames — STOMP 1.2 text framing and heart-beat negotiation for the push channel.

Invariants:
    - encode() output always ends with a NUL octet; parse_frames() accepts any number
      of frames per WebSocket message and skips bare EOL heart-beats
    - Header values are escaped (\\\\, \\n, \\c, \\r) except on CONNECT/CONNECTED frames
    - negotiate_heartbeat follows STOMP 1.2 §Heart-beating: 0 disables a direction,
      otherwise the larger of the two proposals wins

Design Decisions:
    - Own framing over a STOMP library: available Python STOMP clients speak raw TCP,
      the push server only exposes STOMP over WebSocket (ADR: thin codec, no threads)
    - Frames are immutable dataclasses; builders keep header names in one place
"""

from dataclasses import dataclass, field

NUL = "\x00"
EOL = "\n"
HEARTBEAT = EOL

_UNESCAPED_COMMANDS = frozenset({"CONNECT", "CONNECTED"})
_ESCAPES = (("\\", "\\\\"), ("\r", "\\r"), ("\n", "\\n"), (":", "\\c"))
_UNESCAPES = {"\\\\": "\\", "\\r": "\r", "\\n": "\n", "\\c": ":"}


class StompFrameError(ValueError):
    """Raised when a WebSocket message does not contain well-formed STOMP frames."""


@dataclass(frozen=True)
class StompFrame:
    """One STOMP frame: command, headers, body."""
    command: str
    headers: dict[str, str] = field(default_factory=dict)
    body: str = ""

    def encode(self) -> str:
        escape = self.command not in _UNESCAPED_COMMANDS
        lines = [self.command]
        for name, value in self.headers.items():
            if escape:
                name, value = _escape(name), _escape(value)
            lines.append(f"{name}:{value}")
        return EOL.join(lines) + EOL + EOL + self.body + NUL


def _escape(text: str) -> str:
    for raw, escaped in _ESCAPES:
        text = text.replace(raw, escaped)
    return text


def _unescape(text: str) -> str:
    if "\\" not in text:
        return text
    out = []
    i = 0
    while i < len(text):
        pair = text[i:i + 2]
        if pair in _UNESCAPES:
            out.append(_UNESCAPES[pair])
            i += 2
        elif text[i] == "\\":
            raise StompFrameError(f"Undefined escape sequence in header: {pair!r}")
        else:
            out.append(text[i])
            i += 1
    return "".join(out)


def _parse_one(chunk: str) -> StompFrame:
    head, sep, body = chunk.partition(EOL + EOL)
    if not sep:
        # CRLF variant
        head, sep, body = chunk.partition("\r\n\r\n")
    if not sep:
        raise StompFrameError("Frame has no header terminator")
    lines = head.replace("\r\n", EOL).split(EOL)
    command = lines[0].strip()
    if not command:
        raise StompFrameError("Frame has no command")
    unescape = command not in _UNESCAPED_COMMANDS
    headers: dict[str, str] = {}
    for line in lines[1:]:
        if not line:
            continue
        name, colon, value = line.partition(":")
        if not colon:
            raise StompFrameError(f"Malformed header line: {line!r}")
        if unescape:
            name, value = _unescape(name), _unescape(value)
        # STOMP 1.2: first occurrence of a repeated header wins
        headers.setdefault(name, value)
    return StompFrame(command=command, headers=headers, body=body)


def parse_frames(data: str | bytes) -> list[StompFrame]:
    """Split one WebSocket message into frames. Heart-beat-only input yields []."""
    if isinstance(data, bytes):
        data = data.decode("utf-8")
    frames = []
    for chunk in data.split(NUL):
        chunk = chunk.lstrip("\r\n")
        if chunk:
            frames.append(_parse_one(chunk))
    return frames


def negotiate_heartbeat(
    outgoing_ms: int, incoming_ms: int, server_header: str | None,
) -> tuple[int, int]:
    """Effective (outgoing, incoming) intervals in ms given the server's heart-beat header."""
    sx, sy = 0, 0
    if server_header:
        try:
            sx_raw, sy_raw = server_header.split(",", 1)
            sx, sy = int(sx_raw), int(sy_raw)
        except ValueError:
            raise StompFrameError(f"Malformed heart-beat header: {server_header!r}")
    outgoing = 0 if outgoing_ms == 0 or sy == 0 else max(outgoing_ms, sy)
    incoming = 0 if incoming_ms == 0 or sx == 0 else max(incoming_ms, sx)
    return outgoing, incoming


# ─── Frame builders ──────────────────────────────────────────────

def connect_frame(
    host: str, token: str | None, outgoing_ms: int, incoming_ms: int,
) -> StompFrame:
    headers = {
        "accept-version": "1.2,1.1",
        "host": host,
        "heart-beat": f"{outgoing_ms},{incoming_ms}",
    }
    if token:
        headers["Authorization"] = f"Bearer {token}"
    return StompFrame("CONNECT", headers)


def subscribe_frame(subscription_id: str, destination: str) -> StompFrame:
    return StompFrame("SUBSCRIBE", {
        "id": subscription_id, "destination": destination, "ack": "auto",
    })


def unsubscribe_frame(subscription_id: str) -> StompFrame:
    return StompFrame("UNSUBSCRIBE", {"id": subscription_id})


def disconnect_frame(receipt: str) -> StompFrame:
    return StompFrame("DISCONNECT", {"receipt": receipt})
