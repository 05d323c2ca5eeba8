"""Minimal STOMP 1.2 frame codec.

Only what a subscribing client needs: CONNECT, SUBSCRIBE, UNSUBSCRIBE,
DISCONNECT out; CONNECTED, MESSAGE, RECEIPT, ERROR in.
"""

from dataclasses import dataclass, field

NULL = "\x00"
EOL = "\n"

_ESCAPES = (("\\", "\\\\"), ("\r", "\\r"), ("\n", "\\n"), (":", "\\c"))
_UNESCAPES = {"\\\\": "\\", "\\r": "\r", "\\n": "\n", "\\c": ":"}

# CONNECT and CONNECTED headers are never escaped
_RAW_COMMANDS = frozenset({"CONNECT", "CONNECTED", "STOMP"})


class StompProtocolError(ValueError):
    pass


def _escape(value: str) -> str:
    for raw, escaped in _ESCAPES:
        value = value.replace(raw, escaped)
    return value


def _unescape(value: str) -> str:
    out = []
    i = 0
    while i < len(value):
        if value[i] == "\\":
            pair = value[i : i + 2]
            if pair not in _UNESCAPES:
                raise StompProtocolError(f"Invalid header escape: {pair!r}")
            out.append(_UNESCAPES[pair])
            i += 2
        else:
            out.append(value[i])
            i += 1
    return "".join(out)


@dataclass(frozen=True)
class StompFrame:
    command: str
    headers: dict[str, str] = field(default_factory=dict)
    body: str = ""

    def encode(self) -> str:
        raw = self.command in _RAW_COMMANDS
        lines = [self.command]
        for key, value in self.headers.items():
            if raw:
                lines.append(f"{key}:{value}")
            else:
                lines.append(f"{_escape(key)}:{_escape(str(value))}")
        return EOL.join(lines) + EOL + EOL + self.body + NULL

    @classmethod
    def decode(cls, raw: str) -> "StompFrame":
        raw = raw.rstrip(NULL)
        head, sep, body = raw.partition(EOL + EOL)
        if not sep:
            head, body = raw, ""
        lines = head.replace("\r\n", EOL).split(EOL)
        command = lines[0].strip()
        if not command:
            raise StompProtocolError("Frame without a command")
        unescape = command not in _RAW_COMMANDS
        headers: dict[str, str] = {}
        for line in lines[1:]:
            if not line:
                continue
            key, colon, value = line.partition(":")
            if not colon:
                raise StompProtocolError(f"Malformed header line: {line!r}")
            if unescape:
                key, value = _unescape(key), _unescape(value)
            # Repeated headers: the first occurrence wins
            headers.setdefault(key, value)
        return cls(command=command, headers=headers, body=body)


def decode_frames(data: str | bytes) -> list[StompFrame]:
    """Split one websocket message into frames, skipping heart-beats."""
    if isinstance(data, bytes):
        data = data.decode("utf-8")
    frames = []
    for chunk in data.split(NULL):
        if not chunk.strip(EOL + "\r"):
            continue
        frames.append(StompFrame.decode(chunk.lstrip(EOL + "\r")))
    return frames
