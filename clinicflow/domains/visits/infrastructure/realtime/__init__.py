"""Real-time payment event transport."""

from .stomp_frames import StompFrame, StompProtocolError, decode_frames
from .stomp_transport import StompWebSocketTransport

__all__ = ["StompFrame", "StompProtocolError", "decode_frames", "StompWebSocketTransport"]
