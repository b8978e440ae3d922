from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from .constants import ACK_END, ACK_START, ENCODING, MAX_MESSAGE_SIZE


def is_acknowledged(text: str) -> bool:
    return ACK_START in text and ACK_END in text


def strip_markers(text: str) -> str:
    # exactly one of each, start first
    return text.replace(ACK_START, "", 1).replace(ACK_END, "", 1)


@dataclass(frozen=True, slots=True)
class AckEnvelope:
    """UDP reply wrapper: ``ACK_START + payload + ACK_END``.

    A datagram only counts as an acknowledged response when both markers made
    it across. Anything less may be a truncated or garbled reply and is
    reported as missing (``parse`` returns None) rather than trusted.
    """

    payload: str

    def to_text(self) -> str:
        return ACK_START + self.payload + ACK_END

    def to_bytes(self) -> bytes:
        return self.to_text().encode(ENCODING)

    @staticmethod
    def parse(raw: bytes) -> Optional["AckEnvelope"]:
        if len(raw) > MAX_MESSAGE_SIZE:
            return None
        try:
            text = raw.decode(ENCODING)
        except UnicodeDecodeError:
            return None
        if not is_acknowledged(text):
            return None
        return AckEnvelope(payload=strip_markers(text))
