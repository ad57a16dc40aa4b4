"""
MODULE OVERVIEW:
Payload decoding for the EventSource client.

WHAT IS HAPPENING HERE:
`decode_payload` never raises: it returns either `Decoded` (the payload was JSON) or
`RawText` (it was not, together with the reason). The dispatcher decides what a
failure means for the current communication type.
"""
import json
from dataclasses import dataclass
from typing import Any, Union


@dataclass(frozen=True)
class Decoded:
    value: Any


@dataclass(frozen=True)
class RawText:
    text: str
    reason: str = ""

    @property
    def value(self) -> str:
        return self.text


DecodeResult = Union[Decoded, RawText]


def decode_payload(raw: str) -> DecodeResult:
    try:
        return Decoded(json.loads(raw))
    except json.JSONDecodeError as e:
        return RawText(raw, str(e))
