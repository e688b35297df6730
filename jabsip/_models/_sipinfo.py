"""
SipInfo model and codec.

SipInfo is the small rendezvous payload peers exchange so that they can later
open a direct connection to each other. On the wire it is a flat map::

    {"visible": true, "ip": "10.0.0.2", "port": 50210,
     "uniqname": "3f2c...", "key": "b81a..."}

When ``visible`` is false the other four fields are omitted. The codec knows
nothing about the transport; it only converts between SipInfo and that map
(or its JSON text form).
"""

from __future__ import annotations

import json
from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any, Optional

from .._types import DecodeError, ValidationError

# Wire keys, in serialization order
VISIBLE = "visible"
IP = "ip"
PORT = "port"
UNIQNAME = "uniqname"
KEY = "key"

REQUIRED_FIELDS = (IP, PORT, UNIQNAME, KEY)


@dataclass(frozen=True)
class SipInfo:
    """
    Connection rendezvous information.

    Example:
        >>> info = SipInfo(visible=True, host="10.0.0.2", port=50210,
        ...                uniqname="node-1", key="secret")
        >>> SipInfo.from_json(info.to_json()) == info
        True
    """

    visible: bool = False
    host: Optional[str] = None
    port: Optional[int] = None
    uniqname: Optional[str] = None
    key: Optional[str] = None

    @classmethod
    def hidden(cls) -> SipInfo:
        """SipInfo announcing that this peer does not accept connections."""
        return cls(visible=False)

    @property
    def is_valid(self) -> bool:
        """Valid when invisible, or visible with all four fields present."""
        if not self.visible:
            return True
        return bool(self.host) and _valid_port(self.port) and bool(
            self.uniqname
        ) and bool(self.key)

    def to_dict(self) -> dict[str, Any]:
        return encode_sipinfo(self)

    def to_json(self) -> str:
        return json.dumps(encode_sipinfo(self), separators=(",", ":"))

    @classmethod
    def from_dict(cls, obj: Any) -> SipInfo:
        return decode_sipinfo(obj)

    @classmethod
    def from_json(cls, text: str) -> SipInfo:
        """
        Decode the JSON text form.

        Raises:
            DecodeError: Not JSON, or not a SipInfo-shaped map
            ValidationError: Visible but incomplete
        """
        try:
            obj = json.loads(text)
        except (TypeError, ValueError) as e:
            raise DecodeError(f"Invalid JSON in signaling message: {e}") from e
        return decode_sipinfo(obj)

    def __str__(self) -> str:
        if not self.visible:
            return "SipInfo(invisible)"
        return f"SipInfo({self.host}:{self.port}, {self.uniqname})"


def _valid_port(port: Any) -> bool:
    return (
        isinstance(port, int) and not isinstance(port, bool) and 0 < port < 65536
    )


def _parse_bool(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        lowered = value.strip().lower()
        if lowered in ("true", "1"):
            return True
        if lowered in ("false", "0"):
            return False
    if isinstance(value, int):
        return bool(value)
    raise DecodeError(f"Invalid 'visible' value: {value!r}")


def _parse_port(value: Any) -> Optional[int]:
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, str) and value.strip().isdigit():
        return int(value.strip())
    return None


def looks_like_sipinfo(obj: Any) -> bool:
    """Structural test: a map carrying a ``visible`` key."""
    return isinstance(obj, Mapping) and VISIBLE in obj


def encode_sipinfo(info: SipInfo) -> dict[str, Any]:
    """
    Convert SipInfo to its wire map.

    Raises:
        ValidationError: If a visible SipInfo is missing fields
    """
    if not info.visible:
        return {VISIBLE: False}

    if not info.is_valid:
        raise ValidationError(f"Refusing to encode incomplete {info}")

    return {
        VISIBLE: True,
        IP: info.host,
        PORT: info.port,
        UNIQNAME: info.uniqname,
        KEY: info.key,
    }


def decode_sipinfo(obj: Any) -> SipInfo:
    """
    Convert a wire map to SipInfo.

    Never returns a partially populated SipInfo: a visible payload missing any
    of ip/port/uniqname/key is rejected as a whole.

    Raises:
        DecodeError: If ``obj`` is not a map or has no usable ``visible`` key
        ValidationError: If visible and incomplete
    """
    if not isinstance(obj, Mapping):
        raise DecodeError(f"Signaling payload is not a map: {type(obj).__name__}")

    if VISIBLE not in obj:
        raise DecodeError("Signaling payload has no 'visible' key")

    if not _parse_bool(obj[VISIBLE]):
        return SipInfo.hidden()

    missing = [name for name in REQUIRED_FIELDS if obj.get(name) in (None, "")]
    if missing:
        raise ValidationError(f"Visible SipInfo missing {', '.join(missing)}")

    info = SipInfo(
        visible=True,
        host=str(obj[IP]),
        port=_parse_port(obj[PORT]),
        uniqname=str(obj[UNIQNAME]),
        key=str(obj[KEY]),
    )
    if not info.is_valid:
        raise ValidationError(f"Invalid port in SipInfo: {obj[PORT]!r}")

    return info
