"""
Data models for identities, stanzas and the SipInfo payload.
"""

from ._jid import Jid
from ._sipinfo import (
    SipInfo,
    decode_sipinfo,
    encode_sipinfo,
    looks_like_sipinfo,
)
from ._stanza import (
    Capabilities,
    DiscoInfo,
    Iq,
    Message,
    Presence,
    RosterItem,
    SoftwareVersion,
)

__all__ = [
    # Identity
    "Jid",
    # SipInfo codec
    "SipInfo",
    "encode_sipinfo",
    "decode_sipinfo",
    "looks_like_sipinfo",
    # Stanzas
    "Presence",
    "Iq",
    "Message",
    "RosterItem",
    # Extensions
    "Capabilities",
    "DiscoInfo",
    "SoftwareVersion",
]
