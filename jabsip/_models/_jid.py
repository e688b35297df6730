"""
Network identities (JIDs).

A full JID (``local@domain/resource``) identifies one peer for presence
purposes. The bare JID (``local@domain``) is shared by all resources of the
same account and is what the contact list works with.
"""

from __future__ import annotations

from dataclasses import dataclass
from functools import total_ordering
from typing import Optional, Union


@total_ordering
@dataclass(frozen=True)
class Jid:
    """Immutable, hashable network address."""

    local: str = ""
    domain: str = ""
    resource: str = ""

    @classmethod
    def parse(cls, value: Union[Jid, str]) -> Jid:
        """
        Parse a JID string.

        Args:
            value: ``local@domain/resource``, ``local@domain`` or ``domain``

        Returns:
            Parsed Jid (domain is lowercased, local and resource kept as-is)

        Raises:
            ValueError: If the string has no domain part
        """
        if isinstance(value, Jid):
            return value

        text = value.strip()
        bare, _, resource = text.partition("/")
        if "@" in bare:
            local, _, domain = bare.rpartition("@")
        else:
            local, domain = "", bare

        if not domain:
            raise ValueError(f"Invalid JID: {value!r}")

        return cls(local=local, domain=domain.lower(), resource=resource)

    @property
    def bare(self) -> str:
        if self.local:
            return f"{self.local}@{self.domain}"
        return self.domain

    @property
    def full(self) -> str:
        if self.resource:
            return f"{self.bare}/{self.resource}"
        return self.bare

    @property
    def is_bare(self) -> bool:
        return not self.resource

    def bare_jid(self) -> Jid:
        """Return this JID without its resource."""
        return Jid(local=self.local, domain=self.domain)

    def with_resource(self, resource: Optional[str]) -> Jid:
        """Return a copy bound to another resource."""
        return Jid(local=self.local, domain=self.domain, resource=resource or "")

    def __str__(self) -> str:
        return self.full

    def __lt__(self, other: object) -> bool:
        if not isinstance(other, Jid):
            return NotImplemented
        return self.full < other.full
