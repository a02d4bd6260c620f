from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, List, Optional, Set


class MembershipKind(str, Enum):
    STATIC = "static"
    DYNAMIC = "dynamic"


class SearchStatus(str, Enum):
    """Outcome classes of a directory round-trip."""

    OK = "ok"
    TRANSIENT = "transient"
    SIZE_LIMITED = "size_limited"
    PARTIAL = "partial"
    FATAL = "fatal"


@dataclass
class DirectoryEntry:
    dn: str
    attributes: Dict[str, List[str]] = field(default_factory=dict)

    def get(self, name: str) -> Optional[List[str]]:
        """Case-insensitive attribute lookup (servers do not agree on casing)."""
        if name in self.attributes:
            return self.attributes[name]
        low = name.lower()
        for k, v in self.attributes.items():
            if k.lower() == low:
                return v
        return None

    def first(self, name: str) -> str:
        vals = self.get(name) or []
        return vals[0] if vals else ""


@dataclass
class SearchResult:
    status: SearchStatus
    entries: List[DirectoryEntry] = field(default_factory=list)
    message: str = ""

    @property
    def ok(self) -> bool:
        return self.status is SearchStatus.OK

    @property
    def answered(self) -> bool:
        """True when the directory gave an authoritative (possibly truncated) answer."""
        return self.status in (SearchStatus.OK, SearchStatus.SIZE_LIMITED, SearchStatus.PARTIAL)


@dataclass(eq=False)
class Principal:
    key: str
    name: str
    dn: str = ""
    provider_key: str = "ldap"
    # Membership closure, filled once a full walk completed.
    groups: Optional[Set[str]] = field(default=None, repr=False)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Principal):
            return NotImplemented
        return self.key == other.key and self.provider_key == other.provider_key

    def __hash__(self) -> int:
        return hash((self.provider_key, self.key))


@dataclass(frozen=True)
class Group:
    provider_key: str
    key: str
    name: str
    site_id: int = 0
    dn: str = ""
    attributes: Dict[str, str] = field(default_factory=dict, compare=False)
    kind: MembershipKind = MembershipKind.STATIC
    members: Dict[str, Principal] = field(default_factory=dict, compare=False)
    preloaded: bool = False

    @property
    def dynamic(self) -> bool:
        return self.kind is MembershipKind.DYNAMIC

    @property
    def description(self) -> str:
        return self.attributes.get("description", "")
