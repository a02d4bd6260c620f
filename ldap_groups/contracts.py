"""Interfaces of the collaborators the group provider calls into.

Both are supplied by the host application at construction time.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable, List, Optional, Protocol

from .directory.models import Principal


class GraphLookupError(Exception):
    """The group-containment store could not answer for one group."""


@dataclass(frozen=True)
class GraphGroup:
    node_id: str
    key: str


class UserDirectory(Protocol):
    def lookup_user_by_key(self, value: str, attribute: str) -> Optional[Principal]: ...

    def lookup_user_from_dn(self, dn: str) -> Optional[Principal]: ...

    def search_users_by_url(self, url: str, user_key: Optional[str] = None) -> List[Principal]:
        """Evaluate an LDAP URL query, optionally restricted to one user key."""
        ...


class GroupGraph(Protocol):
    def lookup_external_group(self, group_key: str) -> Optional[str]:
        """Node id of the local mirror of a directory group, or None."""
        ...

    def parent_groups(self, node_id: str) -> Iterable[GraphGroup]:
        """Groups that list the node as a member."""
        ...
