from __future__ import annotations

import logging
from typing import TYPE_CHECKING, List, Optional, Set, Tuple

from ldap3.core.exceptions import LDAPException

from ..contracts import GraphLookupError, GroupGraph, UserDirectory
from ..directory.models import Principal
from ..directory.utils import and_filter, escape_ldap_filter_value, remove_key_prefix
from ..settings import GroupProviderSettings

if TYPE_CHECKING:
    from ldap3 import Connection

    from ..directory.client import DirectoryConnector

logger = logging.getLogger(__name__)


class MembershipClosureWalker:
    """Computes every group a user belongs to, directly or through nesting.

    Direct memberships come from the directory (static member lists and
    dynamic group queries). Nesting comes from the group-containment graph,
    walked upwards with a visited set so cycles terminate.
    """

    def __init__(
        self,
        cfg: GroupProviderSettings,
        connector: "DirectoryConnector",
        users: UserDirectory,
        graph: Optional[GroupGraph] = None,
    ) -> None:
        self.cfg = cfg
        self.connector = connector
        self.users = users
        self.graph = graph

    def closure(self, user: Principal) -> Set[str]:
        if user.groups is not None:
            return user.groups
        if not user.dn or user.provider_key != self.cfg.provider_key:
            return set()

        try:
            with self.connector.session() as conn:
                direct = self.direct_memberships(conn, user)
        except LDAPException as e:
            self.connector.failure(e, "membership search")
            return set()
        if direct is None:
            return set()

        nested, complete = self.walk(direct)
        result = set(direct) | nested
        if complete:
            user.groups = result
        return result

    def direct_memberships(self, conn: "Connection", user: Principal) -> Optional[List[str]]:
        """Static then dynamic direct memberships; None when the directory failed."""
        prefix = self.cfg.key_prefix
        ident = self.cfg.identity_attribute
        result: List[str] = []

        static_filter = and_filter(
            f"(objectClass={self.cfg.static_object_class})",
            f"({self.cfg.members_attribute}={escape_ldap_filter_value(user.dn)})",
        )
        res = self.connector.search(conn, static_filter, [ident], size_limit=0)
        if not res.answered:
            return None
        for entry in res.entries:
            key = entry.first(ident)
            if key:
                logger.debug("groupKey=%s", key)
                result.append(prefix + key)

        url_attr = self.cfg.dynamic_members_attribute
        res = self.connector.search(
            conn, f"(objectClass={self.cfg.dynamic_object_class})", [ident, url_attr], size_limit=0
        )
        if not res.answered:
            return None
        user_key = remove_key_prefix(user.key, prefix)
        for entry in res.entries:
            key = entry.first(ident)
            if not key:
                continue
            for url in entry.get(url_attr) or []:
                if self.users.search_users_by_url(url, user_key=user_key):
                    logger.debug("groupKey=%s (dynamic)", key)
                    result.append(prefix + key)
                    break
        return result

    def walk(self, direct: List[str]) -> Tuple[Set[str], bool]:
        """Collect parent groups of the direct groups. Returns (groups, complete)."""
        found: Set[str] = set()
        if self.graph is None:
            return found, True

        visited: Set[str] = set()
        complete = True
        for group_key in direct:
            try:
                node_id = self.graph.lookup_external_group(remove_key_prefix(group_key, self.cfg.key_prefix))
                if node_id is None:
                    continue
                self._descend(node_id, visited, found)
            except GraphLookupError as e:
                logger.warning("Error retrieving membership for group %s: %s", group_key, e)
                complete = False
        return found, complete

    def _descend(self, start: str, visited: Set[str], found: Set[str]) -> None:
        # Iterative depth-first walk; deep nesting must not hit the recursion limit.
        stack = [start]
        while stack:
            node_id = stack.pop()
            if node_id in visited:
                continue
            visited.add(node_id)
            for parent in self.graph.parent_groups(node_id):
                found.add(parent.key)
                if parent.node_id not in visited:
                    stack.append(parent.node_id)
