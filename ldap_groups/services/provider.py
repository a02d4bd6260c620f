from __future__ import annotations

import dataclasses
import logging
from typing import Any, Dict, List, Mapping, Optional, Tuple

from ldap3.core.exceptions import LDAPException

from ..contracts import GroupGraph, UserDirectory
from ..directory.client import DirectoryConnector
from ..directory.members import MembershipResolver
from ..directory.models import Group, Principal, SearchResult, SearchStatus
from ..directory.ranges import RangeAttributeLoader
from ..directory.translator import EntryTranslator
from ..directory.utils import build_group_filter, remove_key_prefix
from ..env_settings import get_env
from ..settings import GroupProviderSettings
from .cache import GroupCache
from .closure import MembershipClosureWalker

logger = logging.getLogger(__name__)


class LDAPGroupProvider:
    """Read-only group provider backed by an LDAP directory.

    Every collaborator is passed in explicitly; ``create_provider`` wires the
    default ones.
    """

    def __init__(
        self,
        cfg: GroupProviderSettings,
        connector: DirectoryConnector,
        cache: GroupCache,
        users: UserDirectory,
        graph: Optional[GroupGraph] = None,
    ) -> None:
        self.cfg = cfg
        self.connector = connector
        self.cache = cache
        self.users = users
        self.resolver = MembershipResolver(cfg, users)
        self.translator = EntryTranslator(cfg, self.resolver)
        self.ranges = RangeAttributeLoader(connector, cfg.ad_range_step) if cfg.ad_range_step > 0 else None
        self.walker = MembershipClosureWalker(cfg, connector, users, graph)

    @property
    def key(self) -> str:
        return self.cfg.provider_key

    # -- search helpers -----------------------------------------------------

    def map_criteria(self, criteria: Optional[Mapping[str, Any]]) -> Dict[str, str]:
        """Translate canonical property names in search criteria to directory attributes."""
        out = {str(k): str(v) for k, v in (criteria or {}).items() if v is not None}
        for prop, ldap_attr in self.cfg.attribute_map.items():
            if prop in out:
                out[ldap_attr] = out.pop(prop)
        if "members" in out:
            out[self.cfg.members_attribute] = out.pop("members")
        return out

    def group_filter(self, criteria: Optional[Mapping[str, Any]] = None) -> str:
        return build_group_filter(
            self.map_criteria(criteria),
            self.cfg.wildcard_attributes,
            self.cfg.static_object_class,
            self.cfg.dynamic_object_class,
        )

    def _search_groups(self, conn, criteria: Optional[Mapping[str, Any]]) -> SearchResult:
        flt = self.group_filter(criteria)
        res = self.connector.search(conn, flt)
        if self.ranges is not None and res.entries:
            res = self.ranges.expand(
                conn, res, flt, self.cfg.identity_attribute, self.cfg.members_attribute
            )
        return res

    def _run(self, criteria: Optional[Mapping[str, Any]]) -> SearchResult:
        try:
            with self.connector.session() as conn:
                return self._search_groups(conn, criteria)
        except LDAPException as e:
            return self.connector.failure(e, "group search")

    def _translate_all(self, res: SearchResult) -> List[Group]:
        groups: List[Group] = []
        for entry in res.entries:
            group = self.translator.translate(entry)
            if group is not None:
                groups.append(group)
        return groups

    # -- lookups ------------------------------------------------------------

    def _lookup_in_directory(self, group_key: str) -> Tuple[bool, Optional[Group]]:
        logger.debug("lookupGroupInLDAP :: %s", group_key)
        res = self._run({self.cfg.identity_attribute: group_key})
        if not res.answered:
            return False, None
        if not res.entries:
            # An empty overflow answer says nothing about existence.
            return res.status is not SearchStatus.SIZE_LIMITED, None
        if len(res.entries) > 1:
            logger.info("Warning : multiple groups with same %s in LDAP repository.", self.cfg.identity_attribute)
        return True, self.translator.translate(res.entries[0])

    def lookup_group(self, group_key: str) -> Optional[Group]:
        if not group_key:
            return None
        bare = remove_key_prefix(group_key, self.cfg.key_prefix)
        return self.cache.lookup(
            self.cache.key_for(bare),
            lambda: self._lookup_in_directory(bare),
            identifier=group_key,
        )

    def lookup_group_by_name(self, site_id: int, name: str) -> Optional[Group]:
        if name is None:
            return None

        # The site-scoped copy is also published under the group key, as the
        # cache keeps one record per group.
        def load() -> Tuple[bool, Optional[Group]]:
            answered, group = self._lookup_in_directory(name)
            if group is not None:
                group = dataclasses.replace(group, site_id=site_id)
            return answered, group

        return self.cache.lookup(self.cache.name_key_for(site_id, name), load, identifier=name)

    def group_exists(self, site_id: int, name: str) -> bool:
        return self.lookup_group_by_name(site_id, name) is not None

    def get_group_list(self) -> List[str]:
        return [g.key for g in self._translate_all(self._run(None))]

    def get_groupname_list(self) -> List[str]:
        return [g.name for g in self._translate_all(self._run(None))]

    def search_groups(self, site_id: int, criteria: Optional[Mapping[str, Any]]) -> List[Group]:
        """Groups matching name=value criteria ('*' matches the wildcard attributes).

        At most ``search_count_limit`` groups are returned.
        """
        groups = self._translate_all(self._run(criteria))
        if site_id:
            groups = [dataclasses.replace(g, site_id=site_id) for g in groups]
        return groups

    # -- members ------------------------------------------------------------

    def get_group_members(self, group_key: str, dynamic: bool) -> Dict[str, Principal]:
        res = self._run({self.cfg.identity_attribute: remove_key_prefix(group_key, self.cfg.key_prefix)})
        if not res.entries:
            return {}
        return self.resolver.resolve(res.entries[0], dynamic)

    def members_of(self, group: Group) -> Dict[str, Principal]:
        if group.preloaded:
            return group.members
        members = self.get_group_members(group.key, group.dynamic)
        self.update_cache(dataclasses.replace(group, members=members, preloaded=True))
        return members

    def is_member(self, group: Group, principal: Principal) -> bool:
        return principal.key in self.members_of(group)

    def get_user_membership(self, user: Principal) -> List[str]:
        return sorted(self.walker.closure(user))

    # -- cache --------------------------------------------------------------

    def update_cache(self, group: Group) -> None:
        self.cache.populate(group)

    def close(self) -> None:
        self.cache.clear()

    # -- read-only provider -------------------------------------------------

    def create_group(self, site_id: int, name: str, properties: Optional[Mapping[str, str]] = None, hidden: bool = False) -> Group:
        raise NotImplementedError("Group creation is not supported by the LDAP group provider.")

    def delete_group(self, group: Group) -> bool:
        return False

    def remove_user_from_all_groups(self, user: Principal) -> bool:
        if user is not None and user.provider_key == self.key:
            return False
        return True


def create_provider(
    properties: Mapping[str, Any],
    users: UserDirectory,
    graph: Optional[GroupGraph] = None,
    connection_factory=None,
) -> LDAPGroupProvider:
    """Build a provider from flat provider properties.

    The bind password may come from the environment instead of the property
    mapping.
    """
    env = get_env()
    overrides: Dict[str, Any] = {}
    if env.bind_password and not properties.get("public.bind.password"):
        overrides["bind_password"] = env.bind_password
    cfg = GroupProviderSettings.from_properties(properties, **overrides)

    connector = DirectoryConnector(cfg, connection_factory=connection_factory)
    cache = GroupCache(cfg.provider_key, cfg.cache_max_entries, cfg.reserved_group_names)
    logger.info("LDAP group provider '%s' initialized for %s", cfg.provider_key, cfg.url)
    return LDAPGroupProvider(cfg, connector, cache, users, graph)
