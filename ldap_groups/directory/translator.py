from __future__ import annotations

import logging
from typing import Dict, Optional

from ..settings import GroupProviderSettings
from .members import MembershipResolver
from .models import DirectoryEntry, Group, MembershipKind

logger = logging.getLogger(__name__)

LINE_SEPARATOR = "\n"


def flatten_attributes(entry: DirectoryEntry) -> Dict[str, str]:
    """Join multi-valued attributes with line feeds.

    Values that already contain a line feed cannot be split back apart.
    """
    props: Dict[str, str] = {}
    for name, values in entry.attributes.items():
        if not name:
            continue
        props[name] = LINE_SEPARATOR.join(values)
        # Some servers answer with 'objectclass' or 'OBJECTCLASS'.
        if name.lower() == "objectclass":
            props["objectClass"] = props[name]
    return props


class EntryTranslator:
    def __init__(
        self,
        cfg: GroupProviderSettings,
        resolver: Optional[MembershipResolver] = None,
    ) -> None:
        self.cfg = cfg
        self.resolver = resolver

    def is_dynamic(self, props: Dict[str, str]) -> bool:
        token = self.cfg.dynamic_object_class.lower()
        classes = props.get("objectClass", "")
        return any(c.strip().lower() == token for c in classes.split(LINE_SEPARATOR))

    def map_properties(self, props: Dict[str, str]) -> None:
        """Copy mapped directory attributes onto their canonical property names."""
        by_lower = {k.lower(): k for k in props}
        for prop, ldap_attr in self.cfg.attribute_map.items():
            name = ldap_attr if ldap_attr in props else by_lower.get(ldap_attr.lower())
            if name is not None:
                props[prop] = props[name]

    def _group_key(self, props: Dict[str, str]) -> str:
        ident = self.cfg.identity_attribute
        if ident in props:
            return props[ident]
        low = ident.lower()
        for k, v in props.items():
            if k.lower() == low:
                return v
        return ""

    def translate(self, entry: DirectoryEntry) -> Optional[Group]:
        props = flatten_attributes(entry)
        key = self._group_key(props)
        if not key:
            logger.debug(
                "Ignoring entry %s because it has no valid %s attribute to be mapped onto group key...",
                entry.dn, self.cfg.identity_attribute,
            )
            return None

        self.map_properties(props)
        dynamic = self.is_dynamic(props)
        kind = MembershipKind.DYNAMIC if dynamic else MembershipKind.STATIC

        members = {}
        preloaded = False
        if self.cfg.preload and self.resolver is not None:
            members = self.resolver.resolve(entry, dynamic)
            preloaded = True

        return Group(
            provider_key=self.cfg.provider_key,
            key=key,
            name=key,
            site_id=0,
            dn=entry.dn,
            attributes=props,
            kind=kind,
            members=members,
            preloaded=preloaded,
        )
