from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Dict

from ..settings import GroupProviderSettings
from .models import DirectoryEntry, Principal

if TYPE_CHECKING:
    from ..contracts import UserDirectory

logger = logging.getLogger(__name__)


class MembershipResolver:
    """Turns a group entry's member attribute into principals.

    Static groups list member references, resolved one by one through the
    user directory: by attribute value when ``member_user_attribute`` is
    configured, as DNs otherwise. Dynamic groups carry LDAP URLs whose
    results are unioned.
    """

    def __init__(self, cfg: GroupProviderSettings, users: "UserDirectory") -> None:
        self.cfg = cfg
        self.users = users

    def resolve(self, entry: DirectoryEntry, dynamic: bool) -> Dict[str, Principal]:
        members: Dict[str, Principal] = {}
        attr = self.cfg.dynamic_members_attribute if dynamic else self.cfg.members_attribute
        values = entry.get(attr) or []
        if not values:
            logger.debug("No members")
            return members

        by_attribute = bool(self.cfg.member_user_attribute)
        logger.debug(
            "Getting members for group %s, dynamic=%s, searchUserDefined=%s",
            entry.dn, dynamic, by_attribute,
        )

        for ref in values:
            if dynamic:
                for user in self.users.search_users_by_url(ref) or []:
                    members.setdefault(user.key, user)
                continue

            if by_attribute:
                user = self.users.lookup_user_by_key(ref, self.cfg.member_user_attribute)
            else:
                user = self.users.lookup_user_from_dn(ref)
            if user is not None:
                members[user.key] = user
            else:
                logger.debug("Member '%s' of %s could not be resolved", ref, entry.dn)
        return members
