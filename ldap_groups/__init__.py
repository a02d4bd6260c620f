"""Read-only LDAP group provider.

Resolves groups and their members from an LDAP directory (including Active
Directory range-paged member attributes), caches positive and negative
lookups, and computes a user's nested group membership.
"""

from .contracts import GraphGroup, GraphLookupError, GroupGraph, UserDirectory
from .directory import DirectoryConnector, Group, MembershipKind, Principal, SearchStatus
from .services import GroupCache, LDAPGroupProvider, MembershipClosureWalker, create_provider
from .settings import ConfigurationError, GroupProviderSettings

__all__ = [
    "ConfigurationError",
    "DirectoryConnector",
    "GraphGroup",
    "GraphLookupError",
    "Group",
    "GroupCache",
    "GroupGraph",
    "GroupProviderSettings",
    "LDAPGroupProvider",
    "MembershipClosureWalker",
    "MembershipKind",
    "Principal",
    "SearchStatus",
    "UserDirectory",
    "create_provider",
]
