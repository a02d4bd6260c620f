"""LDAP directory access package.

Public API:
    - DirectoryConnector
    - RangeAttributeLoader
    - EntryTranslator
    - MembershipResolver
    - build_group_filter
"""

from .client import DirectoryConnector
from .members import MembershipResolver
from .models import DirectoryEntry, Group, MembershipKind, Principal, SearchResult, SearchStatus
from .ranges import RangeAttributeLoader
from .translator import EntryTranslator
from .utils import build_group_filter, escape_filter_value, escape_ldap_filter_value

__all__ = [
    "DirectoryConnector",
    "DirectoryEntry",
    "EntryTranslator",
    "Group",
    "MembershipKind",
    "MembershipResolver",
    "Principal",
    "RangeAttributeLoader",
    "SearchResult",
    "SearchStatus",
    "build_group_filter",
    "escape_filter_value",
    "escape_ldap_filter_value",
]
