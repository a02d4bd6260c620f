"""Group provider service layer.

Stable import surface:
    from ldap_groups.services import ...
"""

from .cache import GroupCache
from .closure import MembershipClosureWalker
from .provider import LDAPGroupProvider, create_provider

__all__ = [
    "GroupCache",
    "LDAPGroupProvider",
    "MembershipClosureWalker",
    "create_provider",
]
