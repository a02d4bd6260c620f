"""Pytest shared fixtures: an in-memory stand-in for ldap3 connections."""
import pathlib
import sys
from typing import Callable, Dict, List, Optional, Tuple

import pytest

# Add project root to Python path
ROOT = pathlib.Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from ldap_groups.contracts import GraphGroup, GraphLookupError
from ldap_groups.directory.client import DirectoryConnector
from ldap_groups.directory.models import Principal
from ldap_groups.settings import GroupProviderSettings


# ─────────────────────────────────────────────────────────────────────────────
# Fake ldap3 connection
# ─────────────────────────────────────────────────────────────────────────────

Responder = Callable[[str, object], Tuple[int, List[Tuple[str, Dict[str, list]]]]]


class FakeDirectory:
    """Records searches and answers them through a responder callable.

    The responder gets (search_filter, attributes) and returns
    (result_code, [(dn, attributes), ...]).
    """

    def __init__(self, responder: Optional[Responder] = None, bind_ok: bool = True):
        self.responder = responder or (lambda flt, attrs: (0, []))
        self.bind_ok = bind_ok
        self.calls: List[dict] = []
        self.connections: List["FakeConnection"] = []
        self.search_error: Optional[Exception] = None
        self.bind_error: Optional[Exception] = None

    def connect(self) -> "FakeConnection":
        conn = FakeConnection(self)
        self.connections.append(conn)
        return conn

    @property
    def search_count(self) -> int:
        return len(self.calls)


class FakeConnection:
    def __init__(self, directory: FakeDirectory):
        self.directory = directory
        self.result: dict = {}
        self.response: list = []
        self.opened = False
        self.bound = False
        self.unbound = False

    def open(self):
        self.opened = True

    def start_tls(self):
        return True

    def bind(self):
        if self.directory.bind_error is not None:
            raise self.directory.bind_error
        self.bound = self.directory.bind_ok
        self.result = {"result": 0 if self.bound else 49, "description": "success" if self.bound else "invalidCredentials"}
        return self.bound

    def search(self, search_base, search_filter, search_scope=None, attributes=None, size_limit=0):
        self.directory.calls.append(
            {"base": search_base, "filter": search_filter, "attributes": attributes, "size_limit": size_limit}
        )
        if self.directory.search_error is not None:
            raise self.directory.search_error
        code, items = self.directory.responder(search_filter, attributes)
        self.result = {"result": code, "description": "" if code == 0 else f"code {code}"}
        self.response = [
            {"type": "searchResEntry", "dn": dn, "attributes": attrs} for dn, attrs in items
        ] + [{"type": "searchResDone"}]
        return bool(items)

    def unbind(self):
        self.unbound = True
        return True


# ─────────────────────────────────────────────────────────────────────────────
# Fake collaborators
# ─────────────────────────────────────────────────────────────────────────────


class FakeUserDirectory:
    def __init__(self, users: Optional[List[Principal]] = None, url_results: Optional[dict] = None):
        self.by_dn = {u.dn.lower(): u for u in (users or []) if u.dn}
        self.by_key = {u.key: u for u in (users or [])}
        self.url_results = url_results or {}
        self.url_calls: List[tuple] = []

    def lookup_user_by_key(self, value, attribute):
        return self.by_key.get(value)

    def lookup_user_from_dn(self, dn):
        return self.by_dn.get(dn.lower())

    def search_users_by_url(self, url, user_key=None):
        self.url_calls.append((url, user_key))
        found = self.url_results.get(url, [])
        if user_key is not None:
            found = [u for u in found if u.key == user_key]
        return list(found)


class FakeGroupGraph:
    """Nodes are group keys; edges point from a group to the groups containing it."""

    def __init__(self, parents: Dict[str, List[str]], external: Optional[Dict[str, str]] = None,
                 broken: Optional[set] = None):
        self.parents = parents
        self.external = external or {}
        self.broken = broken or set()
        self.visits: List[str] = []

    def lookup_external_group(self, group_key):
        if group_key in self.broken:
            raise GraphLookupError(f"cannot read {group_key}")
        return self.external.get(group_key)

    def parent_groups(self, node_id):
        self.visits.append(node_id)
        return [GraphGroup(node_id=p, key=f"{{ldap}}{p}") for p in self.parents.get(node_id, [])]


# ─────────────────────────────────────────────────────────────────────────────
# Fixtures
# ─────────────────────────────────────────────────────────────────────────────


@pytest.fixture()
def settings():
    return GroupProviderSettings(
        url="ldap://ldap.example.com:389",
        bind_dn="cn=reader,dc=example,dc=com",
        bind_password="secret",
        base_dn="dc=example,dc=com",
    )


@pytest.fixture()
def directory():
    return FakeDirectory()


@pytest.fixture()
def connector(settings, directory):
    return DirectoryConnector(settings, connection_factory=directory.connect)


@pytest.fixture()
def alice():
    return Principal(key="alice", name="Alice", dn="uid=alice,ou=people,dc=example,dc=com")


@pytest.fixture()
def bob():
    return Principal(key="bob", name="Bob", dn="uid=bob,ou=people,dc=example,dc=com")
