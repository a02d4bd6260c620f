import threading
import time

from ldap_groups.directory.models import Group
from ldap_groups.services.cache import GroupCache


def make_group(key="admins", site_id=0):
    return Group(provider_key="ldap", key=key, name=key, site_id=site_id)


class CountingLoader:
    def __init__(self, answer=(True, None), delay=0.0):
        self.answer = answer
        self.delay = delay
        self.calls = 0

    def __call__(self):
        self.calls += 1
        if self.delay:
            time.sleep(self.delay)
        return self.answer


def test_cache_key_format():
    cache = GroupCache("ldap")
    assert cache.key_for("admins") == "ldapkadmins"
    assert cache.name_key_for(3, "admins") == "ldapn3_admins"


def test_populate_then_lookup_hits_without_loader():
    cache = GroupCache("ldap")
    group = make_group()
    cache.populate(group)

    loader = CountingLoader()
    assert cache.lookup("ldapkadmins", loader) is group
    assert cache.lookup("ldapn0_admins", loader) is group
    assert loader.calls == 0


def test_populate_clears_negative_markers_for_both_keys():
    cache = GroupCache("ldap")
    cache.mark_absent("ldapkadmins")
    cache.mark_absent("ldapn0_admins")

    cache.populate(make_group())

    assert not cache.is_absent("ldapkadmins")
    assert not cache.is_absent("ldapn0_admins")


def test_negative_marker_short_circuits():
    cache = GroupCache("ldap")
    cache.mark_absent("ldapkghost")
    loader = CountingLoader((True, make_group("ghost")))

    assert cache.lookup("ldapkghost", loader) is None
    assert loader.calls == 0


def test_miss_with_absent_answer_marks_negative():
    cache = GroupCache("ldap")
    loader = CountingLoader((True, None))

    assert cache.lookup("ldapkghost", loader) is None
    assert cache.lookup("ldapkghost", loader) is None
    assert loader.calls == 1
    assert cache.is_absent("ldapkghost")


def test_transient_failure_is_not_cached():
    cache = GroupCache("ldap")
    loader = CountingLoader((False, None))

    assert cache.lookup("ldapkadmins", loader) is None
    assert not cache.is_absent("ldapkadmins")
    cache.lookup("ldapkadmins", loader)
    assert loader.calls == 2


def test_successful_load_writes_both_discriminators():
    cache = GroupCache("ldap")
    group = make_group()
    assert cache.lookup("ldapkadmins", CountingLoader((True, group))) is group
    assert cache.get("ldapkadmins") is group
    assert cache.get("ldapn0_admins") is group


def test_reserved_names_skip_the_loader():
    cache = GroupCache("ldap")
    loader = CountingLoader((True, make_group("administrators")))

    assert cache.lookup("ldapkadministrators:0", loader, identifier="administrators:0") is None
    assert loader.calls == 0
    assert cache.is_absent("ldapkadministrators:0")
    assert cache.stats()["reserved"] == 1


def test_reserved_match_needs_site_separator():
    cache = GroupCache("ldap")
    assert cache.is_reserved("users:2")
    assert not cache.is_reserved("users")
    assert not cache.is_reserved("power-users")


def test_invalidate_removes_positive_entries():
    cache = GroupCache("ldap")
    group = make_group()
    cache.populate(group)
    cache.invalidate(group)
    assert cache.get("ldapkadmins") is None
    assert cache.get("ldapn0_admins") is None


def test_mark_absent_does_not_shadow_positive_entry():
    cache = GroupCache("ldap")
    cache.populate(make_group())
    cache.mark_absent("ldapkadmins")
    assert cache.get("ldapkadmins") is not None
    assert not cache.is_absent("ldapkadmins")


def test_lru_eviction():
    cache = GroupCache("ldap", max_entries=2)
    cache.populate(make_group("a"))  # two keys: k and n
    cache.populate(make_group("b"))
    assert cache.get("ldapka") is None
    assert cache.get("ldapkb") is not None
    assert cache.stats()["groups"] == 2


def test_concurrent_misses_load_once():
    cache = GroupCache("ldap")
    loader = CountingLoader((True, make_group()), delay=0.05)
    results = []

    def worker():
        results.append(cache.lookup("ldapkadmins", loader))

    threads = [threading.Thread(target=worker) for _ in range(8)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert loader.calls == 1
    assert len(results) == 8
    assert all(r is results[0] for r in results)


def test_clear():
    cache = GroupCache("ldap")
    cache.populate(make_group())
    cache.mark_absent("ldapkghost")
    cache.clear()
    assert cache.stats()["groups"] == 0
    assert cache.stats()["absent"] == 0
