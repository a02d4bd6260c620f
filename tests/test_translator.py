import pytest

from conftest import FakeUserDirectory
from ldap_groups.directory.members import MembershipResolver
from ldap_groups.directory.models import DirectoryEntry, MembershipKind, Principal
from ldap_groups.directory.translator import EntryTranslator, flatten_attributes


def static_entry(**extra):
    attrs = {
        "cn": ["admins"],
        "description": ["Administrators"],
        "objectClass": ["top", "groupOfUniqueNames"],
        "uniqueMember": ["uid=alice,ou=people,dc=example,dc=com", "uid=bob,ou=people,dc=example,dc=com"],
    }
    attrs.update(extra)
    return DirectoryEntry(dn="cn=admins,ou=groups,dc=example,dc=com", attributes=attrs)


def test_flatten_joins_with_line_feed():
    props = flatten_attributes(static_entry())
    assert props["objectClass"] == "top\ngroupOfUniqueNames"
    assert props["cn"] == "admins"


def test_objectclass_any_casing_is_normalized():
    entry = DirectoryEntry(dn="cn=x", attributes={"cn": ["x"], "OBJECTCLASS": ["groupOfURLs"]})
    props = flatten_attributes(entry)
    assert props["objectClass"] == "groupOfURLs"
    assert props["OBJECTCLASS"] == "groupOfURLs"


def test_translate_static_group(settings):
    group = EntryTranslator(settings).translate(static_entry())
    assert group is not None
    assert group.key == "admins"
    assert group.name == "admins"
    assert group.site_id == 0
    assert group.kind is MembershipKind.STATIC
    assert group.preloaded is False
    assert group.members == {}
    assert group.provider_key == "ldap"


def test_attribute_map_is_applied(settings):
    group = EntryTranslator(settings).translate(static_entry())
    assert group.attributes["groupname"] == "admins"
    assert group.attributes["description"] == "Administrators"
    assert group.description == "Administrators"


def test_entry_without_identity_is_dropped(settings):
    entry = DirectoryEntry(dn="ou=odd,dc=example,dc=com", attributes={"objectClass": ["groupOfUniqueNames"]})
    assert EntryTranslator(settings).translate(entry) is None


def test_identity_attribute_matched_case_insensitively(settings):
    entry = DirectoryEntry(dn="cn=ops", attributes={"CN": ["ops"], "objectClass": ["groupOfUniqueNames"]})
    group = EntryTranslator(settings).translate(entry)
    assert group is not None and group.key == "ops"


@pytest.mark.parametrize(
    "attr_name,classes,expected",
    [
        ("objectClass", ["top", "groupOfURLs"], MembershipKind.DYNAMIC),
        ("objectclass", ["top", "groupOfURLs"], MembershipKind.DYNAMIC),
        ("OBJECTCLASS", ["GROUPOFURLS"], MembershipKind.DYNAMIC),
        ("objectClass", ["top", "groupOfUniqueNames"], MembershipKind.STATIC),
        ("objectclass", ["groupOfNames"], MembershipKind.STATIC),
    ],
)
def test_dynamic_classification(settings, attr_name, classes, expected):
    entry = DirectoryEntry(dn="cn=g", attributes={"cn": ["g"], attr_name: classes})
    group = EntryTranslator(settings).translate(entry)
    assert group.kind is expected


def test_preload_resolves_members(settings):
    cfg = settings.model_copy(update={"preload": True})
    alice = Principal(key="alice", name="Alice", dn="uid=alice,ou=people,dc=example,dc=com")
    users = FakeUserDirectory([alice])
    translator = EntryTranslator(cfg, MembershipResolver(cfg, users))

    group = translator.translate(static_entry())
    assert group.preloaded is True
    assert list(group.members) == ["alice"]


def test_attribute_map_matches_attribute_names_case_insensitively(settings):
    entry = DirectoryEntry(
        dn="cn=ops",
        attributes={"CN": ["ops"], "DESCRIPTION": ["Operations"], "objectClass": ["groupOfUniqueNames"]},
    )
    group = EntryTranslator(settings).translate(entry)
    assert group.attributes["groupname"] == "ops"
    assert group.description == "Operations"
