from __future__ import annotations

import re
from typing import Iterable, Mapping, Optional, Sequence, Tuple


_RANGE_RE = re.compile(r"^(?P<attr>[^;]+);range=(?P<low>\d+)-(?P<high>\d+|\*)$", re.IGNORECASE)


def escape_ldap_filter_value(value: str) -> str:
    """RFC 4515 escaping for LDAP filter values."""
    out: list[str] = []
    for ch in value:
        if ch == "\\":
            out.append("\\5c")
        elif ch == "*":
            out.append("\\2a")
        elif ch == "(":
            out.append("\\28")
        elif ch == ")":
            out.append("\\29")
        elif ch == "\x00":
            out.append("\\00")
        else:
            out.append(ch)
    return "".join(out)


def escape_filter_value(value: str) -> str:
    """RFC 2254 escaping for search criteria, keeping '*' usable as a wildcard.

    The backslash goes first so the escapes produced for the parentheses are
    not escaped a second time.
    """
    s = (value or "").replace("\\", "\\5c")
    s = s.replace("(", "\\28")
    s = s.replace(")", "\\29")
    return s


def object_class_filter(static_class: str, dynamic_class: str) -> str:
    return f"(|(objectClass={static_class})(objectClass={dynamic_class}))"


def build_group_filter(
    criteria: Optional[Mapping[str, str]],
    wildcard_attributes: Sequence[str],
    static_class: str,
    dynamic_class: str,
) -> str:
    """Build a group search filter from name=value criteria.

    A "*" criterion is matched against every wildcard attribute. The result
    always covers both static and dynamic groups.
    """
    base = object_class_filter(static_class, dynamic_class)
    if not criteria:
        return base

    terms: list[str] = []
    for name, raw in criteria.items():
        value = escape_filter_value(str(raw))
        if name == "*":
            attrs = [a for a in wildcard_attributes if a]
            if not attrs:
                continue
            block = "".join(f"({a}={value})" for a in attrs)
            terms.append(f"(|{block})" if len(attrs) > 1 else block)
        else:
            terms.append(f"({name}={value})")

    return f"(&{base}{''.join(terms)})"


def and_filter(*parts: str) -> str:
    return "(&" + "".join(p for p in parts if p) + ")"


def parse_range_attribute(name: str) -> Optional[Tuple[str, int, Optional[int]]]:
    """Split 'member;range=0-1499' into ('member', 0, 1499); '*' upper bound -> None."""
    m = _RANGE_RE.match(name or "")
    if not m:
        return None
    high = m.group("high")
    return m.group("attr"), int(m.group("low")), None if high == "*" else int(high)


def ranged_attribute_names(names: Iterable[str], attribute: str) -> list[str]:
    prefix = f"{attribute};range=".lower()
    return [n for n in names if n.lower().startswith(prefix)]


def remove_key_prefix(key: str, prefix: str) -> str:
    if prefix and key.startswith(prefix):
        return key[len(prefix):]
    return key
