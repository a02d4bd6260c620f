"""Range-paged retrieval of oversized multi-valued attributes.

Active Directory refuses to return more than a server-side maximum of
values for one attribute. It answers with ``member;range=0-1499`` instead
of ``member`` and expects the client to ask for the following windows.
The last window is flagged by a ``*`` upper bound.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, List

from .models import DirectoryEntry, SearchResult
from .utils import and_filter, escape_filter_value, parse_range_attribute, ranged_attribute_names

if TYPE_CHECKING:
    from ldap3 import Connection

    from .client import DirectoryConnector

logger = logging.getLogger(__name__)


@dataclass
class RangeState:
    step: int
    low: int = 0
    high: int = 0
    values: List[str] = field(default_factory=list)
    finished: bool = False
    requests: int = 0

    def __post_init__(self) -> None:
        self.high = self.low + self.step - 1

    def advance(self) -> None:
        self.low = self.high + 1
        self.high = self.low + self.step - 1


class RangeAttributeLoader:
    def __init__(self, connector: "DirectoryConnector", step: int) -> None:
        if step <= 0:
            raise ValueError("range step must be positive")
        self.connector = connector
        self.step = step

    @staticmethod
    def has_range(entry: DirectoryEntry, attribute: str) -> bool:
        return bool(ranged_attribute_names(entry.attributes.keys(), attribute))

    def expand(
        self,
        conn: "Connection",
        result: SearchResult,
        base_filter: str,
        identity_attribute: str,
        member_attribute: str,
    ) -> SearchResult:
        """Replace every ranged member attribute in a search result by its full value set."""
        for i, entry in enumerate(result.entries):
            if self.has_range(entry, member_attribute):
                logger.debug("Got range of members in group '%s'", entry.dn)
                result.entries[i] = self.load(conn, entry, base_filter, identity_attribute, member_attribute)
        return result

    def load(
        self,
        conn: "Connection",
        entry: DirectoryEntry,
        base_filter: str,
        identity_attribute: str,
        member_attribute: str,
    ) -> DirectoryEntry:
        logger.debug("Loading members for group entry '%s'", entry.dn)

        identity = entry.first(identity_attribute)
        if not identity:
            logger.warning("Group entry '%s' has no %s value, cannot page its members", entry.dn, identity_attribute)
            return entry

        # Re-qualify on the identity value: result ordering is not stable across searches.
        entry_filter = and_filter(base_filter, f"({identity_attribute}={escape_filter_value(identity)})")
        state = RangeState(step=self.step)

        while not state.finished:
            attr_name = f"{member_attribute};range={state.low}-{state.high}"
            logger.debug("Retrieving attribute values range for attribute '%s'", attr_name)

            res = self.connector.search(conn, entry_filter, [attr_name])
            state.requests += 1
            if not res.answered:
                logger.warning(
                    "Range search for '%s' failed (%s), keeping %d values",
                    entry.dn, res.status.value, len(state.values),
                )
                break

            self._merge_chunk(entry, res, member_attribute, state)
            if not state.finished:
                state.advance()

        ranged = set(ranged_attribute_names(entry.attributes.keys(), member_attribute))
        attrs = {
            k: v for k, v in entry.attributes.items()
            if k not in ranged and k.lower() != member_attribute.lower()
        }
        attrs[member_attribute] = state.values
        return DirectoryEntry(dn=entry.dn, attributes=attrs)

    def _merge_chunk(
        self,
        entry: DirectoryEntry,
        res: SearchResult,
        member_attribute: str,
        state: RangeState,
    ) -> None:
        matched = False
        got_values = False
        for other in res.entries:
            if other.dn.lower() != entry.dn.lower():
                logger.warning("Search for a group '%s' returned another entry: %s", entry.dn, other.dn)
                continue

            matched = True
            present = False
            for attr_id, values in other.attributes.items():
                parsed = parse_range_attribute(attr_id)
                if attr_id.lower() == member_attribute.lower():
                    # Server sent the whole remainder unranged.
                    present = True
                    state.finished = True
                elif parsed and parsed[0].lower() == member_attribute.lower():
                    present = True
                    if parsed[2] is None:
                        logger.debug("We got last value chunk, so we are done")
                        state.finished = True
                else:
                    continue
                if values:
                    got_values = True
                    state.values.extend(values)

            if not present:
                logger.debug("No members attribute found, so we are done")
                state.finished = True

        if not matched:
            logger.debug("Group entry '%s' not returned for this range, so we are done", entry.dn)
            state.finished = True
        elif not got_values:
            state.finished = True
