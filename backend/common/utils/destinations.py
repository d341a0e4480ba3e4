"""
Destination compatibility for ride matching.

Campus destinations are partitioned into named groups of places that sit close
together (e.g. the bus stand and railway station). Two destinations match when
they are the same place, share a group, or belong to groups declared as
overlapping. Anything outside the table is its own singleton group.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from functools import lru_cache
from types import MappingProxyType
from typing import Mapping, Optional, Tuple

EXACT_MATCH = 0
GROUP_MATCH = 1


def normalize_destination(name: Optional[str]) -> str:
    """Case-folded, whitespace-trimmed key used for every comparison."""
    return " ".join((name or "").split()).casefold()


@dataclass(frozen=True)
class DestinationGroups:
    """
    Immutable destination grouping table.

    Args:
        groups: group name -> destinations in that group
        overlaps: pairs of group names whose members are mutually compatible
    """
    groups: Mapping[str, Tuple[str, ...]] = field(default_factory=dict)
    overlaps: Tuple[Tuple[str, str], ...] = ()
    _group_of: Mapping[str, str] = field(init=False, repr=False, compare=False)
    _linked: frozenset = field(init=False, repr=False, compare=False)

    def __post_init__(self):
        frozen_groups = {}
        group_of = {}
        for group_name, members in self.groups.items():
            frozen_groups[group_name] = tuple(members)
            for member in members:
                key = normalize_destination(member)
                if key in group_of and group_of[key] != group_name:
                    raise ValueError(
                        f"Destination {member!r} is listed in both "
                        f"{group_of[key]!r} and {group_name!r}"
                    )
                group_of[key] = group_name

        linked = set()
        for left, right in self.overlaps:
            for name in (left, right):
                if name not in frozen_groups:
                    raise ValueError(f"Unknown destination group in overlap: {name!r}")
            linked.add(frozenset((left, right)))

        object.__setattr__(self, "groups", MappingProxyType(frozen_groups))
        object.__setattr__(self, "overlaps", tuple(tuple(pair) for pair in self.overlaps))
        object.__setattr__(self, "_group_of", MappingProxyType(group_of))
        object.__setattr__(self, "_linked", frozenset(linked))

    def group_of(self, destination: str) -> Optional[str]:
        """Named group for a destination, or None when it is a singleton."""
        return self._group_of.get(normalize_destination(destination))

    def match_tier(self, a: str, b: str) -> Optional[int]:
        """
        Rank how well two destinations match.

        Returns EXACT_MATCH (0) for the same place, GROUP_MATCH (1) for
        group or overlapping-group members, None when incompatible.
        """
        key_a = normalize_destination(a)
        key_b = normalize_destination(b)
        if not key_a or not key_b:
            return None
        if key_a == key_b:
            return EXACT_MATCH

        group_a = self._group_of.get(key_a)
        group_b = self._group_of.get(key_b)
        if group_a is None or group_b is None:
            return None
        if group_a == group_b or frozenset((group_a, group_b)) in self._linked:
            return GROUP_MATCH
        return None

    def compatible(self, a: str, b: str) -> bool:
        return self.match_tier(a, b) is not None


@lru_cache
def get_destination_groups() -> DestinationGroups:
    """Grouping table from settings, built once per process."""
    from django.conf import settings

    return DestinationGroups(
        groups=getattr(settings, "RIDE_DESTINATION_GROUPS", {}),
        overlaps=tuple(getattr(settings, "RIDE_DESTINATION_GROUP_OVERLAPS", ())),
    )


def compatible(a: str, b: str, groups: Optional[DestinationGroups] = None) -> bool:
    """Module-level shortcut against the configured table."""
    return (groups or get_destination_groups()).compatible(a, b)
