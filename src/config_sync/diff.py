"""Change detection between two configuration snapshots"""

import logging
from typing import FrozenSet, Iterable, Mapping, Optional, Set

from .resolver import ValueResolver, simple_match

logger = logging.getLogger(__name__)

ChangeSet = FrozenSet[str]

NO_CHANGES: ChangeSet = frozenset()


class DiffEngine:
    """Computes which logical keys changed between two snapshots.

    ``patterns`` is any object exposing a ``patterns`` attribute (normally the
    binding registry); it is read on every call so wildcard keys registered
    after construction are taken into account.
    """

    def __init__(self, resolver: Optional[ValueResolver] = None, patterns=None):
        self.resolver = resolver or ValueResolver()
        self._pattern_source = patterns

    @property
    def patterns(self) -> Iterable[str]:
        if self._pattern_source is None:
            return ()
        return tuple(self._pattern_source.patterns)

    def compute_changes(self, old: Mapping[str, str], new: Mapping[str, str]) -> ChangeSet:
        """Return the keys and patterns whose effective value changed.

        Args:
            old: Previous snapshot
            new: Freshly merged snapshot

        Returns:
            frozenset: Changed literal keys plus affected wildcard patterns.
            Empty when either snapshot is empty.
        """

        if not old or not new:
            return NO_CHANGES

        changed: Set[str] = set()

        for key, value in new.items():
            old_value = old.get(key)
            if value != old_value:
                changed.add(key)
            elif self.resolver.has_placeholder(value):
                # same text, but a referenced key may have moved
                resolved_new = self.resolver.resolve(value, new, strict=False)
                resolved_old = self.resolver.resolve(old_value, old, strict=False)
                if resolved_new != resolved_old:
                    changed.add(key)

        removed = [key for key in old if key not in new]
        if removed:
            logger.info("Configuration keys removed: %s", removed)
            changed.update(removed)

        if not changed:
            logger.debug("Configuration unchanged")
            return NO_CHANGES

        changed.update(self._matching_patterns(changed))
        logger.info("Configuration changed: %s", sorted(changed))
        return frozenset(changed)

    def full_change_set(self, snapshot: Mapping[str, str]) -> ChangeSet:
        """Every key in ``snapshot`` plus each registered pattern matching one"""
        keys = set(snapshot)
        keys.update(self._matching_patterns(keys))
        return frozenset(keys)

    def _matching_patterns(self, keys: Iterable[str]) -> Set[str]:
        keys = list(keys)
        return {
            pattern for pattern in self.patterns
            if any(simple_match(pattern, key) for key in keys)
        }
