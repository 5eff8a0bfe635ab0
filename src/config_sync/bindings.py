"""Registry of consumers bound to configuration keys and wildcard patterns"""

import logging
import threading
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Iterable, List, Mapping, Optional, Set

from .errors import ConfigSyncError, DeliveryFailure, ResolutionFailure
from .resolver import PLACEHOLDER_PREFIX, PLACEHOLDER_SUFFIX, ValueResolver, is_pattern

logger = logging.getLogger(__name__)

Consumer = Callable[[str, str], Any]


@dataclass(frozen=True)
class Binding:
    """Interest of one consumer in one key or pattern"""
    key: str
    consumer: Consumer
    shape: Optional[str] = None


@dataclass
class DeliveryReport:
    """Outcome of one redelivery cycle"""
    delivered: Dict[str, str] = field(default_factory=dict)
    failures: List[ConfigSyncError] = field(default_factory=list)


class BindingRegistry:
    """Maps literal keys and wildcard patterns to the bindings that depend on them"""

    def __init__(self, resolver: Optional[ValueResolver] = None):
        self.resolver = resolver or ValueResolver()
        self._bindings: Dict[str, Set[Binding]] = {}
        self._lock = threading.RLock()

    def register(self, key: str, binding: Binding) -> Binding:
        """Add a binding under ``key``; identical bindings are stored once"""
        with self._lock:
            self._bindings.setdefault(key, set()).add(binding)
        logger.debug("Registered binding for %s", key)
        return binding

    def bind(self, expression: str, consumer: Consumer,
             shape: Optional[str] = None) -> List[Binding]:
        """Register ``consumer`` for every key an expression depends on.

        ``"${db.host}:${db.port:5432}"`` binds ``db.host`` and ``db.port``;
        ``"${app.user.*}"`` binds the pattern itself. A plain key without
        placeholder syntax is bound as-is.
        """
        if expression.startswith(PLACEHOLDER_PREFIX) and expression.endswith(PLACEHOLDER_SUFFIX) \
                and is_pattern(expression):
            keys = [expression[len(PLACEHOLDER_PREFIX):-len(PLACEHOLDER_SUFFIX)]]
        elif self.resolver.has_placeholder(expression):
            keys = self.resolver.placeholder_keys(expression)
        else:
            keys = [expression]

        return [self.register(key, Binding(key, consumer, shape)) for key in keys]

    @property
    def patterns(self) -> List[str]:
        with self._lock:
            return [key for key in self._bindings if is_pattern(key)]

    def keys(self) -> List[str]:
        with self._lock:
            return list(self._bindings)

    def bindings_for(self, key: str) -> Set[Binding]:
        with self._lock:
            return set(self._bindings.get(key, ()))

    def value_for(self, key: str, snapshot: Mapping[str, str]) -> Optional[str]:
        """Resolved value for a literal key, or the aggregate for a pattern"""
        if is_pattern(key):
            return self.resolver.aggregate(key, snapshot)
        raw = snapshot.get(key)
        if raw is None:
            return None
        return self.resolver.resolve(raw, snapshot)

    def on_change(self, change_set: Iterable[str], snapshot: Mapping[str, str]) -> DeliveryReport:
        """Re-resolve every changed key and deliver it to its bindings"""

        report = DeliveryReport()
        for key in change_set:
            bindings = self.bindings_for(key)
            if not bindings:
                continue

            try:
                value = self.value_for(key, snapshot)
            except ResolutionFailure as e:
                logger.warning("Skipping %s: %s", key, e)
                report.failures.append(e)
                continue

            if value is None:
                logger.warning("Property not found by key: %s", key)
                continue

            report.delivered[key] = value
            self._deliver(key, value, bindings, report)

        return report

    def _deliver(self, key: str, value: str, bindings: Iterable[Binding],
                 report: DeliveryReport) -> None:
        for binding in bindings:
            try:
                binding.consumer(key, value)
            except Exception as e:
                failure = DeliveryFailure(key, e)
                logger.warning("%s", failure, exc_info=True)
                report.failures.append(failure)
