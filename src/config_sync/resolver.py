"""Placeholder expansion and wildcard aggregation"""

import json
import os
import re
from functools import lru_cache
from typing import List, Mapping, Optional, Pattern

from .errors import ResolutionFailure

PLACEHOLDER_PREFIX = "${"
PLACEHOLDER_SUFFIX = "}"
VALUE_SEPARATOR = ":"

_PLACEHOLDER = re.compile(r"\$\{([^}]*)\}")


def is_pattern(key: str) -> bool:
    """Whether a key is a wildcard pattern rather than a literal key"""
    return "*" in key


@lru_cache(maxsize=256)
def _compile_glob(pattern: str) -> Pattern:
    return re.compile(".*".join(re.escape(part) for part in pattern.split("*")), re.DOTALL)


def simple_match(pattern: str, key: str) -> bool:
    """Glob match where only ``*`` is special and matches any run of characters"""
    if not is_pattern(pattern):
        return pattern == key
    return _compile_glob(pattern).fullmatch(key) is not None


def _split_placeholder(body: str):
    name, sep, default = body.partition(VALUE_SEPARATOR)
    return name, (default if sep else None)


class ValueResolver:
    """Expands ``${key}`` and ``${key:default}`` expressions inside raw values.

    Keys are looked up in the active snapshot first, then in the fallback
    source (the process environment unless another mapping is given).
    Each placeholder is replaced once; nested placeholders are not expanded.
    """

    def __init__(self, fallback: Optional[Mapping[str, str]] = None):
        self.fallback = os.environ if fallback is None else fallback

    @staticmethod
    def has_placeholder(value: Optional[str]) -> bool:
        return value is not None and PLACEHOLDER_PREFIX in value

    @staticmethod
    def placeholder_keys(expression: str) -> List[str]:
        """Names referenced by an expression, defaults stripped"""
        return [_split_placeholder(body)[0] for body in _PLACEHOLDER.findall(expression)]

    def lookup(self, key: str, snapshot: Mapping[str, str]) -> Optional[str]:
        value = snapshot.get(key)
        if value is None:
            value = self.fallback.get(key)
        return value

    def resolve(self, value: str, snapshot: Mapping[str, str], strict: bool = True) -> str:
        """Expand every placeholder in ``value`` against ``snapshot``.

        With ``strict`` a placeholder that has no value and no default raises
        :class:`ResolutionFailure`; otherwise it is left as written.
        """
        if not self.has_placeholder(value):
            return value

        def substitute(match):
            name, default = _split_placeholder(match.group(1))
            found = self.lookup(name, snapshot)
            if found is not None:
                return found
            if default is not None:
                return default
            if strict:
                raise ResolutionFailure(name)
            return match.group(0)

        return _PLACEHOLDER.sub(substitute, value)

    def aggregate(self, pattern: str, snapshot: Mapping[str, str]) -> str:
        """Render every key matching ``pattern`` as one JSON object.

        Members are resolved first. Values that already look like JSON
        objects or arrays are embedded as-is.
        """
        members = []
        for name, raw in snapshot.items():
            if not simple_match(pattern, name):
                continue
            value = self.resolve(raw, snapshot)
            if value[:1] in ("{", "["):
                rendered = value
            else:
                rendered = json.dumps(value, ensure_ascii=False)
            members.append(f"{json.dumps(name, ensure_ascii=False)}:{rendered}")
        return "{" + ",".join(members) + "}"
