"""
Commodore value store: parsed option values plus where each one came from.

Every write records its Source; a write always replaces the previous value and
source for that key, so precedence is expressed by the order in which the
parser writes (defaults at registration, then implications, environment,
caller-applied config and finally command-line tokens).

The store is a read-only Mapping for consumers; only set() and discard() mutate it.
"""
import logging
from collections.abc import Mapping
from enum import StrEnum

LOG = logging.getLogger(__name__)


class Source(StrEnum):
    DEFAULT = "default"
    IMPLIED = "implied"
    ENV = "env"
    CONFIG = "config"
    CLI = "cli"


class ValueStore(Mapping):
    __slots__ = ("_values", "_sources", "_owner")

    def __init__(self, owner=None):
        self._values = {}
        self._sources = {}
        self._owner = owner

    def __getitem__(self, key, /):
        return self._values[key]

    def __iter__(self):
        return iter(self._values)

    def __len__(self):
        return len(self._values)

    def __repr__(self):
        return "%s(%r)" % (type(self).__name__, self._values)

    def set(self, key, value, source=Source.CLI, /):
        """store value for key, replacing both the previous value and its source."""
        if not isinstance(key, str):
            raise TypeError("value store keys must be strings")
        source = Source(source) if source is not None else None
        LOG.debug("%s: %s = %r (from %s)", self._owner or "store", key, value, source)
        self._values[key] = value
        self._sources[key] = source

    def discard(self, key, /):
        """remove key and its source if present."""
        LOG.debug("%s: %s discarded", self._owner or "store", key)
        self._values.pop(key, None)
        self._sources.pop(key, None)

    def source(self, key, /):
        """the source of the current value for key, or None when absent or unspecified."""
        return self._sources.get(key)

    def sources(self):
        return dict(self._sources)

    @classmethod
    def overlay(cls, *stores):
        """
        merge stores into a plain dict, later stores winning over earlier ones.

        callers pass the root store first and the deepest command last so child
        values shadow ancestor values; none of the stores is modified.
        """
        merged = {}
        for store in stores:
            merged.update(store)
        return merged


__all__ = (
    "Source",
    "ValueStore",
)
