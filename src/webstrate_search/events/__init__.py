"""Events subsystem for reading the document change feed and throttling updates."""
from webstrate_search.events.feed import ChangeFeed
from webstrate_search.events.normalizer import normalize_change
from webstrate_search.events.throttler import Throttler
from webstrate_search.events.types import ChangeEvent, ChangeOperation, JsonML

__all__ = [
    "ChangeEvent",
    "ChangeFeed",
    "ChangeOperation",
    "JsonML",
    "Throttler",
    "normalize_change",
]
