"""Reply cache shared by all senders, keyed on command type and target."""

import re
from typing import Dict, Optional

from app.state.store import StateStore

_WHITESPACE = re.compile(r"\s+")


def derive_cache_key(command_type: str, target: Optional[str] = None) -> str:
    # "roast", "Big Bob" -> "roast_big_bob"
    if target:
        return f"{command_type}_{_WHITESPACE.sub('_', target.lower())}"
    return command_type


class ResponseCache:
    def __init__(self, store: StateStore):
        self.store = store
        self.cache_stats = {"hits": 0, "misses": 0}

    def get(self, command_type: str, target: Optional[str] = None) -> Optional[str]:
        value = self.store.get_cached(derive_cache_key(command_type, target))
        if value is None:
            self.cache_stats["misses"] += 1
        else:
            self.cache_stats["hits"] += 1
        return value

    def put(self, command_type: str, target: Optional[str], value: str) -> None:
        self.store.set_cached(derive_cache_key(command_type, target), value)

    def get_cache_stats(self) -> Dict:
        total = self.cache_stats["hits"] + self.cache_stats["misses"]
        if total == 0:
            hit_rate = 0
        else:
            hit_rate = self.cache_stats["hits"] / total * 100

        return {
            "hits": self.cache_stats["hits"],
            "misses": self.cache_stats["misses"],
            "hit_rate": f"{hit_rate:.1f}%",
            "entries": len(self.store.cache),
        }
