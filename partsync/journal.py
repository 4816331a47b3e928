# partsync/journal.py
import itertools
from dataclasses import dataclass
from enum import Enum
from typing import Dict, Iterable, List, Tuple

from .models import Part


class MutationKind(str, Enum):
    ADD = "ADD"
    SELL = "SELL"
    DELETE = "DELETE"
    RETURN = "RETURN"


@dataclass
class JournalEntry:
    seq: int
    kind: MutationKind
    part: Part
    recorded_at: float
    confirmed: bool = False


def _ids(parts: Iterable[Part]) -> set:
    return {p.id for p in parts}


def _is_reflected(entry: JournalEntry, inventory_ids: set, sales_ids: set) -> bool:
    pid = entry.part.id
    if entry.kind in (MutationKind.ADD, MutationKind.RETURN):
        return pid in inventory_ids
    if entry.kind == MutationKind.SELL:
        return pid in sales_ids
    return pid not in inventory_ids and pid not in sales_ids


class MutationJournal:
    """
    Ordered log of local mutations that the remote store has not yet been
    seen to reflect. A resync confirms entries whose effect shows up in the
    fresh snapshot; merge-mode resyncs replay the rest over that snapshot.

    Only the newest mutation per id is kept: recording a new one drops any
    older entry for the same id, confirmed or not.
    """

    def __init__(self, ttl: float = 300.0):
        self.ttl = ttl
        self._seq = itertools.count(1)
        self._entries: List[JournalEntry] = []

    def __len__(self) -> int:
        return len(self._entries)

    @property
    def entries(self) -> List[JournalEntry]:
        return list(self._entries)

    def record(self, kind: MutationKind, part: Part, now: float) -> JournalEntry:
        self._entries = [e for e in self._entries if e.part.id != part.id]
        entry = JournalEntry(seq=next(self._seq), kind=kind, part=part, recorded_at=now)
        self._entries.append(entry)
        return entry

    def confirm(self, inventory: Iterable[Part], sales: Iterable[Part]) -> int:
        """Mark entries visible in the snapshot as confirmed; return how many."""
        inventory_ids = _ids(inventory)
        sales_ids = _ids(sales)
        count = 0
        for entry in self._entries:
            if not entry.confirmed and _is_reflected(entry, inventory_ids, sales_ids):
                entry.confirmed = True
                count += 1
        return count

    def pending(self, now: float) -> List[JournalEntry]:
        return [
            e for e in self._entries
            if not e.confirmed and now - e.recorded_at < self.ttl
        ]

    def prune(self, now: float) -> int:
        """Drop confirmed and expired entries."""
        before = len(self._entries)
        self._entries = [
            e for e in self._entries
            if not e.confirmed and now - e.recorded_at < self.ttl
        ]
        return before - len(self._entries)

    def clear(self) -> None:
        self._entries.clear()

    def replay(
        self, inventory: List[Part], sales: List[Part], now: float
    ) -> Tuple[List[Part], List[Part]]:
        """
        Apply pending entries, oldest first, on top of a snapshot.
        Each step removes the id from both collections before placing it, so
        an id never ends up in both.
        """
        inv = list(inventory)
        sold = list(sales)
        for entry in self.pending(now):
            pid = entry.part.id
            inv = [p for p in inv if p.id != pid]
            sold = [p for p in sold if p.id != pid]
            if entry.kind in (MutationKind.ADD, MutationKind.RETURN):
                inv.insert(0, entry.part)
            elif entry.kind == MutationKind.SELL:
                sold.insert(0, entry.part)
        return inv, sold


def diff_collections(
    previous: Iterable[Part], current: Iterable[Part]
) -> Tuple[List[Part], List[Part], List[Tuple[Part, Part]]]:
    """
    Compute added, removed and changed parts between two collections, by id.
    Returns:
      (added, removed, changed[(before, after)])
    """
    old_map: Dict[str, Part] = {p.id: p for p in previous}
    new_map: Dict[str, Part] = {p.id: p for p in current}
    old_ids = set(old_map)
    new_ids = set(new_map)

    added = [new_map[pid] for pid in new_ids - old_ids]
    removed = [old_map[pid] for pid in old_ids - new_ids]
    changed = [
        (old_map[pid], new_map[pid])
        for pid in old_ids & new_ids
        if old_map[pid] != new_map[pid]
    ]
    return added, removed, changed
