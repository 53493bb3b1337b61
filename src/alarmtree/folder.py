"""
Folders of alarms and the index machinery over them.

Children are always kept in ``sort_key`` order. ``lookup[i]`` is the offset
of child ``i`` in the folder's own pre-order numbering, so a folder of size
``n`` spans ``n - 1`` absolute slots after its own. Absolute indices count
from the first child of the root; the root itself has no absolute index.

A path names a chain of folders starting at the root: ``"root/inner/"``.
"""

from __future__ import annotations

from bisect import bisect_left, bisect_right
from datetime import datetime
from typing import Iterator, Optional

from alarmtree.item import (
    DEFAULT_NAME,
    Alarm,
    Item,
    ItemInfo,
    NextTrigger,
)

PATH_SEP = "/"


def _key(item: Item) -> tuple:
    return item.sort_key()


def _folder_probe(name: str) -> tuple:
    """Sorts before every folder called ``name`` and after every other folder before it."""
    return (0, name, float("-inf"))


def _alarm_probe(name: str) -> tuple:
    return (1, name)


def split_path(path: Optional[str]) -> list[str] | None:
    """``"root/inner/"`` → ``["root", "inner"]``; None for an empty component."""
    if not path:
        return None
    parts = path[:-1].split(PATH_SEP) if path.endswith(PATH_SEP) else path.split(PATH_SEP)
    if any(not p for p in parts):
        return None
    return parts


class AlarmGroup(Item):
    def __init__(
        self,
        name: str = DEFAULT_NAME,
        children: Optional[list[Item]] = None,
        id: Optional[int] = None,
        active: bool = True,
    ):
        super().__init__(name, id, active)
        self.children: list[Item] = []
        self.lookup: list[int] = []
        self._size = 1
        if children:
            self.set_items(children)

    def __repr__(self) -> str:
        return (
            f"AlarmGroup(id={self.id}, name={self.name!r}, active={self.active}, "
            f"children={len(self.children)}, size={self._size})"
        )

    def __len__(self) -> int:
        return len(self.children)

    def __iter__(self) -> Iterator[Item]:
        return iter(self.children)

    def __eq__(self, other):
        if not isinstance(other, AlarmGroup):
            return NotImplemented
        return (
            self.id == other.id
            and self.name == other.name
            and self.active == other.active
            and self.children == other.children
        )

    def size(self) -> int:
        return self._size

    def sort_key(self) -> tuple:
        return (0, self.name, self.id)

    def copy(self) -> "AlarmGroup":
        """A deep copy of the folder and its subtree, ids unchanged."""
        return AlarmGroup(
            self.name,
            [child.copy() for child in self.children],
            id=self.id,
            active=self.active,
        )

    # ─── relative addressing ───────────────────────────────────

    @staticmethod
    def insert_index(children: list[Item], item: Item) -> int:
        return bisect_right(children, item.sort_key(), key=_key)

    @staticmethod
    def find_outer_index(lookup: list[int], index: int, total: int) -> int:
        """
        Relative index of the child whose subtree holds ``index``: the slot
        with ``lookup[mid] <= index < lookup[mid + 1]``. ``total`` is the
        number of slots the children span. Returns -1 when out of range.
        """
        count = len(lookup)
        if count == 0 or index < 0 or index >= total:
            return -1
        lower, upper = 0, count - 1
        while lower <= upper:
            mid = (lower + upper) // 2
            if lookup[mid] <= index and (mid + 1 == count or index < lookup[mid + 1]):
                return mid
            if index < lookup[mid]:
                upper = mid - 1
            else:
                lower = mid + 1
        return -1

    def refresh_lookups(self):
        """Rebuild this folder's lookup table and size from its children's sizes."""
        lookup = []
        offset = 0
        for child in self.children:
            lookup.append(offset)
            offset += child.size()
        self.lookup = lookup
        self._size = offset + 1

    def refresh_all(self):
        """Rebuild every lookup table in the subtree, deepest first."""
        for child in self.children:
            if isinstance(child, AlarmGroup):
                child.refresh_all()
        self.refresh_lookups()

    def add_item(self, item: Item) -> int:
        index = self.insert_index(self.children, item)
        self.children.insert(index, item)
        self.refresh_lookups()
        return index

    def get_item(self, rel_index: int) -> Optional[Item]:
        if rel_index < 0 or rel_index >= len(self.children):
            return None
        return self.children[rel_index]

    def set_item(self, rel_index: int, item: Item) -> Optional[Item]:
        """Replace the child at ``rel_index``; the replacement is re-sorted."""
        if rel_index < 0 or rel_index >= len(self.children) or item is None:
            return None
        old = self.children.pop(rel_index)
        self.children.insert(self.insert_index(self.children, item), item)
        self.refresh_lookups()
        return old

    def delete_item(self, rel_index: int) -> Optional[Item]:
        if rel_index < 0 or rel_index >= len(self.children):
            return None
        removed = self.children.pop(rel_index)
        self.refresh_lookups()
        return removed

    def set_items(self, items: Optional[list[Item]]):
        self.children = sorted(items or [], key=_key)
        self.refresh_lookups()

    def index_of(self, item: Item) -> int:
        """Relative index of ``item`` itself, else of an equal item, or -1."""
        i = bisect_left(self.children, item.sort_key(), key=_key)
        if i < len(self.children) and self.children[i] is item:
            return i
        for j, child in enumerate(self.children):
            if child is item:
                return j
        for j, child in enumerate(self.children):
            if child == item:
                return j
        return -1

    # ─── paths ─────────────────────────────────────────────────

    def get_folder(self, name: str) -> Optional["AlarmGroup"]:
        i = bisect_left(self.children, _folder_probe(name), key=_key)
        if i < len(self.children):
            child = self.children[i]
            if isinstance(child, AlarmGroup) and child.name == name:
                return child
        return None

    def find_child(self, name: str) -> int:
        """Relative index of the first child called ``name``, folders first, or -1."""
        for probe in (_folder_probe(name), _alarm_probe(name)):
            i = bisect_left(self.children, probe, key=_key)
            if i < len(self.children) and self.children[i].name == name:
                return i
        return -1

    def resolve_path(self, path: Optional[str]) -> list["AlarmGroup"] | None:
        """The chain of folders from this root down to the folder ``path`` names."""
        parts = split_path(path)
        if not parts or parts[0] != self.name:
            return None
        chain = [self]
        for name in parts[1:]:
            folder = chain[-1].get_folder(name)
            if folder is None:
                return None
            chain.append(folder)
        return chain

    def to_path_list(self) -> list[str]:
        """Every folder path in pre-order, this root first."""
        paths = []

        def collect(prefix: str, folder: AlarmGroup):
            paths.append(prefix)
            for child in folder.children:
                if isinstance(child, AlarmGroup):
                    collect(f"{prefix}{child.name}{PATH_SEP}", child)

        collect(f"{self.name}{PATH_SEP}", self)
        return paths

    @staticmethod
    def _chain_offset(chain: list["AlarmGroup"]) -> int:
        """Absolute index of the last folder in ``chain``; -1 for the root."""
        index = -1
        for parent, child in zip(chain, chain[1:]):
            index += parent.lookup[parent.index_of(child)] + 1
        return index

    @staticmethod
    def _refresh_chain(chain: list["AlarmGroup"]):
        for folder in reversed(chain):
            folder.refresh_lookups()

    def absolute_index(self, path: str, item: Item) -> Optional[int]:
        """Absolute index of ``item`` inside the folder ``path`` names."""
        chain = self.resolve_path(path)
        if chain is None:
            return None
        folder = chain[-1]
        rel = folder.index_of(item)
        if rel == -1:
            return None
        return self._chain_offset(chain) + folder.lookup[rel] + 1

    def absolute_index_of_path(self, full_path: str) -> Optional[int]:
        """
        Absolute index of the item a full path names, e.g. ``"root/inner/a3"``
        or ``"root/inner/"``. With duplicate names the first match wins.
        """
        parts = split_path(full_path)
        if not parts or len(parts) < 2:
            return None
        chain = self.resolve_path(PATH_SEP.join(parts[:-1]) + PATH_SEP)
        if chain is None:
            return None
        folder = chain[-1]
        rel = folder.find_child(parts[-1])
        if rel == -1:
            return None
        return self._chain_offset(chain) + folder.lookup[rel] + 1

    # ─── absolute addressing ───────────────────────────────────

    def _locate(self, abs_index: int) -> tuple[Optional[ItemInfo], list["AlarmGroup"]]:
        """Descend the lookup tables to ``abs_index``; also returns the folder chain."""
        if isinstance(abs_index, bool) or not isinstance(abs_index, int):
            return None, []
        chain = [self]
        folder = self
        remaining = abs_index
        parent_abs = -1
        depth = 0
        path = f"{self.name}{PATH_SEP}"
        index = self.find_outer_index(folder.lookup, remaining, folder.size() - 1)

        while index != -1:
            offset = folder.lookup[index]
            child = folder.children[index]
            if offset == remaining:
                info = ItemInfo(
                    item=child,
                    parent=folder,
                    path=path,
                    rel_index=index,
                    depth=depth,
                    abs_index=abs_index,
                    abs_parent_index=parent_abs,
                )
                return info, chain
            if not isinstance(child, AlarmGroup):
                break
            # step inside the folder: its own slot is consumed
            remaining = remaining - 1 - offset
            parent_abs += offset + 1
            folder = child
            chain.append(folder)
            path = f"{path}{folder.name}{PATH_SEP}"
            depth += 1
            index = self.find_outer_index(folder.lookup, remaining, folder.size() - 1)
        return None, []

    def get_item_info(self, abs_index: int) -> Optional[ItemInfo]:
        info, _ = self._locate(abs_index)
        return info

    def get_item_abs(self, abs_index: int) -> Optional[Item]:
        info = self.get_item_info(abs_index)
        return None if info is None else info.item

    def set_item_abs(self, abs_index: int, item: Item) -> Optional[Item]:
        """Replace the item at ``abs_index``; returns the item replaced."""
        if item is None:
            return None
        info, chain = self._locate(abs_index)
        if info is None:
            return None
        old = info.parent.set_item(info.rel_index, item)
        self._refresh_chain(chain)
        return old

    def delete_item_abs(self, abs_index: int) -> Optional[Item]:
        info, chain = self._locate(abs_index)
        if info is None:
            return None
        removed = info.parent.delete_item(info.rel_index)
        self._refresh_chain(chain)
        return removed

    def add_item_at_path(self, item: Item, path: str) -> Optional[int]:
        """Add ``item`` to the folder ``path`` names; returns its absolute index."""
        if item is None:
            return None
        chain = self.resolve_path(path)
        if chain is None:
            return None
        folder = chain[-1]
        rel = folder.add_item(item)
        self._refresh_chain(chain)
        return self._chain_offset(chain) + folder.lookup[rel] + 1

    def move_item_abs(
        self, abs_index: int, path: str, replacement: Optional[Item] = None
    ) -> Optional[int]:
        """
        Move the item at ``abs_index`` into the folder ``path`` names,
        optionally swapping in ``replacement``. Returns the new absolute index.
        A folder cannot be moved into itself or below itself.
        """
        info = self.get_item_info(abs_index)
        chain = self.resolve_path(path)
        if info is None or chain is None:
            return None
        if any(folder is info.item for folder in chain):
            return None
        moved = self.delete_item_abs(abs_index)
        item = replacement if replacement is not None else moved
        return self.add_item_at_path(item, path)

    # ─── traversal ─────────────────────────────────────────────

    def walk(self, active_only: bool = False) -> Iterator[ItemInfo]:
        """
        Yield an ItemInfo for every item in pre-order. With ``active_only``
        inactive folders are skipped together with their subtrees, while the
        absolute numbering still counts them.
        """

        def visit(folder: AlarmGroup, start: int, parent_abs: int, depth: int, path: str):
            for rel, child in enumerate(folder.children):
                abs_index = start + folder.lookup[rel]
                if active_only and not child.active:
                    continue
                yield ItemInfo(child, folder, path, rel, depth, abs_index, parent_abs)
                if isinstance(child, AlarmGroup):
                    yield from visit(
                        child,
                        abs_index + 1,
                        abs_index,
                        depth + 1,
                        f"{path}{child.name}{PATH_SEP}",
                    )

        yield from visit(self, 0, -1, 0, f"{self.name}{PATH_SEP}")

    def get_item_info_by_id(self, item_id: int) -> Optional[ItemInfo]:
        for info in self.walk():
            if info.item.id == item_id:
                return info
        return None

    def find_next_trigger(self, now: Optional[datetime] = None) -> Optional[NextTrigger]:
        """
        Bring every active alarm's ring time up to date and return the one
        that rings first. Inactive folders silence their whole subtree.
        """
        if not self.active:
            return None
        if now is None:
            now = datetime.now()
        best: Optional[NextTrigger] = None
        best_time: Optional[datetime] = None
        moved: dict[int, AlarmGroup] = {}
        for info in self.walk(active_only=True):
            alarm = info.item
            if not isinstance(alarm, Alarm):
                continue
            before = alarm.ring_time
            ring = alarm.update_ring_time(now)
            if alarm.ring_time != before:
                moved[id(info.parent)] = info.parent
            if ring is None:
                continue
            if best_time is None or ring < best_time:
                best = NextTrigger(alarm, info.abs_index, info.path)
                best_time = ring

        # ring time is part of the sort key, so touched folders are re-sorted
        for folder in moved.values():
            folder.children.sort(key=_key)
            folder.refresh_lookups()
        if best is not None and moved:
            best.abs_index = self.absolute_index(best.path, best.alarm)
        return best
