"""
AlarmStore: the alarm tree behind a single lock, with persistence and
rescheduling run on one background worker after every change.
"""

import os
import threading
import time
from concurrent.futures import ThreadPoolExecutor
from datetime import datetime
from pathlib import Path
from typing import Callable, Optional

from alarmtree.alarm_env import AlarmEnvironment
from alarmtree.codec import tree_from_store_text, tree_to_store_text
from alarmtree.folder import PATH_SEP, AlarmGroup
from alarmtree.item import Alarm, Item, ItemInfo, NextTrigger, SetResult
from alarmtree.shared import bug_msg, log_msg

Scheduler = Callable[[Optional[NextTrigger]], None]


class AlarmStore:
    def __init__(
        self,
        path: str | Path,
        root_name: str = "root",
        scheduler: Optional[Scheduler] = None,
        retries: int = 3,
        retry_delay: float = 0.25,
    ):
        self.path = Path(path)
        self.root_name = root_name
        self.scheduler = scheduler
        self.retries = max(1, retries)
        self.retry_delay = retry_delay

        self._lock = threading.RLock()
        self._executor = ThreadPoolExecutor(
            max_workers=1, thread_name_prefix="alarmtree-save"
        )
        self._closed = False
        self._next_trigger_listeners: list[Callable[[Optional[NextTrigger]], None]] = []
        self._empty_listeners: list[Callable[[bool], None]] = []
        self._last_trigger_key: Optional[tuple] = None
        self.next_trigger: Optional[NextTrigger] = None

        self.root = self._load()
        self._was_empty = len(self.root.children) == 0

    @classmethod
    def from_environment(
        cls, env: AlarmEnvironment, scheduler: Optional[Scheduler] = None
    ) -> "AlarmStore":
        store = env.config.store
        return cls(
            env.store_path,
            root_name=store.root_name,
            scheduler=scheduler,
            retries=store.retries,
            retry_delay=store.retry_delay,
        )

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        self.close()

    def __repr__(self) -> str:
        return f"AlarmStore(path={str(self.path)!r}, size={self.root.size() - 1})"

    @property
    def root_path(self) -> str:
        return f"{self.root.name}{PATH_SEP}"

    # ─── loading ───────────────────────────────────────────────

    def _load(self) -> AlarmGroup:
        if not self.path.exists():
            log_msg(f"no store at {self.path}, starting empty")
            return AlarmGroup(self.root_name)
        try:
            text = self.path.read_text(encoding="utf-8")
        except (OSError, UnicodeDecodeError) as e:
            log_msg(f"could not read {self.path}: {e}")
            return AlarmGroup(self.root_name)
        root = tree_from_store_text(text, self.root_name)
        if root is None:
            log_msg(f"{self.path} is unreadable, starting empty")
            return AlarmGroup(self.root_name)
        return root

    # ─── listeners ─────────────────────────────────────────────

    def add_next_trigger_listener(self, listener: Callable[[Optional[NextTrigger]], None]):
        with self._lock:
            self._next_trigger_listeners.append(listener)

    def remove_next_trigger_listener(self, listener):
        with self._lock:
            if listener in self._next_trigger_listeners:
                self._next_trigger_listeners.remove(listener)

    def add_empty_listener(self, listener: Callable[[bool], None]):
        with self._lock:
            self._empty_listeners.append(listener)

    def remove_empty_listener(self, listener):
        with self._lock:
            if listener in self._empty_listeners:
                self._empty_listeners.remove(listener)

    # ─── side effects ──────────────────────────────────────────

    def _changed(self):
        if self._closed:
            log_msg("store is closed, change not saved")
            return
        self._executor.submit(self._run_side_effects)

    def save(self):
        """Queue a save and reschedule without changing anything."""
        self._changed()

    def _run_side_effects(self):
        try:
            with self._lock:
                trigger = self.root.find_next_trigger()
                text = tree_to_store_text(self.root)
                empty = len(self.root.children) == 0
                trigger_listeners = list(self._next_trigger_listeners)
                empty_listeners = list(self._empty_listeners)

            self._write(text)
            self.next_trigger = trigger

            trigger_key = (
                None
                if trigger is None
                else (trigger.alarm.id, trigger.alarm.ring_time)
            )
            if trigger_key != self._last_trigger_key:
                self._last_trigger_key = trigger_key
                if self.scheduler is not None:
                    log_msg(f"scheduling {trigger_key}")
                    self._notify(self.scheduler, trigger)
                for listener in trigger_listeners:
                    self._notify(listener, trigger)

            if empty != self._was_empty:
                self._was_empty = empty
                for listener in empty_listeners:
                    self._notify(listener, empty)
        except Exception as e:
            bug_msg(f"side effects failed: {e!r}")

    def _notify(self, callback, value):
        try:
            callback(value)
        except Exception as e:
            log_msg(f"callback {callback!r} raised {e!r}")

    def _write(self, text: str) -> bool:
        """Atomic write: write to a tmp file then rename (os.replace)."""
        tmp = self.path.with_name(self.path.name + ".tmp")
        for attempt in range(1, self.retries + 1):
            try:
                self.path.parent.mkdir(parents=True, exist_ok=True)
                with open(tmp, "w", encoding="utf-8", newline="") as f:
                    f.write(text)
                os.replace(tmp, self.path)
                return True
            except OSError as e:
                log_msg(f"save attempt {attempt}/{self.retries} to {self.path} failed: {e}")
                if attempt < self.retries:
                    time.sleep(self.retry_delay)
        log_msg(f"giving up saving {self.path}")
        return False

    def flush(self):
        """Block until every queued save has finished."""
        if self._closed:
            return
        self._executor.submit(lambda: None).result()

    def close(self):
        if self._closed:
            return
        self.flush()
        self._closed = True
        self._executor.shutdown(wait=True)

    # ─── queries ───────────────────────────────────────────────

    def get_item_at_absolute_index(self, abs_index: int) -> Optional[Item]:
        with self._lock:
            item = self.root.get_item_abs(abs_index)
        if item is None:
            log_msg(f"no item at absolute index {abs_index}")
        return item

    def get_item_info_at_absolute_index(self, abs_index: int) -> Optional[ItemInfo]:
        with self._lock:
            info = self.root.get_item_info(abs_index)
        if info is None:
            log_msg(f"no item at absolute index {abs_index}")
        return info

    def get_item_info_by_id(self, item_id: int) -> Optional[ItemInfo]:
        with self._lock:
            return self.root.get_item_info_by_id(item_id)

    def absolute_index_of_path(self, full_path: str) -> Optional[int]:
        with self._lock:
            return self.root.absolute_index_of_path(full_path)

    def items(self) -> list[ItemInfo]:
        """A pre-order snapshot of every item with its position."""
        with self._lock:
            return list(self.root.walk())

    def size(self) -> int:
        """Number of items in the tree, the root not included."""
        with self._lock:
            return self.root.size() - 1

    def to_path_list(self) -> list[str]:
        with self._lock:
            return self.root.to_path_list()

    def find_next_trigger(self, now: Optional[datetime] = None) -> Optional[NextTrigger]:
        with self._lock:
            return self.root.find_next_trigger(now)

    def to_store_string(self) -> str:
        with self._lock:
            return tree_to_store_text(self.root)

    # ─── mutations ─────────────────────────────────────────────

    def from_store_string(self, text: str) -> Optional[AlarmGroup]:
        """Replace the whole tree with decoded store text; None leaves it as is."""
        root = tree_from_store_text(text, self.root_name)
        if root is None:
            log_msg("store text rejected, tree unchanged")
            return None
        with self._lock:
            self.root = root
        self._changed()
        return root

    def set_items(self, items: list[Item]):
        with self._lock:
            self.root.set_items(items)
        self._changed()

    def add_item(self, item: Item, parent_path: Optional[str] = None) -> Optional[int]:
        """Add ``item`` to the folder ``parent_path`` (the root by default)."""
        with self._lock:
            index = self.root.add_item_at_path(item, parent_path or self.root_path)
        if index is None:
            log_msg(f"no folder at {parent_path!r}")
            return None
        self._changed()
        return index

    def set_item(self, abs_index: int, item: Item) -> Optional[Item]:
        with self._lock:
            old = self.root.set_item_abs(abs_index, item)
        if old is None:
            log_msg(f"no item at absolute index {abs_index} to replace")
            return None
        self._changed()
        return old

    def delete_item(self, abs_index: int) -> Optional[Item]:
        with self._lock:
            removed = self.root.delete_item_abs(abs_index)
        if removed is None:
            log_msg(f"no item at absolute index {abs_index} to delete")
            return None
        self._changed()
        return removed

    delete_item_at_absolute_index = delete_item

    def move_item(
        self, abs_index: int, path: str, replacement: Optional[Item] = None
    ) -> Optional[int]:
        with self._lock:
            index = self.root.move_item_abs(abs_index, path, replacement)
        if index is None:
            log_msg(f"could not move {abs_index} to {path!r}")
            return None
        self._changed()
        return index

    def _modify(self, abs_index: int, change: Callable[[Item], object], alarms_only=False):
        """
        Apply ``change`` to the item at ``abs_index`` and put it back in sorted
        position. Returns (item, change result), or None when there is no such
        item.
        """
        with self._lock:
            info = self.root.get_item_info(abs_index)
            if info is None or (alarms_only and not isinstance(info.item, Alarm)):
                log_msg(f"no {'alarm' if alarms_only else 'item'} at absolute index {abs_index}")
                return None
            item = info.item
            result = change(item)
            self.root.set_item_abs(abs_index, item)
        self._changed()
        return item, result

    def toggle_active(self, abs_index: int) -> Optional[Item]:
        done = self._modify(abs_index, lambda item: item.toggle_active())
        return None if done is None else done[0]

    def snooze(self, abs_index: int) -> Optional[Alarm]:
        done = self._modify(abs_index, lambda alarm: alarm.snooze(), alarms_only=True)
        return None if done is None else done[0]

    def unsnooze(self, abs_index: int) -> Optional[Alarm]:
        done = self._modify(abs_index, lambda alarm: alarm.unsnooze(), alarms_only=True)
        return None if done is None else done[0]

    def dismiss(self, abs_index: int, now: Optional[datetime] = None) -> Optional[Alarm]:
        done = self._modify(abs_index, lambda alarm: alarm.dismiss(now), alarms_only=True)
        return None if done is None else done[0]

    def rename(self, abs_index: int, name: str) -> Optional[SetResult]:
        """Rename the item at ``abs_index``; None when there is no such item."""
        with self._lock:
            info = self.root.get_item_info(abs_index)
            if info is None:
                log_msg(f"no item at absolute index {abs_index} to rename")
                return None
            result = info.item.set_name(name)
            if result is not SetResult.OK:
                return result
            self.root.set_item_abs(abs_index, info.item)
        self._changed()
        return result
