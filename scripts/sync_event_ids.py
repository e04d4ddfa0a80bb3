"""为新加入的事件草稿分配稳定 id 并写回锁表。"""

from __future__ import annotations

from lineage_sim.events.loader import load_drafts, load_id_lock, sync_id_lock, write_id_lock


def main() -> None:
    drafts = load_drafts()
    existing = load_id_lock()
    lock = sync_id_lock(drafts, existing)
    added_events = len(lock.events) - len(set(lock.events) & set(existing.events))
    added_choices = len(lock.choices) - len(set(lock.choices) & set(existing.choices))
    path = write_id_lock(lock)
    print(f"Wrote {path}: {added_events} new event id(s), {added_choices} new choice id(s)")


if __name__ == "__main__":
    main()
