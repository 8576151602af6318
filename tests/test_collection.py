import itertools
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Optional

from hrflow.services.collection import CollectionChanges, apply_changes

EARLIER = datetime(2026, 1, 1, tzinfo=timezone.utc)
NOW = datetime(2026, 3, 2, 9, 0, tzinfo=timezone.utc)


@dataclass
class Item:
    id: str
    title: str
    status: str = "NOT_STARTED"
    notes: Optional[str] = None
    created_at: datetime = EARLIER
    updated_at: datetime = EARLIER


def fresh_items():
    return [Item(id="a", title="Alpha"), Item(id="b", title="Beta"), Item(id="c", title="Gamma")]


def run(items, changes, fields=frozenset({"title", "status", "notes"})):
    ids = (f"new-{n}" for n in itertools.count(1))
    return apply_changes(
        items,
        changes,
        mutable_fields=fields,
        factory=Item,
        id_factory=lambda: next(ids),
        now=NOW,
    )


def test_untouched_items_keep_everything():
    items = fresh_items()
    run(items, CollectionChanges(to_update=[{"id": "b", "status": "IN_PROGRESS"}]))
    assert items[0] == Item(id="a", title="Alpha")
    assert items[2] == Item(id="c", title="Gamma")


def test_update_changes_only_mutable_fields_and_bumps_updated_at():
    items = fresh_items()
    outcome = run(items, CollectionChanges(to_update=[
        {"id": "b", "status": "ACHIEVED", "created_at": NOW, "title": None},
    ]))
    beta = items[1]
    assert beta.status == "ACHIEVED"
    assert beta.title == "Beta"
    assert beta.created_at == EARLIER
    assert beta.updated_at == NOW
    assert outcome.updated_ids == ["b"]


def test_none_in_update_keeps_existing_notes():
    items = fresh_items()
    run(items, CollectionChanges(to_update=[{"id": "a", "notes": "halfway"}]))
    run(items, CollectionChanges(to_update=[{"id": "a", "status": "ACHIEVED", "notes": None}]))
    assert items[0].status == "ACHIEVED"
    assert items[0].notes == "halfway"


def test_restricted_field_set_ignores_other_fields():
    items = fresh_items()
    run(
        items,
        CollectionChanges(to_update=[{"id": "a", "title": "Renamed", "status": "IN_PROGRESS", "notes": "halfway"}]),
        fields=frozenset({"status", "notes"}),
    )
    assert items[0].title == "Alpha"
    assert items[0].status == "IN_PROGRESS"
    assert items[0].notes == "halfway"


def test_removal_applies_before_update_and_never_resurrects():
    items = fresh_items()
    outcome = run(items, CollectionChanges(
        to_update=[{"id": "b", "title": "Zombie"}],
        to_remove=["b"],
    ))
    assert [i.id for i in items] == ["a", "c"]
    assert outcome.removed_ids == ["b"]
    assert outcome.unmatched_ids == ["b"]
    assert outcome.matched_count == 1


def test_unknown_ids_are_reported_not_raised():
    items = fresh_items()
    outcome = run(items, CollectionChanges(
        to_update=[{"id": "zzz", "status": "ACHIEVED"}],
        to_remove=["yyy"],
    ))
    assert [i.id for i in items] == ["a", "b", "c"]
    assert outcome.matched_count == 0
    assert outcome.unmatched_ids == ["yyy", "zzz"]
    assert outcome.as_metadata()["unmatched_ids"] == ["yyy", "zzz"]


def test_additions_get_fresh_ids_and_equal_timestamps():
    items = fresh_items()
    outcome = run(items, CollectionChanges(to_add=[
        {"title": "Delta", "id": "caller-chosen", "created_at": EARLIER},
        {"title": "Epsilon"},
    ]))
    added = items[3:]
    assert [i.id for i in added] == ["new-1", "new-2"]
    assert all(i.created_at == NOW and i.updated_at == NOW for i in added)
    assert outcome.added_ids == ["new-1", "new-2"]


def test_all_three_groups_together():
    items = fresh_items()
    outcome = run(items, CollectionChanges(
        to_add=[{"title": "Delta"}],
        to_update=[{"id": "c", "notes": "reviewed"}],
        to_remove=["a"],
    ))
    assert [i.id for i in items] == ["b", "c", "new-1"]
    assert items[1].notes == "reviewed"
    assert outcome.as_metadata() == {
        "matched_count": 2,
        "unmatched_ids": [],
        "added_count": 1,
        "removed_count": 1,
    }


def test_empty_changes():
    changes = CollectionChanges()
    assert changes.is_empty
    items = fresh_items()
    outcome = run(items, changes)
    assert items == fresh_items()
    assert outcome.matched_count == 0
