"""
Add/update/remove over an aggregate's ordered child collection.

Removals run first, then field updates on the survivors, then additions.
Items nobody references are left exactly as they were, timestamps included.
References to ids that are not in the collection are skipped and reported
back through ``MutationOutcome.unmatched_ids`` instead of failing.

A ``None`` value in an update means "leave unchanged", so an update can
never clear a field back to empty. Optional fields such as goal notes keep
their last non-empty value once set.
"""
import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Callable, Dict, FrozenSet, List, Mapping, MutableSequence, Sequence

logger = logging.getLogger(__name__)

IMMUTABLE_FIELDS = frozenset({"id", "created_at"})


@dataclass
class CollectionChanges:
    to_add: Sequence[Mapping[str, Any]] = field(default_factory=list)
    to_update: Sequence[Mapping[str, Any]] = field(default_factory=list)
    to_remove: Sequence[str] = field(default_factory=list)

    @property
    def is_empty(self) -> bool:
        return not (self.to_add or self.to_update or self.to_remove)


@dataclass
class MutationOutcome:
    items: MutableSequence
    added_ids: List[str] = field(default_factory=list)
    updated_ids: List[str] = field(default_factory=list)
    removed_ids: List[str] = field(default_factory=list)
    unmatched_ids: List[str] = field(default_factory=list)

    @property
    def matched_count(self) -> int:
        return len(self.updated_ids) + len(self.removed_ids)

    def as_metadata(self) -> Dict[str, Any]:
        return {
            "matched_count": self.matched_count,
            "unmatched_ids": list(self.unmatched_ids),
            "added_count": len(self.added_ids),
            "removed_count": len(self.removed_ids),
        }


def apply_changes(
    items: MutableSequence,
    changes: CollectionChanges,
    *,
    mutable_fields: FrozenSet[str],
    factory: Callable[..., Any],
    id_factory: Callable[[], str],
    now: datetime,
) -> MutationOutcome:
    """
    Applies ``changes`` to ``items`` in place and reports what matched.

    ``factory(**fields)`` builds a new child; it receives the add payload plus
    ``id``, ``created_at`` and ``updated_at``.
    """
    outcome = MutationOutcome(items=items)
    writable = frozenset(mutable_fields) - IMMUTABLE_FIELDS

    for item_id in changes.to_remove:
        target = _find(items, item_id)
        if target is None:
            outcome.unmatched_ids.append(item_id)
            continue
        items.remove(target)
        outcome.removed_ids.append(item_id)

    for update in changes.to_update:
        item_id = update.get("id")
        target = _find(items, item_id)
        if target is None:
            outcome.unmatched_ids.append(item_id)
            continue
        for name, value in update.items():
            if name in writable and value is not None:
                setattr(target, name, value)
        target.updated_at = now
        outcome.updated_ids.append(item_id)

    for payload in changes.to_add:
        values = {k: v for k, v in payload.items() if k not in IMMUTABLE_FIELDS and k != "updated_at"}
        new_id = id_factory()
        items.append(factory(id=new_id, created_at=now, updated_at=now, **values))
        outcome.added_ids.append(new_id)

    if outcome.unmatched_ids:
        logger.warning(
            "Child changes referenced unknown ids",
            extra={"unmatched_ids": outcome.unmatched_ids, "matched_count": outcome.matched_count},
        )
    return outcome


def _find(items: Sequence, item_id):
    for item in items:
        if item.id == item_id:
            return item
    return None
