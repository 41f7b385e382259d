"""User-configurable sort rules for story folder and asset lists.

A ``SortMode`` is a named, ordered list of ``SortRule``s. A ``SortOrganizer``
holds several modes and remembers which one is selected. Both persist to a
``DefaultsStore`` under caller-supplied keys, and both produce an ordering
(a list of ``OrderSpec``) that the registry turns into ``ORDER BY`` clauses.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

from sqlalchemy import func

if TYPE_CHECKING:
    from sqlalchemy.sql.elements import ColumnElement

    from storyfolders.filesystem.defaults_store import DefaultsStore

logger = logging.getLogger(__name__)


@dataclass
class SortRule:
    """One field to sort by."""

    field: str
    display_name: str
    ascending: bool = True
    case_insensitive: bool = False

    def to_dict(self) -> dict[str, Any]:
        return {
            "field": self.field,
            "displayName": self.display_name,
            "ascending": self.ascending,
            "caseInsensitive": self.case_insensitive,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> SortRule:
        """Build a rule from its stored form. Raises ValueError if malformed."""
        field = data.get("field")
        display_name = data.get("displayName")
        ascending = data.get("ascending")
        if not isinstance(field, str) or not isinstance(display_name, str):
            raise ValueError(f"Malformed sort rule: {data!r}")
        if not isinstance(ascending, bool):
            raise ValueError(f"Malformed sort rule: {data!r}")
        return cls(
            field=field,
            display_name=display_name,
            ascending=ascending,
            case_insensitive=bool(data.get("caseInsensitive", False)),
        )


@dataclass(frozen=True)
class OrderSpec:
    """Query-layer ordering for one field."""

    field: str
    direction: str  # "asc" or "desc"
    case_sensitive: bool


class SortMode:
    """A named list of sort rules persisted under ``storage_key``.

    Saved rules, when present and valid, replace the defaults passed in.
    Rules are restricted to ``fields``, which defaults to the fields of the
    default rules.
    """

    def __init__(
        self,
        storage_key: str,
        title: str,
        rules: list[SortRule],
        store: DefaultsStore,
        has_sections: bool = False,
        fields: list[str] | None = None,
    ) -> None:
        self.storage_key = storage_key
        self.title = title
        self.has_sections = has_sections
        self.fields = list(fields) if fields is not None else [r.field for r in rules]
        self._store = store

        unknown = [r.field for r in rules if r.field not in self.fields]
        if unknown:
            raise ValueError(f"Default rules use fields not allowed in mode {title!r}: {unknown}")
        self._defaults = [SortRule(**vars(r)) for r in rules]
        self.rules = [SortRule(**vars(r)) for r in rules]

        saved = self.saved_rules()
        if saved:
            self.rules = saved
        self._save()

    def saved_rules(self) -> list[SortRule] | None:
        """Load the stored rules, dropping fields this mode does not allow."""
        stored = self._store.get_list(self.storage_key)
        if stored is None:
            return None
        try:
            rules = [SortRule.from_dict(item) for item in stored]
        except ValueError as exc:
            logger.warning("Ignoring saved sort rules for %s: %s", self.storage_key, exc)
            return None
        return [r for r in rules if r.field in self.fields]

    @property
    def section_key(self) -> str | None:
        """Field used to group results into sections, if this mode has sections."""
        if not self.has_sections or not self.rules:
            return None
        return self.rules[0].field

    def set_rules(self, rules: list[SortRule]) -> None:
        """Replace the rules. Rules for fields outside the allowed set are dropped."""
        self.rules = [SortRule(**vars(r)) for r in rules if r.field in self.fields]
        self._save()

    def update_rule(self, field: str, ascending: bool) -> None:
        """Change the direction of the rule for ``field``.

        Raises ValueError if the mode does not allow the field or has no rule for it.
        """
        if field not in self.fields:
            raise ValueError(f"Field {field!r} cannot be sorted in mode {self.title!r}")
        matching = [rule for rule in self.rules if rule.field == field]
        if not matching:
            raise ValueError(f"Mode {self.title!r} has no sort rule for field {field!r}")
        for rule in matching:
            rule.ascending = ascending
        self._save()

    def reset(self) -> None:
        """Restore the default rules."""
        self.rules = [SortRule(**vars(r)) for r in self._defaults]
        self._save()

    def ordering(self) -> list[OrderSpec]:
        return [
            OrderSpec(
                field=rule.field,
                direction="asc" if rule.ascending else "desc",
                case_sensitive=not rule.case_insensitive,
            )
            for rule in self.rules
        ]

    def _save(self) -> None:
        self._store.set(self.storage_key, [rule.to_dict() for rule in self.rules])


class SortOrganizer:
    """A list of sort modes plus the persisted index of the selected one."""

    def __init__(self, storage_key: str, modes: list[SortMode], store: DefaultsStore) -> None:
        if not modes:
            raise ValueError("A sort organizer needs at least one mode")
        self.storage_key = storage_key
        self.modes = modes
        self._store = store
        saved = store.get_int(storage_key, 0)
        self.selected_index = saved if 0 <= saved < len(modes) else 0

    @property
    def selected_mode(self) -> SortMode:
        return self.modes[self.selected_index]

    def mode(self, index: int) -> SortMode:
        """Return the mode at ``index``. Raises IndexError if out of range."""
        if not 0 <= index < len(self.modes):
            raise IndexError(f"No sort mode at index {index}")
        return self.modes[index]

    def select_mode(self, index: int) -> bool:
        """Select and persist a mode. Out-of-range indexes are ignored."""
        if not 0 <= index < len(self.modes):
            return False
        self.selected_index = index
        self._store.set(self.storage_key, index)
        return True

    def set_rules(self, index: int, rules: list[SortRule]) -> None:
        self.mode(index).set_rules(rules)

    def update_rule(self, index: int, field: str, ascending: bool) -> None:
        self.mode(index).update_rule(field, ascending)

    def ordering(self) -> list[OrderSpec]:
        """Ordering of the selected mode."""
        return self.selected_mode.ordering()


def order_by_clauses(model: type[Any], ordering: list[OrderSpec]) -> list[ColumnElement[Any]]:
    """Turn an ordering into SQLAlchemy ``ORDER BY`` clauses for ``model``."""
    clauses: list[ColumnElement[Any]] = []
    for order in ordering:
        column = getattr(model, order.field, None)
        if column is None:
            raise ValueError(f"Unknown sort field {order.field!r} for {model.__name__}")
        expr = column if order.case_sensitive else func.lower(column)
        clauses.append(expr.asc() if order.direction == "asc" else expr.desc())
    return clauses


def story_folder_sort_organizer(store: DefaultsStore) -> SortOrganizer:
    """Sort modes offered for the story folder list."""
    date_mode = SortMode(
        storage_key="story_folder_sort_mode_date",
        title="Date",
        rules=[SortRule(field="created_at", display_name="Date", ascending=False)],
        store=store,
        fields=["created_at", "name"],
    )
    name_mode = SortMode(
        storage_key="story_folder_sort_mode_name",
        title="Name",
        rules=[
            SortRule(field="name", display_name="Name", ascending=True, case_insensitive=True),
            SortRule(field="created_at", display_name="Date", ascending=False),
        ],
        store=store,
    )
    return SortOrganizer("story_folder_sort_organizer_index", [date_mode, name_mode], store)


def story_asset_sort_organizer(store: DefaultsStore) -> SortOrganizer:
    """Sort modes offered for the asset list of a story folder."""
    type_mode = SortMode(
        storage_key="asset_sort_mode_type",
        title="Type",
        rules=[
            SortRule(field="asset_type", display_name="Type", ascending=False),
            SortRule(field="created_at", display_name="Date", ascending=True),
        ],
        store=store,
        has_sections=True,
    )
    order_mode = SortMode(
        storage_key="asset_sort_mode_order",
        title="Order",
        rules=[
            SortRule(field="sorted", display_name="Sorted", ascending=False),
            SortRule(field="order", display_name="Order", ascending=True),
            SortRule(field="created_at", display_name="Date", ascending=True),
        ],
        store=store,
        has_sections=True,
    )
    return SortOrganizer("asset_sort_organizer_index", [type_mode, order_mode], store)
