from __future__ import annotations

import difflib
import logging

from hrsync.api.client import HiBobClient, HiBobError
from hrsync.models.reference import ListEntry
from hrsync.workbook.store import TabularStore, WorkbookError

from .lookup import LookupIndex, LookupNotFoundError

"""Value Mapper: user-typed list label -> HiBob list value id.

Resolution order: exact label, case-insensitive label, an existing value id
typed verbatim, then (opt-in) creation of a new list item upstream. The mapper
never guesses a close match; when nothing resolves it raises ValueNotFoundError
listing up to five candidates for the user to pick from.
"""

__all__ = [
    "ValueNotFoundError",
    "ValueMapper",
    "MAX_SUGGESTIONS",
]

logger = logging.getLogger(__name__)

MAX_SUGGESTIONS = 5


class ValueNotFoundError(LookupNotFoundError):
    def __init__(self, label: str, list_name: str, suggestions: list[str], reason: str = "") -> None:
        self.label = label
        self.list_name = list_name
        self.suggestions = suggestions
        message = f"value '{label}' not found in list '{list_name}'"
        if reason:
            message += f" ({reason})"
        if suggestions:
            message += f"; available: {', '.join(suggestions)}"
        super().__init__(message)


class ValueMapper:
    def __init__(
        self,
        index: LookupIndex,
        *,
        client: HiBobClient | None = None,
        store: TabularStore | None = None,
        lists_sheet: str = "",
        create_missing: bool = False,
    ) -> None:
        self._index = index
        self._client = client
        self._store = store
        self._lists_sheet = lists_sheet
        self.create_missing = create_missing
        self._created: dict[tuple[str, str], str] = {}
        self._maps: dict[str, tuple[dict[str, str], dict[str, str]]] = {}

    def suggestions(self, label: str, list_name: str) -> list[str]:
        labels: list[str] = []
        for entry in self._index.list_entries(list_name):
            if entry.value_label and entry.value_label not in labels:
                labels.append(entry.value_label)
        by_lower = {item.lower(): item for item in reversed(labels)}
        nearest = [
            by_lower[m]
            for m in difflib.get_close_matches(label.lower(), list(by_lower), n=MAX_SUGGESTIONS, cutoff=0.5)
        ]
        for item in labels:
            if len(nearest) >= MAX_SUGGESTIONS:
                break
            if item not in nearest:
                nearest.append(item)
        return nearest[:MAX_SUGGESTIONS]

    def _list_maps(self, list_name: str) -> tuple[dict[str, str], dict[str, str]]:
        if list_name not in self._maps:
            self._maps[list_name] = (
                self._index.build_list_label_to_id(list_name),
                self._index.build_list_id_to_label(list_name),
            )
        return self._maps[list_name]

    def resolve(self, label: str, list_name: str) -> str:
        label = label.strip()
        key = (list_name, label.lower())
        if key in self._created:
            return self._created[key]

        label_to_id, id_to_label = self._list_maps(list_name)
        if label in label_to_id:
            return label_to_id[label]
        if label.lower() in label_to_id:
            return label_to_id[label.lower()]
        if label in id_to_label:
            return label

        if not self.create_missing:
            raise ValueNotFoundError(label, list_name, self.suggestions(label, list_name))
        return self._create(label, list_name)

    def _create(self, label: str, list_name: str) -> str:
        if self._client is None:
            raise ValueNotFoundError(
                label, list_name, self.suggestions(label, list_name), reason="no API client to create it"
            )
        try:
            created = self._client.create_list_item(list_name, label)
        except HiBobError as e:
            raise ValueNotFoundError(
                label, list_name, self.suggestions(label, list_name), reason=f"creation failed: {e}"
            ) from e

        entry = ListEntry(list_name=list_name, value_id=str(created["id"]), value_label=label)
        self._created[(list_name, label.lower())] = entry.value_id
        self._index.add_list_entry(entry)
        self._maps.pop(list_name, None)
        if self._store is not None and self._lists_sheet:
            try:
                self._store.append_row(self._lists_sheet, [entry.list_name, entry.value_id, entry.value_label])
            except WorkbookError as e:
                logger.warning("created list item %s/%s but could not record it: %s", list_name, label, e)
        logger.info("created list item list=%s label=%s id=%s", list_name, label, entry.value_id)
        return entry.value_id
