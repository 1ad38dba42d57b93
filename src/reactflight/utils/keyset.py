# SPDX-FileCopyrightText: 2025 Theori Inc.
# SPDX-License-Identifier: AGPL-3.0-or-later

"""Ordered, deduplicated key collection."""

from collections.abc import Iterator


class KeySet:
    """Insertion-ordered set of string keys; `add` reports whether the key was new."""

    def __init__(self):
        self._keys: list[str] = []
        self._seen: set[str] = set()

    def add(self, key: str) -> bool:
        if key not in self._seen:
            self._seen.add(key)
            self._keys.append(key)
            return True
        return False

    def contains(self, key: str) -> bool:
        return key in self._seen

    def __contains__(self, key: str) -> bool:
        return self.contains(key)

    def __iter__(self) -> Iterator[str]:
        return iter(self._keys)

    def __len__(self) -> int:
        return len(self._keys)

    def __repr__(self) -> str:  # pragma: no cover - debug helper
        return f"KeySet({self._keys!r})"

    def to_list(self) -> list[str]:
        return list(self._keys)
