from collections.abc import MutableMapping
from dataclasses import dataclass, field
from typing import Dict, Iterable, Iterator, Optional, Tuple


@dataclass
class Headers(MutableMapping):
    """Header mapping with case-insensitive names.

    Assigning to an existing name replaces its value and keeps the spelling
    of the most recent assignment for rendering.
    """

    _items: Dict[str, Tuple[str, str]] = field(default_factory=dict)

    @classmethod
    def of(cls, items: Iterable[Tuple[str, str]]) -> "Headers":
        headers = cls()
        for name, value in items:
            headers[name] = value
        return headers

    def __getitem__(self, name: str) -> str:
        return self._items[name.lower()][1]

    def __setitem__(self, name: str, value: str):
        self._items[name.lower()] = (name, value)

    def __delitem__(self, name: str):
        del self._items[name.lower()]

    def __contains__(self, name: object) -> bool:
        return isinstance(name, str) and name.lower() in self._items

    def __iter__(self) -> Iterator[str]:
        return (name for name, _ in self._items.values())

    def __len__(self) -> int:
        return len(self._items)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Headers):
            return NotImplemented
        return {k: v for k, (_, v) in self._items.items()} == {
            k: v for k, (_, v) in other._items.items()
        }

    def set_or_remove(self, name: str, value: Optional[str]):
        if value is None:
            self.pop(name, None)
        else:
            self[name] = value

    def render(self) -> str:
        return "".join(f"{name}: {value}\r\n" for name, value in self._items.values())
