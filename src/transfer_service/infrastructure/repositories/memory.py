import copy
from typing import Generic, TypeVar


K = TypeVar("K")
V = TypeVar("V")


class InMemoryRepository(Generic[K, V]):
    """
    Keyed store backed by a dict.

    Values are copied on the way in and out so callers cannot mutate stored
    state without going through the repository, the same way a database
    row would behave.
    """

    def __init__(self) -> None:
        self._items: dict[K, V] = {}

    def __len__(self) -> int:
        return len(self._items)

    async def get(self, key: K) -> V | None:
        item = self._items.get(key)
        return copy.deepcopy(item) if item is not None else None

    async def has(self, key: K) -> bool:
        return key in self._items

    async def set(self, key: K, value: V) -> None:
        self._items[key] = copy.deepcopy(value)

    async def delete(self, key: K) -> None:
        self._items.pop(key, None)

    async def values(self) -> list[V]:
        return [copy.deepcopy(v) for v in self._items.values()]
