"""
Owned Entity Repository

Plain CRUD for any entity kind stored under a user's partition with a
"<KIND>#<id>" sort key. Accounts, categories and budgets all use it by
composition; each one is just a (model, prefix) pair.
"""

from typing import Generic, Optional, Protocol, TypeVar

from pydantic import BaseModel

from trackmyexpense.models.finance import OwnedEntity, utc_now
from trackmyexpense.models.store import SortKeyCondition
from trackmyexpense.repositories.keys import entity_sort_key, new_entity_id, owner_key
from trackmyexpense.services.storage.interface import KeyedStore


EntityT = TypeVar("EntityT", bound=OwnedEntity)


class EntityRepository(Protocol[EntityT]):
    """Capability set every owned-entity repository offers."""

    async def list(self, user_id: str) -> list[EntityT]: ...

    async def get(self, user_id: str, entity_id: str) -> Optional[EntityT]: ...

    async def create(self, user_id: str, data: BaseModel) -> EntityT: ...

    async def update(self, user_id: str, entity_id: str, changes: BaseModel) -> Optional[EntityT]: ...

    async def delete(self, user_id: str, entity_id: str) -> None: ...


class OwnedEntityRepository(Generic[EntityT]):
    """Store-backed CRUD for one entity kind."""

    def __init__(self, store: KeyedStore, model: type[EntityT], prefix: str):
        self._store = store
        self._model = model
        self._prefix = prefix

    @property
    def prefix(self) -> str:
        return self._prefix

    def sort_key(self, entity_id: str) -> str:
        return entity_sort_key(self._prefix, entity_id)

    async def list(self, user_id: str) -> list[EntityT]:
        """All entities of this kind in the user's partition, in key order."""
        pk = owner_key(user_id)
        condition = SortKeyCondition.begins_with(self._prefix)
        entities: list[EntityT] = []
        cursor = None
        while True:
            page = await self._store.query(pk, condition, cursor=cursor)
            entities.extend(self._model.from_item(item) for item in page.items)
            if not page.next_cursor:
                return entities
            cursor = page.next_cursor

    async def get(self, user_id: str, entity_id: str) -> Optional[EntityT]:
        item = await self._store.get(owner_key(user_id), self.sort_key(entity_id))
        return self._model.from_item(item) if item is not None else None

    async def create(self, user_id: str, data: BaseModel) -> EntityT:
        """Mint an id, stamp timestamps, and store the entity."""
        now = utc_now()
        entity = self._model.model_validate(
            {
                **data.model_dump(),
                "owner_key": owner_key(user_id),
                "sort_key": self.sort_key(new_entity_id()),
                "created_at": now,
                "updated_at": now,
            }
        )
        await self._store.put(entity.to_item())
        return entity

    async def update(self, user_id: str, entity_id: str, changes: BaseModel) -> Optional[EntityT]:
        """
        Merge only the fields present in `changes` and refresh updatedAt.

        Returns None if the entity does not exist; nothing is written then.
        """
        assignments = changes.model_dump(
            mode="json", by_alias=True, exclude_unset=True, exclude_none=True
        )
        assignments["updatedAt"] = utc_now().isoformat()
        item = await self._store.update(
            owner_key(user_id),
            self.sort_key(entity_id),
            assignments,
            must_exist=True,
        )
        return self._model.from_item(item) if item is not None else None

    async def delete(self, user_id: str, entity_id: str) -> None:
        await self._store.delete(owner_key(user_id), self.sort_key(entity_id))
