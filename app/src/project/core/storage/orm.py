from typing import Any

from arascan.exceptions import RecordStoreError, StoreConnectionError, UnknownCollectionError
from arascan.storage import (
    ACCOUNTS,
    BLOCKS,
    EVENTS,
    METADATA,
    PROCESSED,
    STAKING_TXS,
    TRANSFERS,
    SortSpec,
    UpsertResult,
)
from asgiref.sync import sync_to_async
from django.db import DatabaseError, OperationalError, connections, models, transaction

from project.core.models import Account, Block, ChainStats, Event, ProcessedMarker, StakingTx, Transfer

COLLECTION_MODELS: dict[str, type[models.Model]] = {
    BLOCKS: Block,
    EVENTS: Event,
    TRANSFERS: Transfer,
    ACCOUNTS: Account,
    STAKING_TXS: StakingTx,
    METADATA: ChainStats,
    PROCESSED: ProcessedMarker,
}


def _field_names(model: type[models.Model]) -> set[str]:
    return {field.attname for field in model._meta.concrete_fields}


def _to_document(instance: models.Model) -> dict[str, Any]:
    document = {"_id": instance.pk}
    for field in instance._meta.concrete_fields:
        document[field.attname] = getattr(instance, field.attname)
    return document


class DjangoRecordStore:
    """
    Record store persisting each collection in its own Django model.

    `_id` maps to the model's primary key; every other filter, patch or sort
    key must be a concrete field of the model.
    """

    def __init__(self, collections: dict[str, type[models.Model]] | None = None) -> None:
        self._models = collections or COLLECTION_MODELS

    def _model(self, collection: str) -> type[models.Model]:
        try:
            return self._models[collection]
        except KeyError:
            raise UnknownCollectionError(collection) from None

    def _fields(self, model: type[models.Model], values: dict[str, Any] | None) -> dict[str, Any]:
        names = _field_names(model)
        fields = {}
        for key, value in (values or {}).items():
            name = "pk" if key == "_id" else key
            if name != "pk" and name not in names:
                raise RecordStoreError(f"Unknown field '{key}' for {model._meta.db_table}")
            fields[name] = value
        return fields

    def _order_by(self, model: type[models.Model], sort: SortSpec | None) -> list[str]:
        names = _field_names(model)
        order = []
        for key, direction in sort or []:
            name = "pk" if key == "_id" else key
            if name != "pk" and name not in names:
                raise RecordStoreError(f"Unknown sort field '{key}' for {model._meta.db_table}")
            order.append(name if direction >= 0 else f"-{name}")
        return order

    def _upsert(self, collection: str, filter: dict[str, Any], patch: dict[str, Any]) -> UpsertResult:
        model = self._model(collection)
        lookup = self._fields(model, filter)
        values = self._fields(model, patch)
        values.pop("pk", None)

        with transaction.atomic():
            instance = model.objects.select_for_update().filter(**lookup).first()
            if instance is None:
                instance = model(**{**lookup, **values})
                instance.save(force_insert=True)
                return UpsertResult(matched=0, modified=0, upserted_id=instance.pk)

            changed = [name for name, value in values.items() if getattr(instance, name) != value]
            for name in changed:
                setattr(instance, name, values[name])
            if changed:
                instance.save(update_fields=changed)
            return UpsertResult(matched=1, modified=1 if changed else 0)

    def _find_one(self, collection: str, filter: dict[str, Any]) -> dict[str, Any] | None:
        model = self._model(collection)
        instance = model.objects.filter(**self._fields(model, filter)).first()
        return _to_document(instance) if instance is not None else None

    def _count(self, collection: str, filter: dict[str, Any] | None) -> int:
        model = self._model(collection)
        return model.objects.filter(**self._fields(model, filter)).count()

    def _scan(
        self,
        collection: str,
        filter: dict[str, Any] | None,
        sort: SortSpec | None,
        skip: int,
        limit: int | None,
    ) -> list[dict[str, Any]]:
        model = self._model(collection)
        queryset = model.objects.filter(**self._fields(model, filter))
        if sort:
            queryset = queryset.order_by(*self._order_by(model, sort))
        end = None if limit is None else skip + limit
        return [_to_document(instance) for instance in queryset[skip:end]]

    async def _run(self, fn, *args) -> Any:
        try:
            return await sync_to_async(fn)(*args)
        except OperationalError as e:
            raise StoreConnectionError(str(e)) from e
        except DatabaseError as e:
            raise RecordStoreError(str(e)) from e

    async def upsert(self, collection: str, filter: dict[str, Any], patch: dict[str, Any]) -> UpsertResult:
        return await self._run(self._upsert, collection, filter, patch)

    async def find_one(self, collection: str, filter: dict[str, Any]) -> dict[str, Any] | None:
        return await self._run(self._find_one, collection, filter)

    async def count(self, collection: str, filter: dict[str, Any] | None = None) -> int:
        return await self._run(self._count, collection, filter)

    async def scan(
        self,
        collection: str,
        filter: dict[str, Any] | None = None,
        sort: SortSpec | None = None,
        skip: int = 0,
        limit: int | None = None,
    ) -> list[dict[str, Any]]:
        return await self._run(self._scan, collection, filter, sort, skip, limit)

    async def close(self) -> None:
        await sync_to_async(connections.close_all)()
