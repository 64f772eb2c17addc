from typing import Any

from arascan.storage import InMemoryRecordStore, RecordStore
from django.conf import settings
from django.core.exceptions import ImproperlyConfigured

from .orm import DjangoRecordStore

_stores: dict[str, RecordStore] = {}


def django_orm_backend_factory(**options: Any) -> DjangoRecordStore:
    """
    Create a record store persisting collections through the Django ORM.

    Options:
        None. The database is the `default` entry of DATABASES.
    """
    if options:
        unknown = ", ".join(sorted(options))
        raise ImproperlyConfigured(f"django-orm record stores take no options, got: {unknown}")
    return DjangoRecordStore()


def in_memory_backend_factory(**options: Any) -> InMemoryRecordStore:
    """
    Create a record store that lives in process memory.

    Options:
        collections: Optional list of collection names, defaults to every indexer collection.
    """
    if "collections" in options:
        return InMemoryRecordStore(collections=tuple(options["collections"]))
    return InMemoryRecordStore()


_BACKEND_FACTORIES = {
    "django-orm": django_orm_backend_factory,
    "in-memory": in_memory_backend_factory,
}


def _record_store_factory(config: dict[str, Any]) -> RecordStore:
    """
    Create a record store from a configuration dict.

    Args:
        config: Dict with 'BACKEND_NAME' and optional 'OPTIONS' keys.

    Raises:
        ImproperlyConfigured: If BACKEND_NAME is missing or unsupported.
    """
    if "BACKEND_NAME" not in config:
        raise ImproperlyConfigured("'BACKEND_NAME' is a required option for record store configurations.")

    backend_type = config["BACKEND_NAME"]
    options = config.get("OPTIONS", {})

    if backend_type not in _BACKEND_FACTORIES:
        supported = ", ".join(sorted(_BACKEND_FACTORIES.keys()))
        raise ImproperlyConfigured(
            f"Record store backend '{backend_type}' is not supported. Supported backends: {supported}"
        )

    factory = _BACKEND_FACTORIES[backend_type]
    return factory(**options)


def get_record_store(name: str = "default") -> RecordStore:
    """
    Get a record store by name.

    Stores are cached after first access.

    Args:
        name: Store name as defined in ARASCAN_RECORD_STORES.

    Raises:
        ImproperlyConfigured: If ARASCAN_RECORD_STORES is not defined or name not found.
    """
    if name in _stores:
        return _stores[name]

    stores_config = getattr(settings, "ARASCAN_RECORD_STORES", None)
    if stores_config is None:
        raise ImproperlyConfigured("'ARASCAN_RECORD_STORES' setting is not configured.")

    if name not in stores_config:
        raise ImproperlyConfigured(f"Record store '{name}' is not configured.")

    store = _record_store_factory(stores_config[name])
    _stores[name] = store
    return store
