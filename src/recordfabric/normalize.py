"""Flattening of wire-format JSON:API resources into plain attribute maps."""

from collections.abc import Callable
from typing import Any, TypeVar

from .types import FlatRecord, WireRecord

T = TypeVar("T")


def map_items(data: Any, fn: Callable[[Any], T]) -> T | list[T]:
    """Apply ``fn`` to a single item, or to every item of a list."""
    if isinstance(data, list):
        return [fn(item) for item in data]
    return fn(data)


def _identifier_id(identifier: Any) -> Any:
    return identifier.get("id") if identifier else None


def normalize(record: WireRecord) -> FlatRecord:
    """Flatten a JSON:API resource object.

    The result is built in three passes, later passes winning on key
    collisions: ``id`` and ``type``, then every attribute, then one entry per
    relationship holding the referenced id (or list of ids, order preserved).
    Relationship links are kept under ``"<key>Links"``.

    Args:
        record: A resource object as found in a document's ``data`` or
            ``included`` member.

    Returns:
        FlatRecord: A new dictionary; the input is not modified.
    """
    data: FlatRecord = {"id": record.get("id"), "type": record.get("type")}

    for key, value in (record.get("attributes") or {}).items():
        data[key] = value

    for key, relationship in (record.get("relationships") or {}).items():
        relationship = relationship or {}
        data[key] = map_items(relationship.get("data"), _identifier_id)
        if relationship.get("links") is not None:
            data[f"{key}Links"] = relationship["links"]

    return data
