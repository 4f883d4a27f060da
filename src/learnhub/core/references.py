"""Typed entity references.

A field that may hold either a bare id or the loaded entity is modelled as
`Reference[T] | Resolved[T]`. Its id is read with `ref_id`, which matches on
both variants.
"""

from dataclasses import dataclass
from typing import Generic, Protocol, TypeVar
from uuid import UUID


class HasId(Protocol):
    id: UUID


T = TypeVar("T", bound=HasId)


@dataclass(frozen=True)
class Reference(Generic[T]):
    """Unloaded reference: only the id is known."""

    id: UUID


@dataclass(frozen=True)
class Resolved(Generic[T]):
    """Loaded reference carrying the entity."""

    entity: T


def ref_id(ref: "Reference[T] | Resolved[T]") -> UUID:
    """Id of a reference regardless of variant."""
    match ref:
        case Reference(id=entity_id):
            return entity_id
        case Resolved(entity=entity):
            return entity.id
    raise TypeError(f"Unsupported reference: {ref!r}")

