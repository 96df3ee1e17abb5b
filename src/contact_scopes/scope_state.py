"""Decoded per-application contact scope state.

The scope blob is produced by the permission service and stored in the
``state`` table under ``contact_scopes::<application>``. Its serialized form
is a JSON object mapping the entity type ordinal (as text) to the ordered list
of identifiers in that bucket::

    {"0": [9], "2": [42, 43]}

Decoding never fails: a missing or malformed blob yields an empty scope.
"""

from __future__ import annotations

import json
import logging
import re
from collections.abc import Iterator, Mapping
from dataclasses import dataclass
from typing import Any

from contact_scopes.core.state import state_get
from contact_scopes.errors import UnsupportedEntityTypeError
from contact_scopes.models import INT64_MAX, INT64_MIN, EntityType

logger = logging.getLogger(__name__)

SCOPE_STATE_KEY_PREFIX = "contact_scopes::"
_TAG_PATTERN = re.compile(r"0|[1-9][0-9]*")


@dataclass(frozen=True)
class ScopeState:
    """Identifiers of one application's contact scope, per entity type, in insertion order."""

    groups: tuple[int, ...] = ()
    contacts: tuple[int, ...] = ()
    numbers: tuple[int, ...] = ()
    emails: tuple[int, ...] = ()

    def ids(self, entity_type: EntityType) -> tuple[int, ...]:
        match entity_type:
            case EntityType.GROUP:
                return self.groups
            case EntityType.CONTACT:
                return self.contacts
            case EntityType.NUMBER:
                return self.numbers
            case EntityType.EMAIL:
                return self.emails
            case _:
                raise UnsupportedEntityTypeError(entity_type)

    def buckets(self) -> Iterator[tuple[EntityType, tuple[int, ...]]]:
        """Yield every bucket in entity type order, empty ones included."""
        for entity_type in EntityType:
            yield entity_type, self.ids(entity_type)

    @property
    def is_empty(self) -> bool:
        return not (self.groups or self.contacts or self.numbers or self.emails)

    @classmethod
    def from_ids(cls, ids: Mapping[EntityType, list[int] | tuple[int, ...]]) -> ScopeState:
        return cls(
            groups=tuple(ids.get(EntityType.GROUP, ())),
            contacts=tuple(ids.get(EntityType.CONTACT, ())),
            numbers=tuple(ids.get(EntityType.NUMBER, ())),
            emails=tuple(ids.get(EntityType.EMAIL, ())),
        )


class _MalformedScopeState(ValueError):
    pass


def _parse_type_tag(key: Any) -> EntityType:
    # Only the canonical decimal spelling of an ordinal is a tag.
    if isinstance(key, bool) or not isinstance(key, str | int):
        raise _MalformedScopeState(f"unknown entity type tag {key!r}")
    text = str(key)
    if _TAG_PATTERN.fullmatch(text) is None:
        raise _MalformedScopeState(f"unknown entity type tag {key!r}")
    try:
        return EntityType(int(text))
    except ValueError as exc:
        raise _MalformedScopeState(f"unknown entity type tag {key!r}") from exc


def _parse_ids(entity_type: EntityType, values: Any) -> tuple[int, ...]:
    if not isinstance(values, list):
        raise _MalformedScopeState(f"{entity_type.name} bucket must be a list")
    seen: set[int] = set()
    ids: list[int] = []
    for value in values:
        if isinstance(value, bool) or not isinstance(value, int):
            raise _MalformedScopeState(f"{entity_type.name} id {value!r} is not an integer")
        if not INT64_MIN <= value <= INT64_MAX:
            raise _MalformedScopeState(f"{entity_type.name} id {value} is out of 64-bit range")
        if value in seen:
            continue
        seen.add(value)
        ids.append(value)
    return tuple(ids)


def _decode(blob: bytes | str | Mapping[str, Any]) -> ScopeState:
    if isinstance(blob, bytes | bytearray):
        blob = blob.decode("utf-8")
    data = json.loads(blob) if isinstance(blob, str) else blob
    if not isinstance(data, Mapping):
        raise _MalformedScopeState("scope state must be a JSON object")
    ids: dict[EntityType, tuple[int, ...]] = {}
    for key, values in data.items():
        entity_type = _parse_type_tag(key)
        if entity_type in ids:
            raise _MalformedScopeState(f"duplicate {entity_type.name} bucket")
        ids[entity_type] = _parse_ids(entity_type, values)
    return ScopeState.from_ids(ids)


def decode_scope_state(
    blob: bytes | str | Mapping[str, Any] | None,
    application: str | None = None,
) -> ScopeState:
    """Decode a serialized scope blob; absent or malformed input yields an empty scope."""
    if blob is None:
        logger.debug("No contact scope state for %s", application)
        return ScopeState()
    try:
        return _decode(blob)
    except (ValueError, RecursionError) as exc:
        logger.warning(
            "Ignoring undecodable contact scope state for %s: %s",
            application,
            exc,
        )
        return ScopeState()


def encode_scope_state(state: ScopeState) -> bytes:
    """Serialize *state* in the form accepted by :func:`decode_scope_state`."""
    payload = {str(int(entity_type)): list(ids) for entity_type, ids in state.buckets() if ids}
    return json.dumps(payload, separators=(",", ":")).encode("utf-8")


class ScopeStateStore:
    """Reads scope blobs from the ``core.state`` key-value table."""

    def __init__(self, pool: Any, *, key_prefix: str = SCOPE_STATE_KEY_PREFIX) -> None:
        self._pool = pool
        self._key_prefix = key_prefix

    def key(self, application: str) -> str:
        return f"{self._key_prefix}{application.strip()}"

    async def load_blob(self, application: str) -> Any | None:
        return await state_get(self._pool, self.key(application))

    async def load(self, application: str) -> ScopeState:
        return decode_scope_state(await self.load_blob(application), application)
