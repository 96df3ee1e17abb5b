"""Value types shared across scope decoding, entity resolution and view model assembly."""

from __future__ import annotations

import enum
import re
from typing import Annotated, Any

from pydantic import BaseModel, ConfigDict, Field, StrictInt

DEFAULT_AUTHORITY = "com.android.contacts"

INT64_MIN = -(2**63)
INT64_MAX = 2**63 - 1

EntityId = Annotated[StrictInt, Field(ge=INT64_MIN, le=INT64_MAX)]

_REFERENCE_PATTERN = re.compile(
    r"^content://(?P<authority>[^/]+)/(?P<path>[a-z_]+)/(?P<id>-?\d+)$"
)


class EntityType(enum.IntEnum):
    """Entity type tags of a contact scope, in enumeration (output) order."""

    GROUP = 0
    CONTACT = 1
    NUMBER = 2
    EMAIL = 3


class RecordKind(enum.StrEnum):
    """Addressable record kinds of the contact record store."""

    GROUP = "groups"
    CONTACT = "contacts"
    RAW_CONTACT = "raw_contacts"
    DATA = "data"


class EntityAddress(BaseModel):
    """One record of the record store, addressed by kind and numeric id."""

    model_config = ConfigDict(frozen=True)

    kind: RecordKind
    id: EntityId

    def to_uri(self, authority: str = DEFAULT_AUTHORITY) -> str:
        return f"content://{authority}/{self.kind.value}/{self.id}"

    @classmethod
    def parse(cls, reference: str, *, authority: str | None = None) -> EntityAddress | None:
        """Parse a ``content://<authority>/<kind>/<id>`` reference.

        Returns ``None`` when the text is not a well-formed reference, names an
        unknown record kind, or (when *authority* is given) a foreign authority.
        """
        match = _REFERENCE_PATTERN.match(reference.strip())
        if match is None:
            return None
        if authority is not None and match.group("authority") != authority:
            return None
        try:
            kind = RecordKind(match.group("path"))
        except ValueError:
            return None
        record_id = int(match.group("id"))
        if not INT64_MIN <= record_id <= INT64_MAX:
            return None
        return cls(kind=kind, id=record_id)


class DetailReference(BaseModel):
    """Pointer to an entity's detail view; built here, never dereferenced."""

    model_config = ConfigDict(frozen=True)

    kind: RecordKind
    id: EntityId
    authority: str = DEFAULT_AUTHORITY

    @property
    def uri(self) -> str:
        return EntityAddress(kind=self.kind, id=self.id).to_uri(self.authority)

    def __str__(self) -> str:
        return self.uri


class SubtypeCode(BaseModel):
    """Subtype field that parsed as an integer code."""

    model_config = ConfigDict(frozen=True)

    code: int


class SubtypeText(BaseModel):
    """Subtype field holding free text written by a non-conforming producer."""

    model_config = ConfigDict(frozen=True)

    text: str


Subtype = SubtypeCode | SubtypeText | None


class CommonDataRecord(BaseModel):
    """Phone or email data row: owning raw contact, primary value and subtype."""

    model_config = ConfigDict(frozen=True)

    raw_contact_id: EntityId
    data1: str | None = None
    subtype: Subtype = None


class GroupInfo(BaseModel):
    """Contact group as displayed in the scope UI and the group picker."""

    model_config = ConfigDict(frozen=True)

    id: EntityId
    title: str | None = None
    account_name: str | None = None
    summary: str | None = None

    def to_payload(self) -> dict[str, Any]:
        return self.model_dump(mode="json")


class ScopeEntry(BaseModel):
    """One resolved scope item.

    Optional fields are ``None`` when the backing record is gone or lacks the
    field; the entry itself is always present because its id is authoritative.
    """

    model_config = ConfigDict(frozen=True)

    type: EntityType
    id: EntityId
    title: str | None = None
    summary: str | None = None
    details: DetailReference | None = None

    def to_payload(self) -> dict[str, Any]:
        return {
            "type": int(self.type),
            "id": self.id,
            "title": self.title,
            "summary": self.summary,
            "details_uri": self.details.uri if self.details is not None else None,
        }


# Keyed by the entity type ordinal as text; empty buckets are never present.
ScopeViewModel = dict[str, list[ScopeEntry]]


def view_model_to_payload(view_model: ScopeViewModel) -> dict[str, list[dict[str, Any]]]:
    """Convert a view model into JSON-serialisable primitives."""
    return {key: [entry.to_payload() for entry in entries] for key, entries in view_model.items()}
