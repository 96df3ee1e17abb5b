"""Contact scopes: resolve per-application contact access scopes into view models."""

from __future__ import annotations

from contact_scopes.batch import resolve_reference_ids
from contact_scopes.errors import (
    ContactScopesError,
    RecordStoreError,
    ReferenceResolutionError,
    ResourceLookupError,
    UnsupportedEntityTypeError,
)
from contact_scopes.groups import get_group_info, list_groups
from contact_scopes.models import (
    CommonDataRecord,
    DetailReference,
    EntityAddress,
    EntityType,
    GroupInfo,
    RecordKind,
    ScopeEntry,
    ScopeViewModel,
    view_model_to_payload,
)
from contact_scopes.record_store import PostgresRecordStore, RecordStore
from contact_scopes.resources import (
    HttpResourceResolver,
    NullResourceResolver,
    ResourceLabelResolver,
    StaticResourceResolver,
)
from contact_scopes.scope_state import (
    ScopeState,
    ScopeStateStore,
    decode_scope_state,
    encode_scope_state,
)
from contact_scopes.view_model import ScopeViewModelAssembler, build_view_model

__version__ = "0.1.0"

__all__ = [
    "__version__",
    "CommonDataRecord",
    "ContactScopesError",
    "DetailReference",
    "EntityAddress",
    "EntityType",
    "GroupInfo",
    "HttpResourceResolver",
    "NullResourceResolver",
    "PostgresRecordStore",
    "RecordKind",
    "RecordStore",
    "RecordStoreError",
    "ReferenceResolutionError",
    "ResourceLabelResolver",
    "ResourceLookupError",
    "ScopeEntry",
    "ScopeState",
    "ScopeStateStore",
    "ScopeViewModel",
    "ScopeViewModelAssembler",
    "StaticResourceResolver",
    "UnsupportedEntityTypeError",
    "build_view_model",
    "decode_scope_state",
    "encode_scope_state",
    "get_group_info",
    "list_groups",
    "resolve_reference_ids",
]
