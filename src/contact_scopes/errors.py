"""Exception hierarchy for contact scope resolution."""

from __future__ import annotations


class ContactScopesError(RuntimeError):
    """Base contact scopes error."""


class UnsupportedEntityTypeError(ContactScopesError):
    """Raised when resolution reaches an entity type tag outside the closed set."""

    def __init__(self, type_tag: object) -> None:
        self.type_tag = type_tag
        super().__init__(f"Unsupported entity type tag: {type_tag!r}")


class ReferenceResolutionError(ContactScopesError):
    """Raised when one reference of a batch cannot be resolved to an identifier."""

    def __init__(self, *, index: int, reference: str, reason: str) -> None:
        self.index = index
        self.reference = reference
        self.reason = reason
        super().__init__(f"Reference #{index} ({reference!r}) could not be resolved: {reason}")


class RecordStoreError(ContactScopesError):
    """Raised when a record store request names an unknown table or column."""


class ResourceLookupError(ContactScopesError):
    """Raised when the resource label service fails for a reason other than 'not found'."""

    def __init__(self, *, status_code: int, message: str) -> None:
        self.status_code = status_code
        self.message = message
        super().__init__(f"Resource label lookup failed ({status_code}): {message}")
