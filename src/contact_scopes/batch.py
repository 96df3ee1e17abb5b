"""All-or-nothing resolution of entity references to numeric identifiers.

Used while a scope is being built from user-selected items. Unlike view model
assembly, a single unresolvable reference fails the whole batch: at selection
time it means the user picked something that no longer exists.
"""

from __future__ import annotations

import logging
from collections.abc import Sequence

from contact_scopes.core.telemetry import get_tracer
from contact_scopes.errors import ReferenceResolutionError
from contact_scopes.models import EntityAddress
from contact_scopes.record_store import COLUMN_ID, RecordStore

logger = logging.getLogger(__name__)


async def resolve_reference_ids(
    store: RecordStore,
    references: Sequence[str | EntityAddress],
    *,
    authority: str | None = None,
) -> list[int]:
    """Return the identifier of every reference, in input order.

    References are ``content://<authority>/<kind>/<id>`` strings or
    :class:`EntityAddress` values. Resolution stops at the first failure.

    Raises
    ------
    ReferenceResolutionError
        If any reference is malformed or has no backing record. No partial
        result is ever returned.
    """
    tracer = get_tracer()
    with tracer.start_as_current_span("contact_scopes.batch_resolve") as span:
        span.set_attribute("batch.size", len(references))
        ids: list[int] = []
        for index, reference in enumerate(references):
            if isinstance(reference, EntityAddress):
                address = reference
                text = reference.to_uri()
            else:
                text = reference
                address = EntityAddress.parse(reference, authority=authority)
                if address is None:
                    raise ReferenceResolutionError(
                        index=index, reference=text, reason="malformed reference"
                    )

            row = await store.lookup(address, (COLUMN_ID,))
            if row is None or row.get(COLUMN_ID) is None:
                logger.info("Batch reference #%d (%s) did not resolve", index, text)
                raise ReferenceResolutionError(index=index, reference=text, reason="not found")
            ids.append(row[COLUMN_ID])
        return ids
