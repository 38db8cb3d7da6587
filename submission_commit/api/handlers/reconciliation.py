from __future__ import annotations

from submission_commit.api.handlers.deps import ApiDeps
from submission_commit.api.schemas import ReconciliationItemResponse, ReconciliationListResponse

COMPONENT_ID = "api.list_reconciliation"


async def list_reconciliation_handler(*, api_deps: ApiDeps) -> ReconciliationListResponse:
    items = await api_deps.ledger.list_open()
    return ReconciliationListResponse(
        items=[
            ReconciliationItemResponse(
                item_id=item.item_id,
                kind=item.kind,
                ref=item.ref,
                submission_id=item.submission_id,
                status=item.status,
                attempts=item.attempts,
                last_error=item.last_error,
            )
            for item in items
        ]
    )
