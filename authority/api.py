from __future__ import annotations

from fastapi import APIRouter, HTTPException

from authority.pending import ConfirmationAlreadyResolved, ConfirmationNotFound, PendingConfirmations


def create_router(pending: PendingConfirmations) -> APIRouter:
    """
    HTTP surface for the human side of the gate. A confirmation popup (or
    anything else) lists what is waiting and posts the user's answer.
    """

    router = APIRouter()

    def _resolve(confirmation_id: str, approved: bool) -> dict:
        try:
            rec = pending.resolve(confirmation_id, approved)
        except ConfirmationNotFound:
            raise HTTPException(status_code=404, detail="confirmation not found")
        except ConfirmationAlreadyResolved as e:
            raise HTTPException(status_code=409, detail=str(e))
        return rec.to_view()

    @router.get("/health")
    def health() -> dict:
        return {"ok": True}

    @router.get("/confirmations")
    def list_confirmations(status: str | None = None) -> dict:
        return {"confirmations": [r.to_view() for r in pending.list_confirmations(status=status)]}

    @router.get("/confirmations/{confirmation_id}")
    def get_confirmation(confirmation_id: str) -> dict:
        rec = pending.get(confirmation_id)
        if rec is None:
            raise HTTPException(status_code=404, detail="confirmation not found")
        return rec.to_view()

    @router.post("/confirmations/{confirmation_id}/approve")
    def approve(confirmation_id: str) -> dict:
        return _resolve(confirmation_id, True)

    @router.post("/confirmations/{confirmation_id}/reject")
    def reject(confirmation_id: str) -> dict:
        return _resolve(confirmation_id, False)

    return router
