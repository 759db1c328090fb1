from typing import Any, Dict, List, Optional, Union

from cartledger.config import settings
from cartledger.db import get_db
from cartledger.schemas.cart_schema import CartItemOut, CartOut, CartSummaryOut
from cartledger.services.cart_ledger import CartLedger
from cartledger.services.cart_service import CartService
from fastapi import APIRouter, Body, Depends, HTTPException, Query, Request, Response
from sqlalchemy.orm import Session

router = APIRouter(prefix="/api/cart", tags=["cart"])

ItemPayload = Union[Dict[str, Any], List[Dict[str, Any]]]


def _get_session_cookie(request: Request) -> Optional[str]:
    return request.cookies.get(settings.SESSION_COOKIE_NAME)


def _open(request: Request, response: Response, db: Session):
    svc = CartService(db)
    session_id = svc.resolve_session_id(_get_session_cookie(request))
    response.set_cookie(
        settings.SESSION_COOKIE_NAME,
        session_id,
        max_age=settings.SESSION_TTL_SECONDS,
        httponly=True,
        samesite="Lax",
    )
    return svc, session_id, svc.open_ledger(session_id)


def _rejections(ledger: CartLedger) -> List[Dict[str, str]]:
    return [{"code": code.value, "message": message} for code, message in ledger.errors]


@router.get("", summary="Get cart", response_model=CartOut)
def get_cart(
    request: Request,
    response: Response,
    newest_first: bool = Query(False),
    db: Session = Depends(get_db),
):
    _, session_id, ledger = _open(request, response, db)
    return {
        "session_id": session_id,
        "items": [it.to_record() for it in ledger.contents(newest_first=newest_first)],
        "cart_total": ledger.total(),
        "total_items": ledger.total_items(),
    }


@router.post("/items", summary="Add item(s) to cart", response_model=CartSummaryOut)
def add_items(
    request: Request,
    response: Response,
    payload: ItemPayload = Body(...),
    db: Session = Depends(get_db),
):
    svc, _, ledger = _open(request, response, db)
    rowid = ledger.insert(payload)
    if rowid is False:
        raise HTTPException(status_code=400, detail=_rejections(ledger))
    return svc.summary(ledger, rowid)


@router.patch("/items", summary="Update cart row(s)", response_model=CartSummaryOut)
def update_items(
    request: Request,
    response: Response,
    payload: ItemPayload = Body(...),
    db: Session = Depends(get_db),
):
    svc, _, ledger = _open(request, response, db)
    if not ledger.update(payload):
        raise HTTPException(status_code=400, detail=_rejections(ledger))
    return svc.summary(ledger)


@router.get("/items/{rowid}", summary="Get cart row", response_model=CartItemOut)
def get_item(rowid: str, request: Request, response: Response, db: Session = Depends(get_db)):
    _, _, ledger = _open(request, response, db)
    item = ledger.get_item(rowid)
    if not item:
        raise HTTPException(status_code=404, detail="Cart row not found")
    return item.to_record()


@router.delete("/items/{rowid}", summary="Remove cart row", response_model=CartSummaryOut)
def remove_item(rowid: str, request: Request, response: Response, db: Session = Depends(get_db)):
    svc, _, ledger = _open(request, response, db)
    ledger.remove(rowid)
    return svc.summary(ledger)


@router.delete("", summary="Empty the cart")
def destroy_cart(request: Request, response: Response, db: Session = Depends(get_db)):
    _, _, ledger = _open(request, response, db)
    ledger.destroy()
    return {"ok": True}
