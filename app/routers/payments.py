"""
Card gateway endpoints.

- POST /api/payment/return: server-to-server notification, must answer "1|OK"
- GET|POST /api/payment/result: browser lands here after checkout
"""

from fastapi import APIRouter, Depends, Request
from fastapi.responses import PlainTextResponse
from sqlalchemy.orm import Session
import logging

from ..database import get_db
from ..services.payment_gateway import PaymentReconciliationHandler
from ..utils.rate_limiter import limiter, get_rate_limit

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/payment", tags=["Payment"])


def get_reconciliation_handler(db: Session = Depends(get_db)) -> PaymentReconciliationHandler:
    return PaymentReconciliationHandler(db)


async def _gateway_fields(request: Request) -> dict:
    """Gateway posts form-encoded fields; redirects may also come as a query string"""
    if request.method == "POST":
        form = await request.form()
        return {key: str(value) for key, value in form.items()}
    return dict(request.query_params)


@router.post("/return", response_class=PlainTextResponse)
@limiter.limit(get_rate_limit("payment"))
async def payment_return(
    request: Request,
    handler: PaymentReconciliationHandler = Depends(get_reconciliation_handler)
):
    """Verified notification -> confirm_payment. Bad signature -> 400, no state change."""
    fields = await _gateway_fields(request)
    logger.info(f"Payment notification for {fields.get('MerchantTradeNo', '?')} RtnCode={fields.get('RtnCode')}")
    return PlainTextResponse(handler.handle_callback(fields))


@router.api_route("/result", methods=["GET", "POST"])
@limiter.limit(get_rate_limit("payment"))
async def payment_result(
    request: Request,
    handler: PaymentReconciliationHandler = Depends(get_reconciliation_handler)
):
    fields = await _gateway_fields(request)
    outcome = handler.handle_redirect(fields)
    return {
        "success": outcome.success,
        "verified": outcome.verified,
        "booking_id": outcome.booking_id,
        "message": outcome.message,
        "amount": outcome.amount,
        "transaction_id": outcome.transaction_id,
    }
