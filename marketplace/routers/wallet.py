# marketplace/routers/wallet.py
"""
Wallet API: internal balances.

Every balance change writes a wallet_transactions row.
"""

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from ..config import Settings
from ..database import get_db
from ..dependencies import get_current_user, get_inbox, get_settings
from ..models.entities import Users
from ..schemas.bookings import BookingRead
from ..schemas.wallets import (
    BookingPayment,
    BookingPaymentResponse,
    WalletAddFunds,
    WalletOperationResponse,
    WalletRead,
    WalletTransactionList,
    WalletTransactionRead,
)
from ..services import wallet as wallet_service
from ..services.notifications import NotificationInbox

router = APIRouter(prefix="/wallet", tags=["wallet"])


@router.get("/balance", response_model=WalletRead)
def get_balance(
    user: Users = Depends(get_current_user),
    settings: Settings = Depends(get_settings),
    db: Session = Depends(get_db),
):
    """Creates the wallet with balance=0 on first access."""
    wallet = wallet_service.get_balance(db, user.id, settings.default_currency)
    return WalletRead.model_validate(wallet)


@router.get("/transactions", response_model=WalletTransactionList)
def get_transactions(
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    type: str | None = Query(None, pattern="^(credit|debit)$"),
    user: Users = Depends(get_current_user),
    settings: Settings = Depends(get_settings),
    db: Session = Depends(get_db),
):
    """Newest first."""
    items, total = wallet_service.transaction_history(
        db, user.id, page, limit, type, settings.default_currency
    )
    return WalletTransactionList(
        transactions=[WalletTransactionRead.model_validate(t) for t in items],
        pagination={"page": page, "limit": limit, "total": total, "pages": (total + limit - 1) // limit},
    )


@router.post("/add-funds", response_model=WalletOperationResponse)
def add_funds(
    data: WalletAddFunds,
    user: Users = Depends(get_current_user),
    settings: Settings = Depends(get_settings),
    db: Session = Depends(get_db),
):
    wallet, tx = wallet_service.add_funds(
        db, user.id, data.amount, data.description, settings.default_currency
    )
    return WalletOperationResponse(
        success=True,
        new_balance=wallet.balance,
        transaction=WalletTransactionRead.model_validate(tx),
        message=f"Added {data.amount:.2f} {wallet.currency}",
    )


@router.post("/pay-booking", response_model=BookingPaymentResponse)
def pay_booking(
    data: BookingPayment,
    user: Users = Depends(get_current_user),
    inbox: NotificationInbox = Depends(get_inbox),
    db: Session = Depends(get_db),
):
    booking, wallet, tx = wallet_service.process_booking_payment(db, data.booking_id, user.id)

    inbox.notify(
        booking.provider_id,
        "Payment Received",
        f"You received {booking.total_amount:.2f} {booking.currency} for booking #{booking.id}",
        data={"booking_id": booking.id},
        kind="payment",
    )
    return BookingPaymentResponse(
        success=True,
        new_balance=wallet.balance,
        transaction=WalletTransactionRead.model_validate(tx),
        message=f"Paid {booking.total_amount:.2f} {booking.currency} for booking #{booking.id}",
        booking=BookingRead.model_validate(booking),
    )
