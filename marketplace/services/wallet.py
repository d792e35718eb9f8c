"""
Wallet service: internal balances and the ledger of wallet transactions.

Every balance change writes a wallet_transactions row with a unique
reference. Booking payment moves money customer → provider as a single
database transaction:

    1. debit customer wallet   (conditional: balance >= amount)
    2. credit provider wallet
    3. debit + credit ledger entries
    4. mark booking paid       (conditional: payment_status = 'pending')

Any failure rolls back all four; the booking stays unpaid.
"""

import logging
import uuid
from typing import Optional

from sqlalchemy import func, update
from sqlalchemy.orm import Session

from ..errors import Conflict, Forbidden, InsufficientBalance, InvalidState, NotFound, ValidationFailed
from ..models.entities import Bookings, Users, Wallets, WalletTransactions

logger = logging.getLogger(__name__)


# ──────────────────────────────────────────────────────────────────────────────
# Helpers
# ──────────────────────────────────────────────────────────────────────────────

def new_reference() -> str:
    return f"TXN_{uuid.uuid4().hex.upper()}"


def get_or_create_wallet(db: Session, user_id: int, currency: str = "NGN") -> Wallets:
    """
    Get wallet by user_id or create one with zero balance (flushed, not committed).
    Raises NotFound if the user doesn't exist.
    """
    wallet = db.query(Wallets).filter(Wallets.user_id == user_id).first()
    if wallet:
        return wallet

    if not db.get(Users, user_id):
        raise NotFound(f"User {user_id} not found")

    wallet = Wallets(user_id=user_id, balance=0.0, currency=currency, is_blocked=False)
    db.add(wallet)
    db.flush()
    return wallet


def check_wallet_not_blocked(wallet: Wallets) -> None:
    if wallet.is_blocked:
        raise Forbidden("Wallet is blocked")


def create_transaction(
    db: Session,
    wallet: Wallets,
    amount: float,
    tx_type: str,
    description: str,
    booking_id: Optional[int] = None,
    counterparty_id: Optional[int] = None,
) -> WalletTransactions:
    """Create a wallet transaction record."""
    tx = WalletTransactions(
        wallet_id=wallet.id,
        type=tx_type,
        amount=amount,
        currency=wallet.currency,
        description=description,
        reference=new_reference(),
        status="completed",
        booking_id=booking_id,
        counterparty_id=counterparty_id,
    )
    db.add(tx)
    return tx


# ──────────────────────────────────────────────────────────────────────────────
# Operations
# ──────────────────────────────────────────────────────────────────────────────

def get_balance(db: Session, user_id: int, currency: str = "NGN") -> Wallets:
    wallet = get_or_create_wallet(db, user_id, currency)
    db.commit()
    db.refresh(wallet)
    return wallet


def transaction_history(
    db: Session,
    user_id: int,
    page: int = 1,
    limit: int = 20,
    tx_type: Optional[str] = None,
    currency: str = "NGN",
) -> tuple[list[WalletTransactions], int]:
    """Newest first."""
    if tx_type is not None and tx_type not in ("credit", "debit"):
        raise ValidationFailed("type must be 'credit' or 'debit'")

    wallet = get_or_create_wallet(db, user_id, currency)
    db.commit()

    query = db.query(WalletTransactions).filter(WalletTransactions.wallet_id == wallet.id)
    if tx_type:
        query = query.filter(WalletTransactions.type == tx_type)

    total = query.with_entities(func.count(WalletTransactions.id)).scalar()
    items = (
        query.order_by(WalletTransactions.created_at.desc(), WalletTransactions.id.desc())
        .offset((page - 1) * limit)
        .limit(limit)
        .all()
    )
    return items, total


def add_funds(
    db: Session,
    user_id: int,
    amount: float,
    description: Optional[str] = None,
    currency: str = "NGN",
) -> tuple[Wallets, WalletTransactions]:
    if amount <= 0:
        raise ValidationFailed("Amount must be greater than 0")

    try:
        wallet = get_or_create_wallet(db, user_id, currency)
        check_wallet_not_blocked(wallet)

        db.execute(
            update(Wallets)
            .where(Wallets.id == wallet.id)
            .values(balance=Wallets.balance + amount)
            .execution_options(synchronize_session=False)
        )
        tx = create_transaction(
            db,
            wallet,
            amount,
            "credit",
            description or "Wallet funding",
        )
        db.commit()
    except Exception:
        db.rollback()
        raise

    db.refresh(wallet)
    db.refresh(tx)
    logger.info(f"Wallet funded: user={user_id} amount={amount:.2f} balance={wallet.balance:.2f}")
    return wallet, tx


def process_booking_payment(
    db: Session,
    booking_id: int,
    actor_id: int,
) -> tuple[Bookings, Wallets, WalletTransactions]:
    """
    Pay for a booking from the customer's wallet.

    Raises:
        NotFound: booking missing
        Forbidden: actor is not the customer, or a wallet is blocked
        Conflict: booking already paid (or paid concurrently)
        InvalidState: booking cancelled or rejected
        InsufficientBalance: customer balance below total_amount

    Returns:
        (booking, customer wallet, debit transaction), all refreshed.
    """
    booking = db.get(Bookings, booking_id)
    if not booking:
        raise NotFound("Booking not found")
    if booking.customer_id != actor_id:
        raise Forbidden("Only the customer can pay for this booking")
    if booking.payment_status != "pending":
        raise Conflict(f"Booking payment is already {booking.payment_status}")
    if booking.status in ("cancelled", "rejected"):
        raise InvalidState(f"Cannot pay for a {booking.status} booking")

    amount = booking.total_amount

    try:
        customer_wallet = get_or_create_wallet(db, booking.customer_id, booking.currency)
        provider_wallet = get_or_create_wallet(db, booking.provider_id, booking.currency)
        check_wallet_not_blocked(customer_wallet)
        check_wallet_not_blocked(provider_wallet)

        if customer_wallet.balance < amount:
            raise InsufficientBalance(
                f"Insufficient wallet balance: {customer_wallet.balance:.2f} < {amount:.2f}"
            )

        # Debit
        debited = db.execute(
            update(Wallets)
            .where(Wallets.id == customer_wallet.id, Wallets.balance >= amount)
            .values(balance=Wallets.balance - amount)
            .execution_options(synchronize_session=False)
        )
        if debited.rowcount != 1:
            raise InsufficientBalance("Insufficient wallet balance")

        # Credit
        db.execute(
            update(Wallets)
            .where(Wallets.id == provider_wallet.id)
            .values(balance=Wallets.balance + amount)
            .execution_options(synchronize_session=False)
        )

        debit_tx = create_transaction(
            db,
            customer_wallet,
            amount,
            "debit",
            f"Payment for booking #{booking.id}",
            booking_id=booking.id,
            counterparty_id=booking.provider_id,
        )
        create_transaction(
            db,
            provider_wallet,
            amount,
            "credit",
            f"Payment received for booking #{booking.id}",
            booking_id=booking.id,
            counterparty_id=booking.customer_id,
        )

        marked = db.execute(
            update(Bookings)
            .where(Bookings.id == booking.id, Bookings.payment_status == "pending")
            .values(payment_status="paid")
            .execution_options(synchronize_session=False)
        )
        if marked.rowcount != 1:
            raise Conflict("Booking was paid concurrently")

        db.commit()
    except Exception:
        db.rollback()
        raise

    db.refresh(booking)
    db.refresh(customer_wallet)
    db.refresh(debit_tx)
    logger.info(
        f"Booking payment processed: booking={booking.id} amount={amount:.2f} "
        f"customer={booking.customer_id} → provider={booking.provider_id}"
    )
    return booking, customer_wallet, debit_tx
