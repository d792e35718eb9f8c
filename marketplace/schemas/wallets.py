# marketplace/schemas/wallets.py

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field

from .bookings import BookingRead
from .services import Pagination


# ──────────────────────────────────────────────────────────────────────────────
# Read Schemas
# ──────────────────────────────────────────────────────────────────────────────

class WalletRead(BaseModel):
    """Response for GET /wallet/balance"""
    id: int
    user_id: int
    balance: float
    currency: str
    is_blocked: bool

    model_config = {"from_attributes": True}


class WalletTransactionRead(BaseModel):
    """Transaction item in history list"""
    id: int
    wallet_id: int
    type: str  # credit, debit
    amount: float
    currency: str
    description: str
    reference: str
    status: str
    booking_id: Optional[int] = None
    counterparty_id: Optional[int] = None
    created_at: datetime

    model_config = {"from_attributes": True}


class WalletTransactionList(BaseModel):
    transactions: list[WalletTransactionRead]
    pagination: Pagination


# ──────────────────────────────────────────────────────────────────────────────
# Operation Request Schemas
# ──────────────────────────────────────────────────────────────────────────────

class WalletAddFunds(BaseModel):
    """Request body for POST /wallet/add-funds"""
    amount: float = Field(..., gt=0, description="Amount to add (must be > 0)")
    description: Optional[str] = None


class BookingPayment(BaseModel):
    """Request body for POST /wallet/pay-booking"""
    booking_id: int


class WalletOperationResponse(BaseModel):
    """Response for wallet operations"""
    success: bool
    new_balance: float
    transaction: WalletTransactionRead
    message: str


class BookingPaymentResponse(WalletOperationResponse):
    booking: BookingRead
