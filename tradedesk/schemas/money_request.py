from pydantic import BaseModel, ConfigDict, Field
from decimal import Decimal
from typing import Optional
import datetime


# --- Withdrawals ---
class WithdrawalCreate(BaseModel):
    """
    Schema for a user withdrawal request. ``usdtAmount`` is converted to
    the withdrawal currency at the current market price.
    """
    model_config = ConfigDict(populate_by_name=True)

    currency: str = Field("USDT", min_length=2, max_length=20)
    usdt_amount: Decimal = Field(..., alias="usdtAmount", gt=0)
    destination_address: str = Field(..., alias="destinationAddress", min_length=1, max_length=255)


class WithdrawalApprove(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    withdrawal_id: int = Field(..., alias="withdrawalId")
    tx_hash: str = Field(..., alias="txHash", min_length=1, max_length=255)
    admin_notes: Optional[str] = Field(None, alias="adminNotes")


class WithdrawalReject(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    withdrawal_id: int = Field(..., alias="withdrawalId")
    admin_notes: Optional[str] = Field(None, alias="adminNotes")


class WithdrawalResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    wallet_address: str
    currency: str
    crypto_amount: Decimal
    usdt_amount: Decimal
    conversion_rate: Decimal
    fee: Decimal
    status: str
    destination_address: str
    tx_hash: Optional[str] = None
    admin_notes: Optional[str] = None
    processed_by: Optional[str] = None
    processed_at: Optional[datetime.datetime] = None
    rejected_at: Optional[datetime.datetime] = None
    created_at: datetime.datetime


# --- Deposits ---
class DepositCreate(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    currency: str = Field("USDT", min_length=2, max_length=20)
    amount: Decimal = Field(..., gt=0)
    tx_hash: str = Field(..., alias="txHash", min_length=1, max_length=255)
    usdt_amount: Optional[Decimal] = Field(None, alias="usdtAmount", gt=0)
    conversion_rate: Decimal = Field(Decimal("1"), alias="conversionRate", gt=0)


class DepositApprove(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    deposit_id: int = Field(..., alias="depositId")
    admin_notes: Optional[str] = Field(None, alias="adminNotes")
    adjusted_amount: Optional[Decimal] = Field(None, alias="adjustedAmount", gt=0)


class DepositReject(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    deposit_id: int = Field(..., alias="depositId")
    admin_notes: Optional[str] = Field(None, alias="adminNotes")


class DepositResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    wallet_address: str
    currency: str
    crypto_amount: Decimal
    usdt_amount: Decimal
    conversion_rate: Decimal
    tx_hash: str
    status: str
    admin_notes: Optional[str] = None
    processed_by: Optional[str] = None
    processed_at: Optional[datetime.datetime] = None
    created_at: datetime.datetime
