from pydantic import BaseModel, ConfigDict, Field
from decimal import Decimal
from typing import Optional


class BalanceResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    wallet_address: str
    currency: str
    available: Decimal
    frozen: Decimal
    real_balance: Decimal
    real_winnings: Decimal


class ConversionCreate(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    from_currency: str = Field(..., alias="fromCurrency", min_length=2, max_length=20)
    to_currency: str = Field(..., alias="toCurrency", min_length=2, max_length=20)
    amount: Decimal = Field(..., gt=0)


class ConversionResponse(BaseModel):
    source: BalanceResponse
    target: BalanceResponse


class BalanceAdjustment(BaseModel):
    """
    Admin credit (positive amount) or debit (negative amount).
    """
    model_config = ConfigDict(populate_by_name=True)

    currency: str = Field("USDT", min_length=2, max_length=20)
    amount: Decimal
    note: Optional[str] = Field(None, max_length=500)
