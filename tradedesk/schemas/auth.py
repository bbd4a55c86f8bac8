from pydantic import BaseModel, ConfigDict, Field
from typing import Optional


class WalletLogin(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    wallet_address: str = Field(..., alias="walletAddress", min_length=4, max_length=128)


class AdminLogin(BaseModel):
    username: str = Field(..., min_length=1, max_length=100)
    password: str = Field(..., min_length=1)


class Token(BaseModel):
    access_token: str
    token_type: str = "bearer"


class UserSession(Token):
    wallet_address: str
    uid: Optional[str] = None


class AdminSession(Token):
    username: str
    role: str


class UserResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    wallet_address: str
    uid: Optional[str] = None
    trade_status: str
    trade_limit: Optional[int] = None
    is_suspended: bool
    assigned_employee_id: Optional[int] = None


class TradeStatusUpdate(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    trade_status: str = Field(..., alias="tradeStatus", pattern="^(automatic|win|loss)$")


class UserControlUpdate(BaseModel):
    """
    Partial update of a user's account controls; omitted fields are left unchanged.
    """
    model_config = ConfigDict(populate_by_name=True)

    is_suspended: Optional[bool] = Field(None, alias="isSuspended")
    trade_limit: Optional[int] = Field(None, alias="tradeLimit", ge=0)
    clear_trade_limit: bool = Field(False, alias="clearTradeLimit")


class EmployeeAssignment(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    wallet_address: str = Field(..., alias="walletAddress")
    employee_id: Optional[int] = Field(None, alias="employeeId")


class AdminCreate(BaseModel):
    username: str = Field(..., min_length=3, max_length=100)
    password: str = Field(..., min_length=8)
    role: str = Field("EMPLOYEE", pattern="^(SUPER_ADMIN|ADMIN|EMPLOYEE)$")


class AdminResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    username: str
    role: str
    is_active: bool
