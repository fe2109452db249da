"""
API request / response schemas
"""
from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel


class SchemeCreate(BaseModel):
    admin: str
    members: List[str]
    contribution_amount: int
    asset_id: str
    round_duration: int


class SchemeResponse(BaseModel):
    scheme_id: str
    admin: str
    members: List[str]
    contribution_amount: int
    asset_id: str
    round_duration: int
    current_round: int
    paid_members: List[str]
    round_deadline: int
    defaulters: List[str]
    custody_account: str


class ContributionSubmit(BaseModel):
    contributor: str


class SchemeStateResponse(BaseModel):
    current_round: int
    paid_members: List[str]
    round_deadline: int


class RoundClosedResponse(BaseModel):
    round_number: int
    defaulters: List[str]
    state: SchemeStateResponse


class EventResponse(BaseModel):
    event_type: str
    data: Dict[str, Any]
    created_at: Optional[datetime] = None


class MintRequest(BaseModel):
    holder: str
    amount: int


class BalanceResponse(BaseModel):
    asset_id: str
    holder: str
    balance: int
