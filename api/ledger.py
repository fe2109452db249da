"""
Ledger API Endpoints

職責：
1. 查詢資產餘額
2. 鑄造資產（僅在 settings.allow_mint 開啟時提供，開發用）
"""
from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session
import logging

from database import get_db, get_settings
from schemas import MintRequest, BalanceResponse
from core.exceptions import TransferRejected
from services.ledger_service import SqlLedger

router = APIRouter(prefix="/api/assets", tags=["ledger"])
logger = logging.getLogger(__name__)


@router.get("/{asset_id}/balances/{holder}", response_model=BalanceResponse)
def get_balance(asset_id: str, holder: str, db: Session = Depends(get_db)):
    """查詢 holder 持有的 asset_id 餘額（沒有紀錄時為 0）"""
    balance = SqlLedger(db).balance_of(asset_id, holder)
    return BalanceResponse(asset_id=asset_id, holder=holder, balance=balance)


@router.post("/{asset_id}/mint", response_model=BalanceResponse)
def mint(asset_id: str, mint_data: MintRequest, db: Session = Depends(get_db)):
    """
    鑄造資產（開發用）

    前置條件：
    - settings.allow_mint 必須開啟，否則回傳 404
    - amount > 0
    """
    if not get_settings().allow_mint:
        raise HTTPException(status_code=404, detail="Not found")

    try:
        balance = SqlLedger(db).mint(asset_id, mint_data.holder, mint_data.amount)
        db.commit()
        return BalanceResponse(asset_id=asset_id, holder=mint_data.holder, balance=balance)

    except TransferRejected as e:
        db.rollback()
        raise HTTPException(status_code=400, detail=str(e))
    except Exception as e:
        logger.error(f"Failed to mint: {e}", exc_info=True)
        db.rollback()
        raise HTTPException(status_code=500, detail="Internal error")
