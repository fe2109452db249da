"""
帳本服務：內建的資產轉帳實作

以 asset_balances 資料表實作 TransferService，
Scheme 的託管帳戶與成員帳戶都是這裡的 holder

只 flush 不 commit：轉帳與 Scheme 更新屬於同一個 transaction，
任何一步失敗都會一起 rollback
"""
import logging

from sqlalchemy.orm import Session

from core.collaborators import TransferService
from core.exceptions import InsufficientFunds, TransferRejected
from models import AssetBalance

logger = logging.getLogger(__name__)


class SqlLedger(TransferService):
    def __init__(self, db: Session):
        self.db = db

    def _get_row(self, asset_id: str, holder: str, create: bool = False):
        row = self.db.query(AssetBalance).filter(
            AssetBalance.asset_id == asset_id,
            AssetBalance.holder == holder
        ).with_for_update(nowait=False).first()

        if row is None and create:
            row = AssetBalance(asset_id=asset_id, holder=holder, amount=0)
            self.db.add(row)
            self.db.flush()
        return row

    def balance_of(self, asset_id: str, holder: str) -> int:
        """
        查詢餘額

        返回：
            餘額（沒有紀錄時為 0）
        """
        row = self.db.query(AssetBalance).filter(
            AssetBalance.asset_id == asset_id,
            AssetBalance.holder == holder
        ).first()
        return int(row.amount) if row else 0

    def mint(self, asset_id: str, holder: str, amount: int) -> int:
        """
        鑄造資產給 holder（開發與測試用）

        返回：
            鑄造後的餘額

        異常：
            TransferRejected: amount <= 0
        """
        if amount <= 0:
            raise TransferRejected(f"Mint amount must be positive, got {amount}")

        row = self._get_row(asset_id, holder, create=True)
        row.amount = int(row.amount) + amount
        self.db.flush()

        logger.info(f"Minted {amount} {asset_id} to {holder}")
        return int(row.amount)

    def transfer(self, asset_id: str, sender: str, recipient: str, amount: int) -> None:
        """
        從 sender 轉 amount 給 recipient

        異常：
            TransferRejected: amount <= 0 或 sender == recipient
            InsufficientFunds: sender 餘額不足
        """
        if amount <= 0:
            raise TransferRejected(f"Transfer amount must be positive, got {amount}")
        if sender == recipient:
            raise TransferRejected(f"Cannot transfer from {sender} to itself")

        source = self._get_row(asset_id, sender)
        available = int(source.amount) if source else 0
        if available < amount:
            raise InsufficientFunds(sender, amount, available)

        target = self._get_row(asset_id, recipient, create=True)
        source.amount = available - amount
        target.amount = int(target.amount) + amount
        self.db.flush()

        logger.info(f"Transferred {amount} {asset_id} from {sender} to {recipient}")
