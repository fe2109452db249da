"""
資料表定義

- schemes：每個 scheme_id 一筆 Scheme 紀錄
- asset_balances：內建帳本的餘額 (asset_id, holder) -> amount
- event_logs：稽核用事件紀錄
"""
from datetime import datetime, timezone

from sqlalchemy import (
    JSON,
    BigInteger,
    Column,
    DateTime,
    Integer,
    String,
    UniqueConstraint,
)
from sqlalchemy.types import TypeDecorator

from database import Base


def _utcnow():
    return datetime.now(timezone.utc)


class ExactInteger(TypeDecorator):
    """
    以十進位字串保存任意大小的整數

    SQLite 的 NUMERIC 欄位超過 int64 會轉成 REAL 而失去精度，
    i128 金額與 u64 時間戳必須原樣保存
    """
    impl = String(48)
    cache_ok = True

    def process_bind_param(self, value, dialect):
        if value is None:
            return None
        return str(int(value))

    def process_result_value(self, value, dialect):
        if value is None:
            return None
        return int(value)


class SchemeRecord(Base):
    __tablename__ = "schemes"

    id = Column(String(128), primary_key=True)
    admin = Column(String(256), nullable=False)
    # 順序即領款順序
    members = Column(JSON, nullable=False)
    contribution_amount = Column(ExactInteger, nullable=False)
    asset_id = Column(String(256), nullable=False)
    current_round = Column(BigInteger, nullable=False, default=0)
    paid_members = Column(JSON, nullable=False, default=list)
    round_duration = Column(ExactInteger, nullable=False)
    round_deadline = Column(ExactInteger, nullable=False)
    defaulters = Column(JSON, nullable=False, default=list)
    created_at = Column(DateTime(timezone=True), default=_utcnow)
    updated_at = Column(DateTime(timezone=True), default=_utcnow, onupdate=_utcnow)


class AssetBalance(Base):
    __tablename__ = "asset_balances"
    __table_args__ = (
        UniqueConstraint("asset_id", "holder", name="uq_asset_balances_asset_holder"),
    )

    id = Column(Integer, primary_key=True, autoincrement=True)
    asset_id = Column(String(256), nullable=False, index=True)
    holder = Column(String(256), nullable=False)
    amount = Column(ExactInteger, nullable=False, default=0)


class EventLog(Base):
    __tablename__ = "event_logs"

    id = Column(Integer, primary_key=True, autoincrement=True)
    scheme_id = Column(String(128), nullable=False, index=True)
    event_type = Column(String(64), nullable=False)
    data = Column(JSON, nullable=False, default=dict)
    created_at = Column(DateTime(timezone=True), default=_utcnow)
