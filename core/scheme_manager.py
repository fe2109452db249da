"""
Scheme Manager：把 Round Engine 接上資料庫

職責：
1. 用 SQL 版協作者（SqlSchemeStore / SqlLedger / SqlEventSink）組裝 RoundEngine
2. 每個操作包在一個 transaction 內（@transactional）
3. 同一個 Scheme 的操作序列化執行（@serialized）

原則：
- 單一職責：只負責組裝與交易邊界，業務規則全部在 RoundEngine
- 失敗時整個 transaction rollback，包含已完成的轉帳
"""
from sqlalchemy.orm import Session
from typing import List, Optional
import logging

from core.collaborators import CallerAuthenticator, Clock, SystemClock
from core.exceptions import NotInitialized
from core.locks import serialized
from core.round_engine import RoundClosure, RoundEngine
from core.scheme import Scheme, SchemeState
from database import get_settings, transactional
from models import EventLog
from services.ledger_service import SqlLedger
from services.scheme_store import SqlEventSink, SqlSchemeStore

logger = logging.getLogger(__name__)


def custody_account_for(scheme_id: str) -> str:
    """託管帳戶 principal：'<prefix>:<scheme_id>'"""
    return f"{get_settings().custody_account_prefix}:{scheme_id}"


def build_engine(
    db: Session,
    scheme_id: str,
    clock: Optional[Clock] = None,
    caller: Optional[str] = None
) -> RoundEngine:
    """
    組裝一個綁定在 db session 上的 RoundEngine

    參數：
        db: SQLAlchemy Session
        scheme_id: Scheme id（同時是 store 的 key）
        clock: 時鐘，預設為系統時間
        caller: 本次請求的呼叫者 principal（None 代表未驗證）
    """
    return RoundEngine(
        store=SqlSchemeStore(db),
        transfer=SqlLedger(db),
        authenticator=CallerAuthenticator(caller),
        clock=clock or SystemClock(),
        events=SqlEventSink(db, scheme_id),
        custody_account=custody_account_for(scheme_id),
        key=scheme_id,
    )


class SchemeManager:
    """Scheme 生命週期管理器"""

    @staticmethod
    @serialized
    @transactional
    def initialize(
        db: Session,
        scheme_id: str,
        admin: str,
        members: List[str],
        contribution_amount: int,
        asset_id: str,
        round_duration: int,
        clock: Optional[Clock] = None
    ) -> Scheme:
        """
        建立 Scheme

        異常：
            AlreadyInitialized: Scheme 已存在
            InvalidSchemeParameters: 參數不合法
        """
        engine = build_engine(db, scheme_id, clock)
        return engine.initialize(admin, members, contribution_amount, asset_id, round_duration)

    @staticmethod
    @serialized
    @transactional
    def contribute(
        db: Session,
        scheme_id: str,
        caller: Optional[str],
        contributor: str,
        clock: Optional[Clock] = None
    ) -> SchemeState:
        """
        成員繳款（全員繳齊時同一個 transaction 內完成領款）

        異常：
            Unauthorized, NotInitialized, DeadlinePassed, NotAMember,
            AlreadyContributed, InsufficientFunds, TransferRejected,
            MaxRoundsReached, InvalidSchemeParameters
        """
        engine = build_engine(db, scheme_id, clock, caller)
        return engine.contribute(contributor)

    @staticmethod
    @serialized
    @transactional
    def close_round(
        db: Session,
        scheme_id: str,
        caller: Optional[str],
        clock: Optional[Clock] = None
    ) -> RoundClosure:
        """
        admin 強制結束已截止的回合

        返回：
            RoundClosure（與關閉在同一個 transaction 內取得）

        異常：
            NotInitialized, Unauthorized, DeadlineNotYetPassed
        """
        engine = build_engine(db, scheme_id, clock, caller)
        return engine.close_round()

    @staticmethod
    def get_state(db: Session, scheme_id: str) -> SchemeState:
        return build_engine(db, scheme_id).get_state()

    @staticmethod
    def get_scheme(db: Session, scheme_id: str) -> Scheme:
        return build_engine(db, scheme_id).get_scheme()

    @staticmethod
    def list_events(db: Session, scheme_id: str) -> List[EventLog]:
        """
        取得 Scheme 的事件紀錄（依發生順序）

        異常：
            NotInitialized: Scheme 不存在
        """
        if not SqlSchemeStore(db).has(scheme_id):
            raise NotInitialized(scheme_id)

        return db.query(EventLog).filter(
            EventLog.scheme_id == scheme_id
        ).order_by(EventLog.id).all()
