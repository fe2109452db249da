"""
SQL 版的 SchemeStore 與 EventSink

只 flush 不 commit，transaction 由外層的 @transactional 決定
"""
from typing import Any, Dict, Optional

from sqlalchemy.orm import Session

from core.collaborators import EventSink, SchemeStore
from core.locks import with_scheme_lock
from core.scheme import Scheme
from models import EventLog, SchemeRecord


def record_to_scheme(record: SchemeRecord) -> Scheme:
    return Scheme(
        admin=record.admin,
        members=list(record.members),
        contribution_amount=int(record.contribution_amount),
        asset_id=record.asset_id,
        round_duration=int(record.round_duration),
        round_deadline=int(record.round_deadline),
        current_round=int(record.current_round),
        paid_members=list(record.paid_members or []),
        defaulters=list(record.defaulters or []),
    )


class SqlSchemeStore(SchemeStore):
    """schemes 資料表，key 即 scheme_id"""

    def __init__(self, db: Session):
        self.db = db

    def has(self, key: str) -> bool:
        return self.db.query(SchemeRecord.id).filter(SchemeRecord.id == key).first() is not None

    def get(self, key: str) -> Optional[Scheme]:
        record = with_scheme_lock(key, self.db).first()
        if not record:
            return None
        return record_to_scheme(record)

    def set(self, key: str, scheme: Scheme) -> None:
        record = self.db.query(SchemeRecord).filter(SchemeRecord.id == key).first()
        if record is None:
            record = SchemeRecord(id=key)
            self.db.add(record)

        record.admin = scheme.admin
        # JSON 欄位需指定新物件，SQLAlchemy 才會偵測到變更
        record.members = list(scheme.members)
        record.contribution_amount = scheme.contribution_amount
        record.asset_id = scheme.asset_id
        record.current_round = scheme.current_round
        record.paid_members = list(scheme.paid_members)
        record.round_duration = scheme.round_duration
        record.round_deadline = scheme.round_deadline
        record.defaulters = list(scheme.defaulters)

        self.db.flush()


class SqlEventSink(EventSink):
    """event_logs 資料表"""

    def __init__(self, db: Session, scheme_id: str):
        self.db = db
        self.scheme_id = scheme_id

    def emit(self, event_type: str, data: Dict[str, Any]) -> None:
        event = EventLog(
            scheme_id=self.scheme_id,
            event_type=event_type,
            data=data
        )
        self.db.add(event)
