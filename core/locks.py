"""
並發控制工具

每個 Scheme 的所有操作必須序列化執行，不能交錯讀寫同一筆紀錄

兩層保護：
1. Database-level：PostgreSQL 的 SELECT ... FOR UPDATE 行級鎖（悲觀鎖）
2. Process-level：每個 scheme_id 一把 threading.Lock，
   給不支援行級鎖的 backend（例如 SQLite）使用
"""
import threading
from functools import wraps
from typing import Dict

from sqlalchemy.orm import Session, Query

from models import SchemeRecord

_registry_lock = threading.Lock()
_scheme_mutexes: Dict[str, threading.Lock] = {}


def with_scheme_lock(scheme_id: str, db: Session) -> Query:
    """
    鎖定一個 Scheme（行級鎖）

    使用場景：
    - 讀取 Scheme 後要在同一個 transaction 內寫回時

    範例：
        record = with_scheme_lock(scheme_id, db).first()
        if not record:
            raise NotInitialized(scheme_id)

    參數：
        scheme_id: Scheme id
        db: SQLAlchemy Session

    返回：
        Query object（需要呼叫 .first() 或 .one() 來取得結果）

    注意：
        - nowait=False 表示如果鎖被佔用，會等待
        - 必須在 transaction 內使用（確保有 commit 或 rollback）
    """
    return db.query(SchemeRecord).filter(
        SchemeRecord.id == scheme_id
    ).with_for_update(nowait=False)


def scheme_mutex(scheme_id: str) -> threading.Lock:
    """取得 scheme_id 專屬的 process-level 鎖（不存在則建立）"""
    with _registry_lock:
        mutex = _scheme_mutexes.get(scheme_id)
        if mutex is None:
            mutex = threading.Lock()
            _scheme_mutexes[scheme_id] = mutex
        return mutex


def serialized(func):
    """
    Decorator：在整個 transaction 期間持有 scheme_mutex

    使用方式：
        @serialized
        @transactional
        def contribute(db: Session, scheme_id: str, ...):
            ...

    注意：
        - 第二個參數（或 kwarg）必須是 scheme_id
        - 必須放在 @transactional 外層，commit 完成後才釋放鎖
    """
    @wraps(func)
    def wrapper(*args, **kwargs):
        if 'scheme_id' in kwargs:
            scheme_id = kwargs['scheme_id']
        elif len(args) >= 2:
            scheme_id = args[1]
        else:
            raise ValueError(
                f"@serialized requires 'scheme_id' as second argument, "
                f"but got args={args}, kwargs={kwargs}"
            )

        with scheme_mutex(scheme_id):
            return func(*args, **kwargs)

    return wrapper
