"""
外部協作者介面

Round Engine 只依賴這五個介面，本身不碰資料庫、帳本或系統時間：
- SchemeStore：持久化儲存（has / get / set）
- TransferService：資產轉帳
- Authenticator：呼叫者身分驗證
- Clock：目前時間（秒）
- EventSink：對外通知（稽核紀錄、indexer）

這裡同時提供記憶體版實作，用於單元測試與模擬
"""
import time
from abc import ABC, abstractmethod
from collections import defaultdict
from typing import Any, Dict, List, Optional, Tuple

from core.exceptions import InsufficientFunds, TransferRejected, Unauthorized
from core.scheme import Scheme


class SchemeStore(ABC):
    @abstractmethod
    def has(self, key: str) -> bool:
        pass

    @abstractmethod
    def get(self, key: str) -> Optional[Scheme]:
        pass

    @abstractmethod
    def set(self, key: str, scheme: Scheme) -> None:
        pass


class TransferService(ABC):
    @abstractmethod
    def transfer(self, asset_id: str, sender: str, recipient: str, amount: int) -> None:
        """
        轉帳；失敗時拋出 InsufficientFunds 或 TransferRejected
        """
        pass


class Authenticator(ABC):
    @abstractmethod
    def require_authorized(self, principal: str) -> None:
        """呼叫者無法證明自己是 principal 時拋出 Unauthorized"""
        pass


class Clock(ABC):
    @abstractmethod
    def now(self) -> int:
        pass


class EventSink(ABC):
    @abstractmethod
    def emit(self, event_type: str, data: Dict[str, Any]) -> None:
        pass


# ============ 實作 ============

class InMemorySchemeStore(SchemeStore):
    """以 dict 保存 Scheme；讀寫都複製，避免外部持有引用後直接修改"""

    def __init__(self):
        self._records: Dict[str, Scheme] = {}

    def has(self, key: str) -> bool:
        return key in self._records

    def get(self, key: str) -> Optional[Scheme]:
        scheme = self._records.get(key)
        return scheme.copy() if scheme else None

    def set(self, key: str, scheme: Scheme) -> None:
        self._records[key] = scheme.copy()


class InMemoryLedger(TransferService):
    """記憶體帳本：(asset_id, holder) -> amount"""

    def __init__(self):
        self._balances: Dict[Tuple[str, str], int] = defaultdict(int)
        self.transfers: List[Tuple[str, str, str, int]] = []

    def balance_of(self, asset_id: str, holder: str) -> int:
        return self._balances[(asset_id, holder)]

    def mint(self, asset_id: str, holder: str, amount: int) -> None:
        if amount <= 0:
            raise TransferRejected(f"Mint amount must be positive, got {amount}")
        self._balances[(asset_id, holder)] += amount

    def transfer(self, asset_id: str, sender: str, recipient: str, amount: int) -> None:
        if amount <= 0:
            raise TransferRejected(f"Transfer amount must be positive, got {amount}")
        if sender == recipient:
            raise TransferRejected(f"Cannot transfer from {sender} to itself")

        available = self._balances[(asset_id, sender)]
        if available < amount:
            raise InsufficientFunds(sender, amount, available)

        self._balances[(asset_id, sender)] -= amount
        self._balances[(asset_id, recipient)] += amount
        self.transfers.append((asset_id, sender, recipient, amount))


class CallerAuthenticator(Authenticator):
    """
    以「本次請求的呼叫者」驗證

    caller 為 None 時（未提供身分），任何 principal 都會被拒絕
    """

    def __init__(self, caller: Optional[str]):
        self.caller = caller

    def require_authorized(self, principal: str) -> None:
        if self.caller is None or self.caller != principal:
            raise Unauthorized(principal)


class SystemClock(Clock):
    def now(self) -> int:
        return int(time.time())


class ManualClock(Clock):
    """可手動設定的時鐘（測試與模擬用）"""

    def __init__(self, timestamp: int = 0):
        self.timestamp = timestamp

    def now(self) -> int:
        return self.timestamp

    def set(self, timestamp: int) -> None:
        self.timestamp = timestamp


class RecordingEventSink(EventSink):
    def __init__(self):
        self.events: List[Tuple[str, Dict[str, Any]]] = []

    def emit(self, event_type: str, data: Dict[str, Any]) -> None:
        self.events.append((event_type, data))
