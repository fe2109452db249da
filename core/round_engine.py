"""
Round Engine：ROSCA 的回合狀態機

職責：
1. 建立 Scheme（initialize）
2. 收取繳款（contribute），全員繳齊時自動領款並進入下一回合
3. 截止後由 admin 強制結束回合（close_round），記錄違約成員
4. 查詢狀態（get_state）

狀態轉換：
    回合 N 開放中
      ├─ 全員繳款 ──────────────> 回合 N+1（領款人得到彩池）
      └─ 截止後 admin close_round ─> 回合 N+1（不領款，記錄 defaulters）

沒有終止狀態，Scheme 會一直運行

原則：
- 所有寫入只發生在操作成功的最後一步（store.set），
  中途任何異常都不會留下部分修改
- 每個操作在 engine 的鎖內執行，不會互相交錯
"""
import logging
import threading
from typing import List, NamedTuple, Optional

from core.collaborators import (
    Authenticator,
    Clock,
    EventSink,
    SchemeStore,
    TransferService,
)
from core.exceptions import (
    AlreadyContributed,
    AlreadyInitialized,
    DeadlineNotYetPassed,
    DeadlinePassed,
    InvalidSchemeParameters,
    NotAMember,
    NotInitialized,
)
from core.scheme import U64_MAX, Scheme, SchemeState, validate_scheme_parameters
from services.payout_service import (
    calculate_pot,
    compute_defaulters,
    is_round_complete,
    next_deadline,
    select_recipient,
)

logger = logging.getLogger(__name__)

DEFAULT_SCHEME_KEY = "default"

SCHEME_INITIALIZED = "SCHEME_INITIALIZED"
CONTRIBUTION_RECEIVED = "CONTRIBUTION_RECEIVED"
ROUND_COMPLETED = "ROUND_COMPLETED"
ROUND_CLOSED = "ROUND_CLOSED"


class RoundClosure(NamedTuple):
    """close_round 的結果，在同一個鎖內取得"""
    round_number: int
    defaulters: List[str]
    state: SchemeState


class RoundEngine:
    """ROSCA 回合狀態機"""

    def __init__(
        self,
        store: SchemeStore,
        transfer: TransferService,
        authenticator: Authenticator,
        clock: Clock,
        events: EventSink,
        custody_account: str,
        key: str = DEFAULT_SCHEME_KEY,
        lock: Optional[threading.Lock] = None,
    ):
        self.store = store
        self.transfer = transfer
        self.authenticator = authenticator
        self.clock = clock
        self.events = events
        self.custody_account = custody_account
        self.key = key
        self._lock = lock or threading.Lock()

    def _load(self) -> Scheme:
        scheme = self.store.get(self.key)
        if scheme is None:
            raise NotInitialized(self.key)
        return scheme

    def initialize(
        self,
        admin: str,
        members: List[str],
        contribution_amount: int,
        asset_id: str,
        round_duration: int,
    ) -> Scheme:
        """
        建立 Scheme

        前置條件：
        1. 尚未初始化（第二次呼叫一律拒絕，不論參數是否相同）
        2. 參數合法（見 validate_scheme_parameters）

        效果：
            current_round = 0, paid_members = [], defaulters = [],
            round_deadline = now + round_duration
            不移動任何資金

        異常：
            AlreadyInitialized: Scheme 已存在
            InvalidSchemeParameters: 參數不合法
        """
        with self._lock:
            if self.store.has(self.key):
                raise AlreadyInitialized(self.key)

            validate_scheme_parameters(
                admin, members, contribution_amount, asset_id, round_duration
            )

            deadline = next_deadline(self.clock.now(), round_duration)
            if deadline > U64_MAX:
                raise InvalidSchemeParameters(
                    f"Round deadline {deadline} exceeds the 64-bit timestamp range"
                )

            scheme = Scheme(
                admin=admin,
                members=list(members),
                contribution_amount=contribution_amount,
                asset_id=asset_id,
                round_duration=round_duration,
                round_deadline=deadline,
            )
            self.store.set(self.key, scheme)

            logger.info(
                f"Initialized scheme {self.key} with {len(members)} members, "
                f"contribution {contribution_amount} {asset_id}, deadline {deadline}"
            )
            self.events.emit(SCHEME_INITIALIZED, {
                "admin": admin,
                "members": list(members),
                "contribution_amount": contribution_amount,
                "asset_id": asset_id,
                "round_duration": round_duration,
                "round_deadline": deadline,
            })
            return scheme.copy()

    def contribute(self, contributor: str) -> SchemeState:
        """
        成員繳款

        前置條件（依序檢查，各自對應不同異常）：
        1. 呼叫者必須是 contributor 本人
        2. now <= round_deadline
        3. contributor 是成員
        4. contributor 本回合尚未繳款

        流程：
        1. 從 contributor 轉 contribution_amount 到託管帳戶
        2. 轉帳成功後才把 contributor 加入 paid_members
        3. 若全員繳齊，在同一個操作內領款並進入下一回合

        返回：
            操作後的 SchemeState

        異常：
            Unauthorized, NotInitialized, DeadlinePassed, NotAMember,
            AlreadyContributed, InsufficientFunds, TransferRejected, MaxRoundsReached
        """
        with self._lock:
            # 1. 身分驗證
            self.authenticator.require_authorized(contributor)

            scheme = self._load()
            now = self.clock.now()

            # 2. 截止時間
            if now > scheme.round_deadline:
                raise DeadlinePassed(scheme.round_deadline, now)

            # 3. 成員資格
            if not scheme.is_member(contributor):
                raise NotAMember(contributor)

            # 4. 本回合是否已繳
            if scheme.has_paid(contributor):
                raise AlreadyContributed(contributor, scheme.current_round)

            # 5. 這筆繳款會完成回合時，先確認回合能前進，再動用任何資金
            if len(scheme.paid_members) + 1 == len(scheme.members):
                scheme.check_can_advance(now)

            # 6. 轉帳（失敗則整個操作中止，狀態不變）
            self.transfer.transfer(
                scheme.asset_id,
                contributor,
                self.custody_account,
                scheme.contribution_amount,
            )
            scheme.paid_members.append(contributor)
            round_number = scheme.current_round

            logger.info(
                f"{contributor} contributed {scheme.contribution_amount} "
                f"in round {scheme.current_round} of scheme {self.key} "
                f"({len(scheme.paid_members)}/{len(scheme.members)})"
            )

            # 7. 回合完成檢查
            completed = None
            if is_round_complete(scheme.members, scheme.paid_members):
                completed = self._pay_out(scheme, now)

            self.store.set(self.key, scheme)

            self.events.emit(CONTRIBUTION_RECEIVED, {
                "round_number": round_number,
                "contributor": contributor,
                "amount": scheme.contribution_amount,
            })
            if completed:
                self.events.emit(ROUND_COMPLETED, completed)

            return scheme.state()

    def _pay_out(self, scheme: Scheme, now: int) -> dict:
        """
        Round-robin 領款

        領款人 = members[current_round mod len(members)]
        彩池 = contribution_amount × 實際繳款人數

        之後 current_round += 1，清空 paid_members，重設截止時間
        """
        round_number = scheme.current_round
        recipient = select_recipient(scheme.members, round_number)
        pot = calculate_pot(scheme.contribution_amount, len(scheme.paid_members))

        scheme.advance_round(now)
        self.transfer.transfer(scheme.asset_id, self.custody_account, recipient, pot)

        logger.info(
            f"Round {round_number} of scheme {self.key} completed: "
            f"paid {pot} to {recipient}, next deadline {scheme.round_deadline}"
        )
        return {
            "round_number": round_number,
            "recipient": recipient,
            "pot": pot,
        }

    def close_round(self) -> RoundClosure:
        """
        強制結束已截止的回合（admin 限定）

        前置條件：
        1. 呼叫者必須是 admin
        2. now > round_deadline

        效果：
        1. defaulters = members - paid_members（整批取代先前的紀錄）
        2. 不領款、不退款：已收的繳款留在託管帳戶
        3. current_round += 1，清空 paid_members，round_deadline = now + round_duration
        4. 發出 ROUND_CLOSED 通知（回合數 + defaulters）

        返回：
            RoundClosure（被關閉的回合數、defaulters、關閉後的狀態）

        異常：
            NotInitialized, Unauthorized, DeadlineNotYetPassed, MaxRoundsReached
        """
        with self._lock:
            scheme = self._load()

            # 1. admin 驗證
            self.authenticator.require_authorized(scheme.admin)

            # 2. 截止時間
            now = self.clock.now()
            if now <= scheme.round_deadline:
                raise DeadlineNotYetPassed(scheme.round_deadline, now)

            # 3. 記錄違約並進入下一回合
            closed_round = scheme.current_round
            defaulters = compute_defaulters(scheme.members, scheme.paid_members)
            scheme.defaulters = defaulters
            scheme.advance_round(now)

            self.store.set(self.key, scheme)

            logger.info(
                f"Round {closed_round} of scheme {self.key} force-closed at {now}, "
                f"defaulters: {defaulters}"
            )
            self.events.emit(ROUND_CLOSED, {
                "round_number": closed_round,
                "defaulters": list(defaulters),
            })
            return RoundClosure(
                round_number=closed_round,
                defaulters=list(defaulters),
                state=scheme.state(),
            )

    def get_state(self) -> SchemeState:
        """純讀取：(current_round, paid_members, round_deadline)，不需驗證"""
        with self._lock:
            return self._load().state()

    def get_scheme(self) -> Scheme:
        with self._lock:
            return self._load().copy()

    def get_defaulters(self) -> List[str]:
        with self._lock:
            return list(self._load().defaulters)
