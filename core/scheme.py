"""
Scheme 聚合：ROSCA 的唯一狀態紀錄

不可變欄位（建立後不再改變）：
- admin, members, contribution_amount, asset_id, round_duration

可變欄位（只透過回合轉換修改）：
- current_round, paid_members, round_deadline, defaulters
"""
from dataclasses import dataclass, field
from typing import List, NamedTuple

from core.exceptions import InvalidSchemeParameters, MaxRoundsReached
from services.payout_service import next_deadline

I128_MAX = 2 ** 127 - 1
U32_MAX = 2 ** 32 - 1
U64_MAX = 2 ** 64 - 1


class SchemeState(NamedTuple):
    """getState 的回傳值"""
    current_round: int
    paid_members: List[str]
    round_deadline: int


@dataclass
class Scheme:
    """
    單一 Scheme 紀錄

    注意：
        - members 的順序即為 round-robin 的領款順序，不可重新排序
        - paid_members / defaulters 以 list 保存以維持繳款順序，但不允許重複
    """
    admin: str
    members: List[str]
    contribution_amount: int
    asset_id: str
    round_duration: int
    round_deadline: int
    current_round: int = 0
    paid_members: List[str] = field(default_factory=list)
    defaulters: List[str] = field(default_factory=list)

    def copy(self) -> "Scheme":
        """複製一份可安全修改的 Scheme（可變集合會重新建立）"""
        return Scheme(
            admin=self.admin,
            members=list(self.members),
            contribution_amount=self.contribution_amount,
            asset_id=self.asset_id,
            round_duration=self.round_duration,
            round_deadline=self.round_deadline,
            current_round=self.current_round,
            paid_members=list(self.paid_members),
            defaulters=list(self.defaulters),
        )

    def is_member(self, principal: str) -> bool:
        return principal in self.members

    def has_paid(self, principal: str) -> bool:
        return principal in self.paid_members

    def state(self) -> SchemeState:
        return SchemeState(
            current_round=self.current_round,
            paid_members=list(self.paid_members),
            round_deadline=self.round_deadline,
        )

    def check_can_advance(self, now: int) -> int:
        """
        檢查回合能否前進，不修改任何欄位

        返回：
            下一回合的截止時間

        異常：
            MaxRoundsReached: current_round 已達 u32 上限
            InvalidSchemeParameters: 新的截止時間超出 u64 範圍
        """
        if self.current_round >= U32_MAX:
            raise MaxRoundsReached(
                f"Round counter cannot advance past {U32_MAX}"
            )
        deadline = next_deadline(now, self.round_duration)
        if deadline > U64_MAX:
            raise InvalidSchemeParameters(
                f"Round deadline {deadline} exceeds the 64-bit timestamp range"
            )
        return deadline

    def advance_round(self, now: int) -> None:
        """
        進入下一回合

        效果：
        1. current_round += 1
        2. 清空 paid_members
        3. round_deadline = now + round_duration（從當下時間起算，不是從錯過的截止時間）

        異常：
            同 check_can_advance
        """
        deadline = self.check_can_advance(now)
        self.current_round += 1
        self.paid_members = []
        self.round_deadline = deadline


def validate_scheme_parameters(
    admin: str,
    members: List[str],
    contribution_amount: int,
    asset_id: str,
    round_duration: int,
) -> None:
    """
    檢查 initialize 的輸入

    規則：
    - admin、asset_id 不可為空
    - members 不可為空，不可有重複，成員 id 不可為空字串
    - 0 < contribution_amount <= i128 上限
    - 0 < round_duration <= u64 上限

    異常：
        InvalidSchemeParameters: 任一規則不成立
    """
    if not admin:
        raise InvalidSchemeParameters("Admin must not be empty")
    if not asset_id:
        raise InvalidSchemeParameters("Asset id must not be empty")
    if not members:
        raise InvalidSchemeParameters("Members must not be empty")
    if any(not member for member in members):
        raise InvalidSchemeParameters("Member ids must not be empty")
    if len(set(members)) != len(members):
        raise InvalidSchemeParameters("Members must not contain duplicates")

    # bool 是 int 的子類別，必須排除
    if isinstance(contribution_amount, bool) or not isinstance(contribution_amount, int):
        raise InvalidSchemeParameters("Contribution amount must be an integer")
    if not 0 < contribution_amount <= I128_MAX:
        raise InvalidSchemeParameters(
            f"Contribution amount must be in (0, {I128_MAX}], got {contribution_amount}"
        )

    if isinstance(round_duration, bool) or not isinstance(round_duration, int):
        raise InvalidSchemeParameters("Round duration must be an integer")
    if not 0 < round_duration <= U64_MAX:
        raise InvalidSchemeParameters(
            f"Round duration must be in (0, {U64_MAX}], got {round_duration}"
        )
