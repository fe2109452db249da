"""
領款服務：ROSCA 的 round-robin 領款與違約計算

純計算邏輯，不涉及狀態轉換，也不碰儲存或轉帳
"""
from typing import List, Sequence


def select_recipient(members: Sequence[str], round_number: int) -> str:
    """
    決定本回合的領款人

    規則：
        recipient = members[round_number mod len(members)]

    領款人只由「已完成幾個回合」決定，與誰先繳、誰晚繳無關，
    因此不需要額外的輪替游標

    參數：
        members: 初始化時固定順序的成員列表
        round_number: 當前回合數（從 0 開始）

    返回：
        領款人 principal

    範例：
        members = [A, B, C]
        round 0 -> A, round 1 -> B, round 2 -> C, round 3 -> A
    """
    if not members:
        raise ValueError("Cannot select a recipient from an empty member list")
    return members[round_number % len(members)]


def calculate_pot(contribution_amount: int, payer_count: int) -> int:
    """
    計算本回合的彩池金額

    採用「實際繳款人數」計算：pot = contribution_amount × payer_count
    在回合自動完成時（全員繳款）等同於 contribution_amount × len(members)
    """
    return contribution_amount * payer_count


def compute_defaulters(members: Sequence[str], paid_members: Sequence[str]) -> List[str]:
    """
    計算違約成員：members - paid_members

    保留 members 的原始順序，方便稽核比對
    """
    paid = set(paid_members)
    return [member for member in members if member not in paid]


def is_round_complete(members: Sequence[str], paid_members: Sequence[str]) -> bool:
    return len(paid_members) == len(members)


def next_deadline(now: int, round_duration: int) -> int:
    return now + round_duration
