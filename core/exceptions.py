"""
自定義異常類別

集中管理所有 ROSCA 業務邏輯異常，方便 API 層統一處理

所有異常對當前操作都是致命的：操作中止、交易 rollback，不做任何本地重試
"""


class RoscaException(Exception):
    """所有 ROSCA 異常的基類"""
    pass


# ============ Scheme 生命週期異常 ============

class AlreadyInitialized(RoscaException):
    """Scheme 已經初始化過（不支援冪等初始化）"""
    def __init__(self, scheme_key):
        self.scheme_key = scheme_key
        super().__init__(f"Scheme {scheme_key} is already initialized")


class NotInitialized(RoscaException):
    """Scheme 尚未初始化"""
    def __init__(self, scheme_key):
        self.scheme_key = scheme_key
        super().__init__(f"Scheme {scheme_key} is not initialized")


class InvalidSchemeParameters(RoscaException):
    """初始化參數不合法（成員為空、重複成員、金額或週期 <= 0）"""
    pass


class MaxRoundsReached(RoscaException):
    """回合計數器已達上限（u32）"""
    pass


# ============ 權限相關異常 ============

class Unauthorized(RoscaException):
    """呼叫者無法證明自己是指定的 principal"""
    def __init__(self, principal):
        self.principal = principal
        super().__init__(f"Caller is not authorized to act as {principal}")


# ============ Contribution 相關異常 ============

class NotAMember(RoscaException):
    """呼叫者不是 Scheme 成員"""
    def __init__(self, principal):
        self.principal = principal
        super().__init__(f"{principal} is not a member of this scheme")


class AlreadyContributed(RoscaException):
    """成員在本回合已經繳過款了"""
    def __init__(self, principal, round_number):
        self.principal = principal
        self.round_number = round_number
        super().__init__(
            f"{principal} has already contributed in round {round_number}"
        )


# ============ Deadline 相關異常 ============

class DeadlinePassed(RoscaException):
    """本回合截止時間已過，不再接受繳款"""
    def __init__(self, deadline, now):
        self.deadline = deadline
        self.now = now
        super().__init__(f"Round deadline {deadline} has passed (now={now})")


class DeadlineNotYetPassed(RoscaException):
    """本回合尚未截止，不能強制結束"""
    def __init__(self, deadline, now):
        self.deadline = deadline
        self.now = now
        super().__init__(f"Round deadline {deadline} has not passed yet (now={now})")


# ============ Transfer 相關異常（由轉帳服務原樣拋出） ============

class TransferError(RoscaException):
    """轉帳服務異常的基類"""
    pass


class InsufficientFunds(TransferError):
    """付款方餘額不足"""
    def __init__(self, holder, required, available):
        self.holder = holder
        self.required = required
        self.available = available
        super().__init__(
            f"{holder} has insufficient funds: required {required}, available {available}"
        )


class TransferRejected(TransferError):
    """轉帳被拒絕（金額不合法、自己轉給自己等）"""
    pass
