"""
Scheme API Endpoints

重點：
1. 所有業務邏輯集中在 SchemeManager / RoundEngine
2. 呼叫者身分由 X-Caller-Id header 提供，由 engine 驗證
3. 領域異常在這裡統一轉成 HTTP 狀態碼
"""
from fastapi import APIRouter, Depends, Header, HTTPException
from sqlalchemy.orm import Session
from typing import List, Optional

import logging

from database import get_db
from schemas import (
    SchemeCreate,
    SchemeResponse,
    ContributionSubmit,
    SchemeStateResponse,
    RoundClosedResponse,
    EventResponse
)
from core.collaborators import Clock, SystemClock
from core.scheme import Scheme, SchemeState
from core.scheme_manager import SchemeManager, custody_account_for
from core.exceptions import (
    RoscaException,
    NotInitialized,
    Unauthorized,
    NotAMember,
    AlreadyInitialized,
    AlreadyContributed,
    InsufficientFunds
)

router = APIRouter(prefix="/api/schemes", tags=["schemes"])
logger = logging.getLogger(__name__)


def get_clock() -> Clock:
    """FastAPI dependency：目前時間來源（測試時可覆寫）"""
    return SystemClock()


def to_http_exception(exc: RoscaException) -> HTTPException:
    """
    領域異常 -> HTTPException

    對應：
        NotInitialized -> 404
        Unauthorized, NotAMember -> 403
        AlreadyInitialized, AlreadyContributed -> 409
        InsufficientFunds -> 402
        其他（Deadline*, InvalidSchemeParameters, MaxRoundsReached, TransferRejected）-> 400
    """
    if isinstance(exc, NotInitialized):
        status_code = 404
    elif isinstance(exc, (Unauthorized, NotAMember)):
        status_code = 403
    elif isinstance(exc, (AlreadyInitialized, AlreadyContributed)):
        status_code = 409
    elif isinstance(exc, InsufficientFunds):
        status_code = 402
    else:
        status_code = 400
    return HTTPException(
        status_code=status_code,
        detail={"error": type(exc).__name__, "message": str(exc)}
    )


def _scheme_response(scheme_id: str, scheme: Scheme) -> SchemeResponse:
    return SchemeResponse(
        scheme_id=scheme_id,
        admin=scheme.admin,
        members=scheme.members,
        contribution_amount=scheme.contribution_amount,
        asset_id=scheme.asset_id,
        round_duration=scheme.round_duration,
        current_round=scheme.current_round,
        paid_members=scheme.paid_members,
        round_deadline=scheme.round_deadline,
        defaulters=scheme.defaulters,
        custody_account=custody_account_for(scheme_id)
    )


def _state_response(state: SchemeState) -> SchemeStateResponse:
    return SchemeStateResponse(
        current_round=state.current_round,
        paid_members=state.paid_members,
        round_deadline=state.round_deadline
    )


@router.post("/{scheme_id}", response_model=SchemeResponse, status_code=201)
def initialize_scheme(
    scheme_id: str,
    scheme_data: SchemeCreate,
    db: Session = Depends(get_db),
    clock: Clock = Depends(get_clock)
):
    """
    建立 Scheme

    前置條件：
    - scheme_id 尚未初始化
    - members 非空且不重複，contribution_amount > 0，round_duration > 0

    返回：
        完整的 Scheme 紀錄
    """
    try:
        scheme = SchemeManager.initialize(
            db,
            scheme_id,
            scheme_data.admin,
            scheme_data.members,
            scheme_data.contribution_amount,
            scheme_data.asset_id,
            scheme_data.round_duration,
            clock=clock
        )
        logger.info(f"Scheme {scheme_id} created by {scheme_data.admin}")
        return _scheme_response(scheme_id, scheme)

    except RoscaException as e:
        logger.warning(f"Rejected initialize for scheme {scheme_id}: {e}")
        raise to_http_exception(e)
    except Exception as e:
        logger.error(f"Failed to initialize scheme: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Internal error")


@router.get("/{scheme_id}", response_model=SchemeResponse)
def get_scheme(scheme_id: str, db: Session = Depends(get_db)):
    """取得完整的 Scheme 紀錄（含 defaulters）"""
    try:
        scheme = SchemeManager.get_scheme(db, scheme_id)
        return _scheme_response(scheme_id, scheme)

    except RoscaException as e:
        raise to_http_exception(e)
    except Exception as e:
        logger.error(f"Failed to get scheme: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Internal error")


@router.get("/{scheme_id}/state", response_model=SchemeStateResponse)
def get_scheme_state(scheme_id: str, db: Session = Depends(get_db)):
    """
    取得回合狀態

    返回：
        - current_round: 回合數（從 0 開始）
        - paid_members: 本回合已繳款的成員
        - round_deadline: 本回合截止時間（unix 秒）
    """
    try:
        return _state_response(SchemeManager.get_state(db, scheme_id))

    except RoscaException as e:
        raise to_http_exception(e)
    except Exception as e:
        logger.error(f"Failed to get scheme state: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Internal error")


@router.post("/{scheme_id}/contributions", response_model=SchemeStateResponse)
def contribute(
    scheme_id: str,
    contribution: ContributionSubmit,
    caller: Optional[str] = Header(None, alias="X-Caller-Id"),
    db: Session = Depends(get_db),
    clock: Clock = Depends(get_clock)
):
    """
    成員繳款

    流程：
    1. 驗證呼叫者就是 contributor
    2. 檢查截止時間、成員資格、是否已繳
    3. 轉帳到託管帳戶
    4. 全員繳齊時自動領款並進入下一回合

    返回：
        操作後的回合狀態
    """
    try:
        state = SchemeManager.contribute(
            db,
            scheme_id,
            caller,
            contribution.contributor,
            clock=clock
        )
        return _state_response(state)

    except RoscaException as e:
        logger.warning(
            f"Rejected contribution from {contribution.contributor} "
            f"to scheme {scheme_id}: {e}"
        )
        raise to_http_exception(e)
    except Exception as e:
        logger.error(f"Failed to contribute: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Internal error")


@router.post("/{scheme_id}/close", response_model=RoundClosedResponse)
def close_round(
    scheme_id: str,
    caller: Optional[str] = Header(None, alias="X-Caller-Id"),
    db: Session = Depends(get_db),
    clock: Clock = Depends(get_clock)
):
    """
    強制結束已截止的回合（Admin endpoint）

    前置條件：
    - 呼叫者必須是 admin
    - 本回合截止時間已過

    效果：
    - 記錄 defaulters（未繳款的成員）
    - 不領款、不退款
    - 進入下一回合
    """
    try:
        closure = SchemeManager.close_round(db, scheme_id, caller, clock=clock)

        return RoundClosedResponse(
            round_number=closure.round_number,
            defaulters=closure.defaulters,
            state=_state_response(closure.state)
        )

    except RoscaException as e:
        logger.warning(f"Rejected close_round for scheme {scheme_id}: {e}")
        raise to_http_exception(e)
    except Exception as e:
        logger.error(f"Failed to close round: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Internal error")


@router.get("/{scheme_id}/events", response_model=List[EventResponse])
def list_events(scheme_id: str, db: Session = Depends(get_db)):
    """取得 Scheme 的稽核事件（依發生順序）"""
    try:
        events = SchemeManager.list_events(db, scheme_id)
        return [
            EventResponse(
                event_type=event.event_type,
                data=event.data,
                created_at=event.created_at
            )
            for event in events
        ]

    except RoscaException as e:
        raise to_http_exception(e)
    except Exception as e:
        logger.error(f"Failed to list events: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Internal error")
