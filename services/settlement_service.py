"""
Settlement Service

Pays the locked boost on a winning bet: bonus = winnings * locked_boost_pct.
LOSS, VOID and CASHOUT settle with a zero bonus. Idempotent per bet id.
"""

import logging
from datetime import datetime
from typing import Any, Dict, Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from core.boost_model import calculate_bonus_amount
from core.reason_codes import ReasonCode
from core.structured_logging import log_info
from database import BetBoostLock, SettlementOutcome, SettlementRecord, append_audit_log
from services.results import ServiceResult

logger = logging.getLogger("settlement_service")


def settlement_response(settlement: SettlementRecord, lock: Optional[BetBoostLock]) -> Dict[str, Any]:
    return {
        "settlement_id": settlement.id,
        "bet_id": settlement.bet_id,
        "outcome": settlement.outcome,
        "winnings": settlement.winnings,
        "bonus_amount": settlement.bonus_amount,
        "locked_boost_pct": lock.locked_boost_pct if lock else 0.0,
        "settled_at": settlement.settled_at.isoformat() if settlement.settled_at else None,
    }


class SettlementService:

    def _find_lock(self, db: Session, bet_id: str) -> Optional[BetBoostLock]:
        return db.query(BetBoostLock).filter(BetBoostLock.bet_id == bet_id).first()

    def _find_settlement(self, db: Session, bet_id: str) -> Optional[SettlementRecord]:
        return db.query(SettlementRecord).filter(SettlementRecord.bet_id == bet_id).first()

    def settle_bet(self, db: Session, bet_id: str, outcome: str, winnings: float,
                   now: Optional[datetime] = None) -> ServiceResult[Dict[str, Any]]:
        existing = self._find_settlement(db, bet_id)
        if existing is not None:
            return ServiceResult.ok(settlement_response(existing, self._find_lock(db, bet_id)))

        lock = self._find_lock(db, bet_id)
        if lock is None:
            return ServiceResult.fail(ReasonCode.LOCK_NOT_FOUND, f"No boost lock found for bet {bet_id}")

        outcome = SettlementOutcome(outcome).value
        bonus = 0.0
        if outcome == SettlementOutcome.WIN.value and winnings > 0:
            bonus = calculate_bonus_amount(winnings, lock.locked_boost_pct)

        settlement = SettlementRecord(bet_id=bet_id, outcome=outcome, winnings=winnings, bonus_amount=bonus)
        if now is not None:
            settlement.settled_at = now
        db.add(settlement)
        try:
            db.flush()
        except IntegrityError:
            db.rollback()
            winner = self._find_settlement(db, bet_id)
            if winner is None:
                raise
            return ServiceResult.ok(settlement_response(winner, self._find_lock(db, bet_id)))

        append_audit_log(db, "settlement", settlement.id, "SETTLE", {
            "bet_id": bet_id,
            "outcome": outcome,
            "winnings": winnings,
            "bonus_amount": bonus,
            "locked_boost_pct": lock.locked_boost_pct,
            "reward_id": lock.reward_id,
        })
        log_info(logger, "Bet settled", bet_id=bet_id, outcome=outcome, bonus_amount=bonus)
        return ServiceResult.ok(settlement_response(settlement, lock))

    def get_settlement(self, db: Session, bet_id: str) -> ServiceResult[Optional[Dict[str, Any]]]:
        settlement = self._find_settlement(db, bet_id)
        if settlement is None:
            return ServiceResult.ok(None)
        return ServiceResult.ok(settlement_response(settlement, self._find_lock(db, bet_id)))


settlement_service = SettlementService()
