# database.py - SQLAlchemy models for reward profiles, rides, locks and settlements
# SQLite locally, PostgreSQL in production (DATABASE_URL)

import json
import logging
import uuid
from contextlib import contextmanager
from datetime import datetime, timezone
from enum import Enum as PyEnum
from typing import Any, Dict, List, Optional

from sqlalchemy import (
    Boolean,
    Column,
    DateTime,
    Float,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
    create_engine,
    update,
)
from sqlalchemy.orm import Session, declarative_base, sessionmaker
from sqlalchemy.pool import StaticPool

from env_config import Config

logger = logging.getLogger("database")

# SQLAlchemy setup
Base = declarative_base()
engine = None
SessionLocal = None
DB_ENABLED = False
DB_TYPE = "none"


def _utcnow() -> datetime:
    """Naive UTC; every DateTime column stores naive UTC."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def new_id() -> str:
    return str(uuid.uuid4())


def _iso(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value else None


def make_engine(database_url: str):
    """Create an engine for a DATABASE_URL (postgres:// is rewritten for SQLAlchemy)."""
    db_url = database_url
    if db_url.startswith("postgres://"):
        db_url = db_url.replace("postgres://", "postgresql://", 1)

    if db_url.startswith("sqlite"):
        kwargs: Dict[str, Any] = {"connect_args": {"check_same_thread": False}}
        if db_url in ("sqlite://", "sqlite:///:memory:"):
            # One shared connection so every session sees the same in-memory DB
            kwargs["poolclass"] = StaticPool
        return create_engine(db_url, **kwargs)

    return create_engine(db_url, pool_pre_ping=True, pool_size=5, max_overflow=10)


def create_session_factory(database_url: str) -> sessionmaker:
    """Engine + tables + sessionmaker for one database. Used by init_database and tests."""
    db_engine = make_engine(database_url)
    Base.metadata.create_all(bind=db_engine)
    return sessionmaker(autocommit=False, autoflush=False, bind=db_engine, expire_on_commit=False)


def init_database(database_url: Optional[str] = None) -> Optional[sessionmaker]:
    """Initialize database connection and create tables."""
    global engine, SessionLocal, DB_ENABLED, DB_TYPE

    database_url = database_url or Config.DATABASE_URL
    DB_TYPE = "sqlite" if database_url.startswith("sqlite") else "postgresql"

    try:
        SessionLocal = create_session_factory(database_url)
        engine = SessionLocal.kw["bind"]
        DB_ENABLED = True
        logger.info("Database initialized successfully (%s)", DB_TYPE)
        return SessionLocal
    except Exception as e:
        logger.error("Database initialization failed: %s", e)
        DB_ENABLED = False
        raise


@contextmanager
def get_db(session_factory: Optional[sessionmaker] = None):
    """Get database session context manager."""
    factory = session_factory or SessionLocal
    if factory is None:
        raise RuntimeError("Database not initialized; call init_database() first")

    db = factory()
    try:
        yield db
        db.commit()
    except Exception:
        db.rollback()
        raise
    finally:
        db.close()


# ============================================================================
# ENUMS
# ============================================================================

class RewardStatus(str, PyEnum):
    """Lifecycle of a granted reward."""
    GRANTED = "GRANTED"
    ENTERED = "ENTERED"   # opted in, ride running
    USED = "USED"         # boost locked for a bet
    EXPIRED = "EXPIRED"


class SettlementOutcome(str, PyEnum):
    WIN = "WIN"
    LOSS = "LOSS"
    VOID = "VOID"
    CASHOUT = "CASHOUT"


# ============================================================================
# DATABASE MODELS
# ============================================================================

class RewardProfileVersion(Base):
    """Operator-configured reward profile. Rewards pin the version they were granted with."""
    __tablename__ = "reward_profile_versions"

    id = Column(String(36), primary_key=True, default=new_id)
    name = Column(String(255), nullable=False)
    description = Column(Text, nullable=True)

    # Entry thresholds
    min_selections = Column(Integer, nullable=False)
    min_combined_odds = Column(Float, nullable=False)
    min_selection_odds = Column(Float, nullable=False)

    # Boost window
    min_boost_pct = Column(Float, nullable=False)
    max_boost_pct = Column(Float, nullable=False)
    max_boost_min_selections = Column(Integer, nullable=True)
    max_boost_min_combined_odds = Column(Float, nullable=True)

    ride_duration_seconds = Column(Integer, nullable=False, default=3600)
    is_active = Column(Boolean, nullable=False, default=True, index=True)

    created_at = Column(DateTime, default=_utcnow)
    updated_at = Column(DateTime, default=_utcnow, onupdate=_utcnow)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "min_selections": self.min_selections,
            "min_combined_odds": self.min_combined_odds,
            "min_selection_odds": self.min_selection_odds,
            "min_boost_pct": self.min_boost_pct,
            "max_boost_pct": self.max_boost_pct,
            "max_boost_min_selections": self.max_boost_min_selections,
            "max_boost_min_combined_odds": self.max_boost_min_combined_odds,
            "ride_duration_seconds": self.ride_duration_seconds,
            "is_active": self.is_active,
            "created_at": _iso(self.created_at),
            "updated_at": _iso(self.updated_at),
        }


class UserReward(Base):
    """One granted reward and, once opted in, its ride parameters and bound bet."""
    __tablename__ = "user_rewards"

    id = Column(String(36), primary_key=True, default=new_id)
    user_id = Column(String(255), nullable=False, index=True)
    profile_version_id = Column(String(36), ForeignKey("reward_profile_versions.id"), nullable=False)
    status = Column(String(20), nullable=False, default=RewardStatus.GRANTED.value, index=True)

    start_time = Column(DateTime, nullable=False)
    end_time = Column(DateTime, nullable=False)
    seed = Column(String(64), nullable=False)

    # Bound at opt-in
    bet_id = Column(String(255), nullable=True, index=True)
    ticket_snapshot = Column(Text, nullable=True)
    checkpoint_count = Column(Integer, nullable=True)
    volatility = Column(Float, nullable=True)
    crash_fraction = Column(Float, nullable=True)
    duration_seconds = Column(Float, nullable=True)
    opted_in_at = Column(DateTime, nullable=True)

    created_at = Column(DateTime, default=_utcnow)
    updated_at = Column(DateTime, default=_utcnow, onupdate=_utcnow)

    __table_args__ = (
        Index('ix_user_rewards_user_status', 'user_id', 'status'),
    )

    @property
    def ticket(self) -> Optional[Dict[str, Any]]:
        return json.loads(self.ticket_snapshot) if self.ticket_snapshot else None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "user_id": self.user_id,
            "profile_version_id": self.profile_version_id,
            "status": self.status,
            "start_time": _iso(self.start_time),
            "end_time": _iso(self.end_time),
            "bet_id": self.bet_id,
            "opted_in_at": _iso(self.opted_in_at),
            "created_at": _iso(self.created_at),
        }


class RideCheckpointRecord(Base):
    """A persisted ride checkpoint. Written once at opt-in, never updated."""
    __tablename__ = "ride_checkpoints"

    id = Column(Integer, primary_key=True, autoincrement=True)
    reward_id = Column(String(36), ForeignKey("user_rewards.id"), nullable=False, index=True)
    checkpoint_index = Column(Integer, nullable=False)
    time_fraction = Column(Float, nullable=False)
    boost_value = Column(Float, nullable=False)

    __table_args__ = (
        UniqueConstraint('reward_id', 'checkpoint_index', name='uq_ride_checkpoint_index'),
    )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "index": self.checkpoint_index,
            "time_fraction": self.time_fraction,
            "boost_value": self.boost_value,
        }


class BetBoostLock(Base):
    """Immutable boost lock, at most one per bet."""
    __tablename__ = "bet_boost_locks"

    id = Column(String(36), primary_key=True, default=new_id)
    bet_id = Column(String(255), nullable=False, unique=True)
    reward_id = Column(String(36), ForeignKey("user_rewards.id"), nullable=False, index=True)
    locked_boost_pct = Column(Float, nullable=False)
    qualifying_selections = Column(Integer, nullable=False)
    qualifying_odds = Column(Float, nullable=False)
    ticket_strength = Column(Float, nullable=False)
    snapshot = Column(Text, nullable=False)
    locked_at = Column(DateTime, default=_utcnow)

    @property
    def snapshot_data(self) -> Dict[str, Any]:
        return json.loads(self.snapshot) if self.snapshot else {}


class SettlementRecord(Base):
    __tablename__ = "settlement_records"

    id = Column(String(36), primary_key=True, default=new_id)
    bet_id = Column(String(255), nullable=False, unique=True)
    outcome = Column(String(20), nullable=False)
    winnings = Column(Float, nullable=False, default=0.0)
    bonus_amount = Column(Float, nullable=False, default=0.0)
    settled_at = Column(DateTime, default=_utcnow)


class AuditLog(Base):
    """Append-only audit trail."""
    __tablename__ = "audit_logs"

    id = Column(Integer, primary_key=True, autoincrement=True)
    entity_type = Column(String(50), nullable=False)
    entity_id = Column(String(255), nullable=False)
    action = Column(String(50), nullable=False)
    payload = Column(Text, nullable=True)
    created_at = Column(DateTime, default=_utcnow, index=True)

    __table_args__ = (
        Index('ix_audit_logs_entity', 'entity_type', 'entity_id'),
    )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "entity_type": self.entity_type,
            "entity_id": self.entity_id,
            "action": self.action,
            "payload": json.loads(self.payload) if self.payload else None,
            "created_at": _iso(self.created_at),
        }


# ============================================================================
# HELPER FUNCTIONS
# ============================================================================

def append_audit_log(db: Session, entity_type: str, entity_id: str, action: str,
                     payload: Optional[Dict[str, Any]] = None) -> AuditLog:
    entry = AuditLog(
        entity_type=entity_type,
        entity_id=entity_id,
        action=action,
        payload=json.dumps(payload, default=str) if payload is not None else None,
    )
    db.add(entry)
    db.flush()
    return entry


def get_audit_logs(db: Session, entity_type: str, entity_id: str) -> List[AuditLog]:
    return (
        db.query(AuditLog)
        .filter(AuditLog.entity_type == entity_type, AuditLog.entity_id == entity_id)
        .order_by(AuditLog.id)
        .all()
    )


def get_ride_checkpoints(db: Session, reward_id: str) -> List[RideCheckpointRecord]:
    return (
        db.query(RideCheckpointRecord)
        .filter(RideCheckpointRecord.reward_id == reward_id)
        .order_by(RideCheckpointRecord.checkpoint_index)
        .all()
    )


def transition_reward_status(db: Session, reward_id: str, from_status: RewardStatus,
                             to_status: RewardStatus, **values: Any) -> bool:
    """
    Conditional status update: only applies while the row is still in from_status.

    Returns True if this caller won the transition.
    """
    result = db.execute(
        update(UserReward)
        .where(UserReward.id == reward_id, UserReward.status == from_status.value)
        .values(status=to_status.value, updated_at=_utcnow(), **values)
        .execution_options(synchronize_session=False)
    )
    return result.rowcount == 1


def mark_expired_rewards(db: Session, now: Optional[datetime] = None) -> int:
    """ENTERED rewards whose ride window has closed become EXPIRED."""
    now = now or _utcnow()
    result = db.execute(
        update(UserReward)
        .where(UserReward.status == RewardStatus.ENTERED.value, UserReward.end_time <= now)
        .values(status=RewardStatus.EXPIRED.value, updated_at=now)
        .execution_options(synchronize_session=False)
    )
    return result.rowcount
