from datetime import datetime
from decimal import Decimal

from sqlalchemy import (
    JSON,
    BigInteger,
    DateTime,
    ForeignKey,
    Index,
    Numeric,
    String,
    UniqueConstraint,
    func,
    text,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from src.models.base import Base

STATUS_ACTIVE = "ACTIVE"
STATUS_ENDED = "ENDED"

# competition_id used for deposits seen while no competition is running
TRACKING_ONLY = "tracking_only"


class Competition(Base):
    """Time-boxed staking competition. At most one row is ACTIVE."""

    __tablename__ = "competitions"

    id: Mapped[int] = mapped_column(primary_key=True)
    competition_id: Mapped[str] = mapped_column(String(64), unique=True)
    status: Mapped[str] = mapped_column(String(16), default=STATUS_ACTIVE)
    start_time: Mapped[datetime] = mapped_column(DateTime)
    end_time: Mapped[datetime] = mapped_column(DateTime)
    winners: Mapped[list | None] = mapped_column(JSON)
    created_at: Mapped[datetime] = mapped_column(DateTime, server_default=func.now())

    __table_args__ = (
        Index(
            "uq_competitions_single_active",
            "status",
            unique=True,
            postgresql_where=text("status = 'ACTIVE'"),
        ),
    )


class Deposit(Base):
    """Valued LP deposit. Append-only; survives leaderboard resets."""

    __tablename__ = "deposits"

    id: Mapped[int] = mapped_column(primary_key=True)
    wallet: Mapped[str] = mapped_column(String(80))
    pool_name: Mapped[str] = mapped_column(String(64))
    pool_type: Mapped[str] = mapped_column(String(512))
    lp_amount: Mapped[Decimal] = mapped_column(Numeric(40, 0))
    usd_value: Mapped[Decimal] = mapped_column(Numeric)
    timestamp: Mapped[int] = mapped_column(BigInteger)  # event time, ms
    tx_digest: Mapped[str] = mapped_column(String(64), unique=True)
    competition_id: Mapped[str] = mapped_column(String(64))
    created_at: Mapped[datetime] = mapped_column(DateTime, server_default=func.now())

    __table_args__ = (
        Index("idx_deposits_wallet_comp", "wallet", "competition_id"),
        Index("idx_deposits_comp_time", "competition_id", "timestamp"),
    )


class LeaderboardEntry(Base):
    """Running USD total for one wallet in one competition."""

    __tablename__ = "leaderboard"

    id: Mapped[int] = mapped_column(primary_key=True)
    wallet: Mapped[str] = mapped_column(String(80))
    competition_id: Mapped[str] = mapped_column(String(64))
    total_usd: Mapped[Decimal] = mapped_column(Numeric, default=0)
    last_updated: Mapped[datetime] = mapped_column(DateTime, server_default=func.now())

    deposits: Mapped[list["LeaderboardDeposit"]] = relationship(
        back_populates="entry",
        order_by="LeaderboardDeposit.id",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )

    __table_args__ = (
        UniqueConstraint("wallet", "competition_id", name="uq_leaderboard_wallet_comp"),
        Index("idx_leaderboard_comp_total", "competition_id", "total_usd"),
    )


class LeaderboardDeposit(Base):
    """Contribution of a single deposit to a leaderboard entry, in arrival order."""

    __tablename__ = "leaderboard_deposits"

    id: Mapped[int] = mapped_column(primary_key=True)
    entry_id: Mapped[int] = mapped_column(
        ForeignKey("leaderboard.id", ondelete="CASCADE")
    )
    pool_name: Mapped[str] = mapped_column(String(64))
    usd_value: Mapped[Decimal] = mapped_column(Numeric)
    tx_digest: Mapped[str] = mapped_column(String(64))
    created_at: Mapped[datetime] = mapped_column(DateTime, server_default=func.now())

    entry: Mapped[LeaderboardEntry] = relationship(back_populates="deposits")

    __table_args__ = (Index("idx_leaderboard_deposits_entry", "entry_id"),)
