"""Team credit ledger model."""
from sqlalchemy import Column, DateTime, Integer, String, UniqueConstraint
from sqlalchemy.sql import func

from record_transfer.database import Base


class TeamCredit(Base):
    """Credit balance of one team for one credit category."""

    __tablename__ = "team_credits"

    id = Column(Integer, primary_key=True, index=True)
    team_id = Column(String(128), nullable=False)
    credit_type = Column(String(50), nullable=False)  # e.g. prospecting, leads
    total = Column(Integer, default=0, nullable=False)
    used = Column(Integer, default=0, nullable=False)
    updated_at = Column(
        DateTime, server_default=func.now(), onupdate=func.now(), nullable=False
    )

    __table_args__ = (
        UniqueConstraint("team_id", "credit_type", name="uq_team_credits_team_type"),
    )

    @property
    def remaining(self) -> int:
        return self.total - self.used
