"""Credit gate consulted before and charged during imports and exports."""
import logging
from typing import Protocol

from sqlalchemy import update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from record_transfer.errors import CreditError, InfrastructureError
from record_transfer.models.credit import TeamCredit

logger = logging.getLogger(__name__)


class CreditGate(Protocol):
    """Team-level credit balance checks and charges."""

    def check_credits(self, team_id: str, credit_type: str, units: int) -> bool: ...

    def charge_credits(self, team_id: str, credit_type: str, units: int) -> None: ...


class SqlCreditGate:
    """Credit gate over the ``team_credits`` ledger."""

    def __init__(self, session_factory: sessionmaker) -> None:
        self._session_factory = session_factory

    def check_credits(self, team_id: str, credit_type: str, units: int) -> bool:
        """Return True when the team can afford ``units`` credits."""
        if units <= 0:
            return True
        try:
            with self._session_factory() as session:
                balance = (
                    session.query(TeamCredit)
                    .filter(TeamCredit.team_id == team_id, TeamCredit.credit_type == credit_type)
                    .first()
                )
        except SQLAlchemyError as e:
            raise InfrastructureError(f"Credit ledger unavailable: {e}") from e
        if balance is None:
            logger.info(f"No {credit_type} credits provisioned for team {team_id}")
            return False
        return balance.remaining >= units

    def charge_credits(self, team_id: str, credit_type: str, units: int) -> None:
        """
        Atomically add ``units`` to the used balance.

        The increment is a conditional UPDATE so concurrent jobs can never
        push ``used`` above ``total``.

        Raises:
            CreditError: If the balance cannot cover the charge
            InfrastructureError: If the ledger is unreachable
        """
        if units <= 0:
            return
        stmt = (
            update(TeamCredit)
            .where(
                TeamCredit.team_id == team_id,
                TeamCredit.credit_type == credit_type,
                TeamCredit.used + units <= TeamCredit.total,
            )
            .values(used=TeamCredit.used + units)
            .execution_options(synchronize_session=False)
        )
        try:
            with self._session_factory() as session:
                result = session.execute(stmt)
                if result.rowcount != 1:
                    session.rollback()
                    raise CreditError(team_id, credit_type, units)
                session.commit()
        except SQLAlchemyError as e:
            raise InfrastructureError(f"Credit ledger unavailable: {e}") from e
        logger.info(f"💳 Charged {units} {credit_type} credits to team {team_id}")


def provision_credits(db: Session, team_id: str, credit_type: str, total: int) -> TeamCredit:
    """Create or reset the credit total for a team and category."""
    balance = (
        db.query(TeamCredit)
        .filter(TeamCredit.team_id == team_id, TeamCredit.credit_type == credit_type)
        .first()
    )
    if balance is None:
        balance = TeamCredit(team_id=team_id, credit_type=credit_type, total=total, used=0)
        db.add(balance)
    else:
        balance.total = total
    db.commit()
    db.refresh(balance)
    logger.info(f"Provisioned {total} {credit_type} credits for team {team_id}")
    return balance
