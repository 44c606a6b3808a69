"""
Organizer earnings crediting.

commission = gross * commission_percentage / 100, net = gross - commission.
The organizer row is locked (SELECT ... FOR UPDATE) and both balances are
moved by relative increments, so concurrent checkouts for the same
organizer never lose an update. Over an organizer's lifetime the sum of net
credits equals pending_balance + total_payouts.
"""

from dataclasses import dataclass
from decimal import Decimal
from typing import Optional

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from boxoffice.core.logging import get_logger
from boxoffice.core.money import D, round_money
from boxoffice.models.user import User

logger = get_logger(__name__)


@dataclass
class EarningsCredit:
    organizer_id: str
    amount: Decimal
    commission: Decimal
    net: Decimal
    source: str

    def audit_entry(self) -> dict:
        return {
            "user_id": self.organizer_id,
            "action": "ADD_EARNINGS",
            "resource": "user",
            "resource_id": self.organizer_id,
            "new_values": {
                "amount": str(self.amount),
                "commission": str(self.commission),
                "net": str(self.net),
                "source": self.source,
            },
        }


class EarningsService:
    def __init__(self, db: AsyncSession):
        self.db = db

    async def add_earnings(self, organizer_id: str, gross, source: str) -> Optional[EarningsCredit]:
        gross = round_money(gross)
        result = await self.db.execute(select(User).where(User.id == organizer_id).with_for_update())
        organizer = result.scalar_one_or_none()
        if organizer is None:
            logger.warning("earnings_organizer_missing", organizer_id=organizer_id, source=source)
            return None

        commission = round_money(gross * D(organizer.commission_percentage) / 100)
        net = gross - commission

        await self.db.execute(
            update(User)
            .where(User.id == organizer_id)
            .values(
                total_earnings=User.total_earnings + gross,
                pending_balance=User.pending_balance + net,
            )
            .execution_options(synchronize_session=False)
        )
        logger.info(
            "earnings_credited",
            organizer_id=organizer_id,
            amount=str(gross),
            commission=str(commission),
            net=str(net),
            source=source,
        )
        return EarningsCredit(organizer_id, gross, commission, net, source)
