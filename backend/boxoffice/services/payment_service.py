"""
Read-only view over payment records written by the gateway adapters.
"""

from typing import Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from boxoffice.core.exceptions import PaymentAlreadyApplied, PaymentIncomplete, PaymentNotFound
from boxoffice.core.money import round_money
from boxoffice.core.owner import Owner
from boxoffice.models.order import OrderPayment
from boxoffice.models.payment import Payment


class PaymentClient:
    def __init__(self, db: AsyncSession):
        self.db = db

    async def get_completed_payment(self, payment_id: str, owner: Optional[Owner] = None) -> Payment:
        """
        The payment a checkout completes against. It must exist, belong to the
        shopper (guest payments carry no user) and be completed.
        """
        result = await self.db.execute(select(Payment).where(Payment.id == payment_id))
        payment = result.scalar_one_or_none()
        if payment is None:
            raise PaymentNotFound(payment_id=payment_id)
        if owner is not None and owner.user_id is not None and payment.user_id not in (None, owner.user_id):
            raise PaymentNotFound(payment_id=payment_id)
        if payment.status != "completed":
            raise PaymentIncomplete(payment_id=payment_id, status=payment.status)
        return payment

    async def ensure_unapplied(self, payment_id: str) -> None:
        """A payment settles at most one order, as its first payment or a top-up."""
        result = await self.db.execute(
            select(OrderPayment.order_id).where(OrderPayment.payment_id == payment_id)
        )
        order_id = result.scalar_one_or_none()
        if order_id is not None:
            raise PaymentAlreadyApplied(payment_id=payment_id, order_id=order_id)

    @staticmethod
    def paid_amount(payment: Payment):
        return round_money(payment.paid_amount)
