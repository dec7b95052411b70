"""
Wallet Service - Loyalty points ledger.

Every balance change goes through credit()/debit(), which update the
balance with a single conditional UPDATE and write exactly one
WalletTransaction with the same signed amount. A user's balance is
therefore always the sum of their wallet history.
"""

import time
from datetime import datetime
from decimal import Decimal
from typing import Any

from loguru import logger
from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from cakeheaven.core.exceptions import NotFoundError, PermissionDeniedError, ValidationError
from cakeheaven.models.shop import Order
from cakeheaven.models.user import User, WalletTransaction
from cakeheaven.modules.shop.pricing import ZERO, to_money


def wallet_entry_to_dict(entry: WalletTransaction) -> dict[str, Any]:
    return {
        "id": entry.id,
        "amount": float(entry.amount),
        "description": entry.description,
        "date": entry.created_at.isoformat() if entry.created_at else None,
        "order_id": entry.order_id,
    }


def wallet_payment_result(email: str) -> dict[str, str]:
    """paymentResult for an order settled entirely with points."""
    return {
        "id": f"wallet-{int(time.time() * 1000)}",
        "status": "COMPLETED",
        "update_time": datetime.utcnow().isoformat(),
        "email_address": email,
    }


class WalletService:
    """
    Service owning every wallet balance mutation.

    Usage:
        wallet = WalletService(db_session)
        await wallet.credit(user, Decimal("100"), "Signup bonus")
    """

    def __init__(self, db: AsyncSession) -> None:
        """Initialize wallet service with database session."""
        self.db = db

    # ==================== Ledger ====================

    async def credit(
        self,
        user: User,
        amount: Decimal,
        description: str,
        order_id: int | None = None,
    ) -> Decimal:
        """Add points and record the entry. Returns the new balance."""
        amount = to_money(amount)
        if amount <= ZERO:
            return user.wallet_balance

        await self.db.execute(
            update(User)
            .where(User.id == user.id)
            .values(wallet_balance=User.wallet_balance + amount)
            .execution_options(synchronize_session=False)
        )
        return await self._record(user, amount, description, order_id)

    async def debit(
        self,
        user: User,
        amount: Decimal,
        description: str,
        order_id: int | None = None,
    ) -> Decimal:
        """Remove points if the balance allows it. Returns the new balance."""
        amount = to_money(amount)
        if amount <= ZERO:
            raise ValidationError("Amount must be greater than 0")

        result = await self.db.execute(
            update(User)
            .where(User.id == user.id, User.wallet_balance >= amount)
            .values(wallet_balance=User.wallet_balance - amount)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            raise ValidationError("Insufficient wallet balance")

        return await self._record(user, -amount, description, order_id)

    async def _record(
        self,
        user: User,
        amount: Decimal,
        description: str,
        order_id: int | None,
    ) -> Decimal:
        self.db.add(
            WalletTransaction(
                user_id=user.id,
                amount=amount,
                description=description,
                order_id=order_id,
            )
        )
        await self.db.flush()
        await self.db.refresh(user, ["wallet_balance"])
        logger.debug(f"Wallet {user.id}: {amount:+} ({description}) -> {user.wallet_balance}")
        return user.wallet_balance

    async def get_history(self, user: User) -> list[WalletTransaction]:
        query = (
            select(WalletTransaction)
            .where(WalletTransaction.user_id == user.id)
            .order_by(WalletTransaction.id.desc())
        )
        result = await self.db.execute(query)
        return list(result.scalars().all())

    async def get_wallet(self, user: User) -> dict[str, Any]:
        """Balance and history, newest first."""
        history = await self.get_history(user)
        return {
            "balance": float(user.wallet_balance),
            "history": [wallet_entry_to_dict(e) for e in history],
        }

    # ==================== Orders ====================

    async def _owned_order(self, user: User, order_id: int) -> Order:
        order = await self.db.get(Order, order_id)
        if not order:
            raise NotFoundError("Order not found")
        if order.user_id != user.id:
            raise PermissionDeniedError("Not authorized to access this order")
        return order

    async def settle_order(self, order: Order, user: User) -> None:
        """
        Mark an order paid once wallet points cover its total.

        Points beyond the total are returned to the wallet.
        """
        if order.is_paid or order.is_cancelled or order.wallet_amount_used <= ZERO:
            return
        if order.wallet_amount_used < order.total_price:
            return

        excess = order.wallet_amount_used - order.total_price
        if excess > ZERO:
            await self.credit(
                user,
                excess,
                f"Refund for partial wallet payment on order #{order.order_number}",
                order.id,
            )
        order.wallet_amount_used = order.total_price
        order.is_paid = True
        order.paid_at = datetime.utcnow()
        order.payment_result = wallet_payment_result(user.email)
        order.add_status(order.status, "Payment completed with wallet points")
        logger.info(f"Order {order.order_number} paid with wallet points")

    async def use_wallet_points(self, user: User, order_id: int, amount: Decimal) -> dict[str, Any]:
        """
        Pay part or all of an unpaid order with wallet points.

        Returns:
            New balance, points used on the order, amount still due and
            whether the order is now paid
        """
        amount = to_money(amount)
        if amount <= ZERO:
            raise ValidationError("Please provide order ID and amount to use")

        order = await self._owned_order(user, order_id)

        if user.wallet_balance < amount:
            raise ValidationError("Insufficient wallet balance")
        if order.is_paid:
            raise ValidationError("Order is already paid")
        if order.is_cancelled:
            raise ValidationError("Cannot use wallet points on a cancelled order")

        await self.debit(user, amount, f"Used for order #{order.order_number}", order.id)
        order.wallet_amount_used = to_money(order.wallet_amount_used + amount)
        await self.settle_order(order, user)
        await self.db.flush()

        return {
            "success": True,
            "balance": float(user.wallet_balance),
            "wallet_amount_used": float(order.wallet_amount_used),
            "total_remaining": float(order.amount_due),
            "is_paid": order.is_paid,
            "message": f"{float(amount):g} points used for your order",
        }

    async def add_reward_points(self, user: User, order_id: int, amount: Decimal) -> dict[str, Any]:
        """Credit reward points for one of the user's orders, at most once."""
        amount = to_money(amount)
        if amount <= ZERO:
            raise ValidationError("Please provide order ID and reward amount")

        order = await self._owned_order(user, order_id)
        if order.reward_points > ZERO:
            raise ValidationError("Reward points already credited for this order")

        balance = await self.credit(
            user, amount, f"Reward points for order #{order.order_number}", order.id
        )
        order.reward_points = amount
        await self.db.flush()

        return {
            "success": True,
            "balance": float(balance),
            "message": f"{float(amount):g} points added to your wallet",
        }
