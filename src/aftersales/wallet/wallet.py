"""Wallet aggregate — per-user store credit balance with an append-only ledger.

The balance is a single mutable counter, so it only changes through
`Wallet.credit` / `Wallet.debit`, and those are only called from
`aftersales.wallet.ledger.adjust_wallet`, which serializes per user.
"""

from datetime import UTC, datetime
from enum import Enum

from protean.exceptions import ValidationError
from protean.fields import DateTime, Float, HasMany, Identifier, String

from aftersales.domain import aftersales
from aftersales.utils.db import locked_version
from aftersales.utils.money import round_money


class TransactionType(Enum):
    CREDIT = "CREDIT"
    DEBIT = "DEBIT"


class ReferenceType(Enum):
    RETURN_REFUND = "return_refund"
    ORDER_CANCELLATION = "order_cancellation"
    ORDER_PAYMENT = "order_payment"
    ADJUSTMENT = "adjustment"


@aftersales.entity(part_of="Wallet")
class WalletTransaction:
    amount = Float(required=True, min_value=0.0)
    transaction_type = String(max_length=10, choices=TransactionType, required=True)
    reference_type = String(max_length=50, choices=ReferenceType)
    reference_id = String(max_length=255)
    description = String(max_length=500)
    balance_after = Float()
    created_at = DateTime()


@aftersales.aggregate
class Wallet:
    user_id = Identifier(required=True)
    balance = Float(default=0.0)
    lifetime_earned = Float(default=0.0)
    lifetime_redeemed = Float(default=0.0)
    transactions = HasMany(WalletTransaction)
    created_at = DateTime()
    updated_at = DateTime()

    @classmethod
    def open(cls, user_id: str):
        now = datetime.now(UTC)
        return cls(user_id=user_id, created_at=now, updated_at=now)

    def credit(self, amount, reference_type=None, reference_id=None, description=None) -> WalletTransaction:
        amount = round_money(amount)
        if amount <= 0:
            raise ValidationError({"amount": ["Credit amount must be positive"]})
        self.balance = round_money(self.balance + amount)
        self.lifetime_earned = round_money(self.lifetime_earned + amount)
        return self._record(TransactionType.CREDIT, amount, reference_type, reference_id, description)

    def debit(self, amount, reference_type=None, reference_id=None, description=None) -> WalletTransaction:
        amount = round_money(amount)
        if amount <= 0:
            raise ValidationError({"amount": ["Debit amount must be positive"]})
        if amount > self.balance:
            raise ValidationError({"balance": ["Insufficient wallet balance"]})
        self.balance = round_money(self.balance - amount)
        self.lifetime_redeemed = round_money(self.lifetime_redeemed + amount)
        return self._record(TransactionType.DEBIT, amount, reference_type, reference_id, description)

    def _record(self, transaction_type, amount, reference_type, reference_id, description) -> WalletTransaction:
        now = datetime.now(UTC)
        transaction = WalletTransaction(
            amount=amount,
            transaction_type=transaction_type.value,
            reference_type=reference_type,
            reference_id=reference_id,
            description=description,
            balance_after=self.balance,
            created_at=now,
        )
        self.add_transactions(transaction)
        self.updated_at = now
        return transaction

    def has_credit_for(self, reference_type: str, reference_id: str) -> bool:
        return any(
            t.transaction_type == TransactionType.CREDIT.value
            and t.reference_type == reference_type
            and t.reference_id == reference_id
            for t in (self.transactions or [])
        )


@aftersales.repository(part_of=Wallet)
class WalletRepository:
    def for_user(self, user_id: str) -> Wallet | None:
        wallets = self._dao.query.filter(user_id=str(user_id)).all().items
        return wallets[0] if wallets else None

    def for_update(self, user_id: str) -> Wallet | None:
        """The user's wallet, row-locked on relational stores until the unit of work ends."""
        wallet = self.for_user(user_id)
        if wallet is not None and locked_version(self._dao, wallet.id) != wallet._version:
            # Another writer committed between the read and the lock
            wallet = self.for_user(user_id)
        return wallet
