"""Serialized wallet adjustments.

Every balance change goes through `adjust_wallet`, which holds the owner's
lock for the whole read-modify-write so a refund credit racing a purchase
debit cannot lose either update. On relational stores the wallet row is
also locked until the surrounding unit of work commits, and the version
check on save refuses a write based on a stale copy.
"""

import structlog
from protean.utils.globals import current_domain

from aftersales.utils.locks import StripedLock
from aftersales.wallet.wallet import TransactionType, Wallet

logger = structlog.get_logger(__name__)

_wallet_locks = StripedLock()


def adjust_wallet(
    user_id: str,
    amount: float,
    transaction_type: str,
    reference_type: str | None = None,
    reference_id: str | None = None,
    description: str | None = None,
):
    """Apply one credit or debit to the user's wallet, opening it on first use.

    Returns the recorded WalletTransaction. Raises ValidationError for a
    non-positive amount or a debit beyond the balance.
    """
    repo = current_domain.repository_for(Wallet)

    with _wallet_locks.hold(user_id):
        wallet = repo.for_update(user_id) or Wallet.open(user_id)
        if TransactionType(transaction_type) == TransactionType.CREDIT:
            transaction = wallet.credit(amount, reference_type, reference_id, description)
        else:
            transaction = wallet.debit(amount, reference_type, reference_id, description)
        repo.add(wallet)

    logger.info(
        "Wallet adjusted",
        user_id=str(user_id),
        transaction_type=transaction_type,
        amount=transaction.amount,
        balance=wallet.balance,
        reference_type=reference_type,
        reference_id=reference_id,
    )
    return transaction
