"""FastAPI routes for users, their notifications and their wallet."""

from fastapi import APIRouter, Depends
from protean.utils.globals import current_domain

from aftersales.api.auth import acting_user_id
from aftersales.api.schemas import (
    CountResponse,
    IdResponse,
    NotificationResponse,
    RegisterUserRequest,
    StatusResponse,
    WalletResponse,
    WalletTransactionResponse,
)
from aftersales.identity.user import RegisterUser, load_actor
from aftersales.notification.notification import Notification
from aftersales.notification.reading import MarkAllNotificationsRead, MarkNotificationRead
from aftersales.wallet.wallet import Wallet

user_router = APIRouter(prefix="/users", tags=["users"])
notification_router = APIRouter(prefix="/notifications", tags=["notifications"])
wallet_router = APIRouter(prefix="/wallet", tags=["wallet"])


@user_router.post("", status_code=201, response_model=IdResponse)
async def register_user(body: RegisterUserRequest) -> IdResponse:
    command = RegisterUser(
        user_id=body.user_id,
        name=body.name,
        email=body.email,
        role=body.role,
        is_co_admin=body.is_co_admin,
    )
    user_id = current_domain.process(command, asynchronous=False)
    return IdResponse(id=user_id)


# ---------------------------------------------------------------------------
# Notifications
# ---------------------------------------------------------------------------
@notification_router.get("", response_model=list[NotificationResponse])
async def list_notifications(
    unread_only: bool = False,
    actor_id: str = Depends(acting_user_id),
) -> list[NotificationResponse]:
    """The caller's notifications, newest first."""
    load_actor(actor_id)
    notifications = current_domain.repository_for(Notification).for_user(actor_id, unread_only=unread_only)
    return [
        NotificationResponse(
            id=str(n.id),
            type=n.type,
            title=n.title,
            message=n.message,
            read=bool(n.read),
            link=n.link,
            metadata=n.details(),
            created_at=n.created_at,
        )
        for n in notifications
    ]


@notification_router.post("/read-all", response_model=CountResponse)
async def mark_all_read(actor_id: str = Depends(acting_user_id)) -> CountResponse:
    count = current_domain.process(MarkAllNotificationsRead(reader_id=actor_id), asynchronous=False)
    return CountResponse(updated=count)


@notification_router.post("/{notification_id}/read", response_model=StatusResponse)
async def mark_read(notification_id: str, actor_id: str = Depends(acting_user_id)) -> StatusResponse:
    current_domain.process(
        MarkNotificationRead(notification_id=notification_id, reader_id=actor_id),
        asynchronous=False,
    )
    return StatusResponse(status="read")


# ---------------------------------------------------------------------------
# Wallet
# ---------------------------------------------------------------------------
@wallet_router.get("", response_model=WalletResponse)
async def get_wallet(actor_id: str = Depends(acting_user_id)) -> WalletResponse:
    load_actor(actor_id)
    wallet = current_domain.repository_for(Wallet).for_user(actor_id)
    if wallet is None:
        return WalletResponse(balance=0.0, lifetime_earned=0.0, lifetime_redeemed=0.0)
    transactions = sorted(wallet.transactions or [], key=lambda t: t.created_at, reverse=True)
    return WalletResponse(
        balance=wallet.balance,
        lifetime_earned=wallet.lifetime_earned,
        lifetime_redeemed=wallet.lifetime_redeemed,
        transactions=[
            WalletTransactionResponse(
                id=str(t.id),
                amount=t.amount,
                transaction_type=t.transaction_type,
                reference_type=t.reference_type,
                reference_id=t.reference_id,
                description=t.description,
                balance_after=t.balance_after,
                created_at=t.created_at,
            )
            for t in transactions
        ],
    )
