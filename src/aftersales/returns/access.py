"""Who the acting user is to a return request.

Relationships are derived fresh from the stored user and request on every
call; nothing the caller sends is trusted for authorization.
"""

from aftersales.errors import AccessDeniedError
from aftersales.identity.user import User
from aftersales.returns.return_request import TRANSITION_PARTIES, Party, ReturnRequest, ReturnStatus


def parties_of(actor: User, request: ReturnRequest) -> set[Party]:
    parties = set()
    if str(request.buyer_id) == str(actor.id):
        parties.add(Party.BUYER)
    if str(request.seller_id) == str(actor.id):
        parties.add(Party.SELLER)
    if actor.is_admin():
        parties.add(Party.ADMIN)
    return parties


def require_party(actor: User, request: ReturnRequest, allowed, message: str | None = None) -> set[Party]:
    """Return the actor's parties, or raise AccessDeniedError if none of them is allowed."""
    parties = parties_of(actor, request)
    if not parties & set(allowed):
        raise AccessDeniedError(message or "You are not allowed to perform this action on this return request")
    return parties


def require_can_view(actor: User, request: ReturnRequest) -> set[Party]:
    return require_party(
        actor,
        request,
        {Party.BUYER, Party.SELLER, Party.ADMIN},
        "You do not have permission to view this return request",
    )


def require_can_move_to(actor: User, request: ReturnRequest, target: ReturnStatus) -> set[Party]:
    allowed = TRANSITION_PARTIES.get(target, {Party.ADMIN})
    return require_party(
        actor,
        request,
        allowed,
        f"You are not allowed to move this return request to {target.value}",
    )


def acting_role(parties: set[Party]) -> Party:
    """The role an actor speaks as. Admin wins, then seller, then buyer."""
    for party in (Party.ADMIN, Party.SELLER, Party.BUYER):
        if party in parties:
            return party
    raise AccessDeniedError()
