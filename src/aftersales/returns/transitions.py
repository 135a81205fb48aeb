"""UpdateReturnStatus and CancelReturnRequest — validated moves through the state machine.

Authorization is re-derived from the stored request on every call: sellers
and admins drive the seller-owned transitions, buyers and admins cancel.
Side effects (settlement, notifications, order item outcome) hang off the
ReturnStatusChanged event rather than running here.
"""

from protean.exceptions import ValidationError
from protean.fields import Identifier, Integer, String, Text
from protean.utils.globals import current_domain
from protean.utils.mixins import handle

from aftersales.domain import aftersales
from aftersales.errors import InvalidTransitionError
from aftersales.identity.user import load_actor
from aftersales.refund.refund import ReturnRefund
from aftersales.returns.access import acting_role, require_can_move_to, require_party
from aftersales.returns.repository import load_request
from aftersales.returns.return_request import Party, RefundStatus, ReturnRequest, ReturnStatus


@aftersales.command(part_of="ReturnRequest")
class UpdateReturnStatus:
    return_request_id = Identifier(required=True)
    actor_id = Identifier(required=True)
    status = String(required=True, max_length=50)
    notes = Text()
    expected_version = Integer()


@aftersales.command(part_of="ReturnRequest")
class CancelReturnRequest:
    return_request_id = Identifier(required=True)
    actor_id = Identifier(required=True)
    reason = Text(required=True)
    expected_version = Integer()


def parse_status(value: str) -> ReturnStatus:
    try:
        return ReturnStatus(value)
    except ValueError:
        raise ValidationError({"status": [f"Unknown return status: {value}"]}) from None


def assert_refund_settled(request: ReturnRequest) -> None:
    """REFUND_PROCESSED needs a refund that did not fail; a failed one stays at REFUND_INITIATED."""
    latest = current_domain.repository_for(ReturnRefund).latest_for(str(request.id))
    if latest is None or latest.status == RefundStatus.FAILED.value:
        raise InvalidTransitionError(
            request.status,
            ReturnStatus.REFUND_PROCESSED.value,
            "Refund has not been settled; retry the refund before marking it processed",
        )


@aftersales.command_handler(part_of=ReturnRequest)
class ReturnTransitionHandler:
    @handle(UpdateReturnStatus)
    def update_status(self, command):
        actor = load_actor(command.actor_id)
        request = load_request(command.return_request_id, command.expected_version)
        target = parse_status(command.status)

        parties = require_can_move_to(actor, request, target)
        if target == ReturnStatus.CANCELLED and Party.ADMIN not in parties:
            # A buyer cancelling through the status endpoint gets the cancel rules
            request.cancel(str(actor.id), Party.BUYER, command.notes)
        else:
            request.assert_can_transition(target)
            if target == ReturnStatus.REFUND_PROCESSED:
                assert_refund_settled(request)
            request.update_status(target, str(actor.id), command.notes)

        current_domain.repository_for(ReturnRequest).save(request)
        return str(request.id)

    @handle(CancelReturnRequest)
    def cancel(self, command):
        actor = load_actor(command.actor_id)
        request = load_request(command.return_request_id, command.expected_version)

        parties = require_party(
            actor,
            request,
            {Party.BUYER, Party.ADMIN},
            "Only the buyer or an admin can cancel a return request",
        )
        request.cancel(str(actor.id), acting_role(parties & {Party.BUYER, Party.ADMIN}), command.reason)

        current_domain.repository_for(ReturnRequest).save(request)
        return str(request.id)
