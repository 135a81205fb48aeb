"""RetryRefund — an admin re-runs settlement after a failed attempt.

Only legal while the request sits at REFUND_INITIATED with a FAILED latest
refund; a new ReturnRefund row records the new attempt.
"""

from protean.fields import Identifier, String
from protean.utils.globals import current_domain
from protean.utils.mixins import handle

from aftersales.domain import aftersales
from aftersales.errors import InvalidTransitionError
from aftersales.identity.user import load_actor
from aftersales.refund.refund import ReturnRefund
from aftersales.refund.settlement import process_refund
from aftersales.returns.access import require_party
from aftersales.returns.repository import load_request
from aftersales.returns.return_request import Party, RefundMethod, RefundStatus, ReturnRequest, ReturnStatus


@aftersales.command(part_of="ReturnRequest")
class RetryRefund:
    return_request_id = Identifier(required=True)
    actor_id = Identifier(required=True)
    method = String(choices=RefundMethod)


@aftersales.command_handler(part_of=ReturnRequest)
class RetryRefundHandler:
    @handle(RetryRefund)
    def retry_refund(self, command):
        actor = load_actor(command.actor_id)
        request = load_request(command.return_request_id)
        require_party(actor, request, {Party.ADMIN}, "Only an admin can retry a refund")

        if ReturnStatus(request.status) != ReturnStatus.REFUND_INITIATED:
            raise InvalidTransitionError(
                request.status,
                ReturnStatus.REFUND_INITIATED.value,
                "Refunds can only be retried while the request is refund_initiated",
            )
        latest = current_domain.repository_for(ReturnRefund).latest_for(str(request.id))
        if latest is None or latest.status != RefundStatus.FAILED.value:
            raise InvalidTransitionError(
                request.status,
                ReturnStatus.REFUND_INITIATED.value,
                "Only a failed refund can be retried",
            )

        result = process_refund(
            str(request.id),
            latest.amount,
            command.method or latest.method,
        )
        return result.as_dict()
