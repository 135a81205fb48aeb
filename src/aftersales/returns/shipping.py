"""Shipment and receipt steps of a return.

- AddReturnTracking: buyer ships the item back (APPROVED → ITEM_IN_TRANSIT)
- MarkReturnReceived: seller inspects it (ITEM_IN_TRANSIT → ITEM_RECEIVED)
- AddReplacementTracking: seller ships a replacement (ITEM_RECEIVED → REPLACEMENT_IN_TRANSIT)
- CompleteReturn: seller closes the request (REFUND_PROCESSED | REPLACEMENT_IN_TRANSIT → COMPLETED)
"""

from protean.fields import Identifier, String, Text
from protean.utils.globals import current_domain
from protean.utils.mixins import handle

from aftersales.domain import aftersales
from aftersales.identity.user import load_actor
from aftersales.returns.access import require_can_move_to
from aftersales.returns.repository import load_request
from aftersales.returns.return_request import ReturnRequest, ReturnStatus


@aftersales.command(part_of="ReturnRequest")
class AddReturnTracking:
    return_request_id = Identifier(required=True)
    actor_id = Identifier(required=True)
    tracking_number = String(max_length=100)
    courier_name = String(max_length=100)
    tracking_url = String(max_length=500)


@aftersales.command(part_of="ReturnRequest")
class AddReplacementTracking:
    return_request_id = Identifier(required=True)
    actor_id = Identifier(required=True)
    tracking_number = String(max_length=100)
    courier_name = String(max_length=100)
    tracking_url = String(max_length=500)


@aftersales.command(part_of="ReturnRequest")
class MarkReturnReceived:
    return_request_id = Identifier(required=True)
    actor_id = Identifier(required=True)
    condition = String(max_length=50)
    notes = Text()


@aftersales.command(part_of="ReturnRequest")
class CompleteReturn:
    return_request_id = Identifier(required=True)
    actor_id = Identifier(required=True)
    notes = Text()


@aftersales.command_handler(part_of=ReturnRequest)
class ReturnShippingHandler:
    @handle(AddReturnTracking)
    def add_return_tracking(self, command):
        actor = load_actor(command.actor_id)
        request = load_request(command.return_request_id)
        require_can_move_to(actor, request, ReturnStatus.ITEM_IN_TRANSIT)

        request.add_return_tracking(
            str(actor.id),
            tracking_number=command.tracking_number,
            courier_name=command.courier_name,
            tracking_url=command.tracking_url,
        )
        current_domain.repository_for(ReturnRequest).save(request)
        return str(request.id)

    @handle(AddReplacementTracking)
    def add_replacement_tracking(self, command):
        actor = load_actor(command.actor_id)
        request = load_request(command.return_request_id)
        require_can_move_to(actor, request, ReturnStatus.REPLACEMENT_IN_TRANSIT)

        request.add_replacement_tracking(
            str(actor.id),
            tracking_number=command.tracking_number,
            courier_name=command.courier_name,
            tracking_url=command.tracking_url,
        )
        current_domain.repository_for(ReturnRequest).save(request)
        return str(request.id)

    @handle(MarkReturnReceived)
    def mark_received(self, command):
        actor = load_actor(command.actor_id)
        request = load_request(command.return_request_id)
        require_can_move_to(actor, request, ReturnStatus.ITEM_RECEIVED)

        request.mark_received(str(actor.id), command.condition, command.notes)
        current_domain.repository_for(ReturnRequest).save(request)
        return str(request.id)

    @handle(CompleteReturn)
    def complete(self, command):
        actor = load_actor(command.actor_id)
        request = load_request(command.return_request_id)
        require_can_move_to(actor, request, ReturnStatus.COMPLETED)

        request.complete(str(actor.id), command.notes)
        current_domain.repository_for(ReturnRequest).save(request)
        return str(request.id)
