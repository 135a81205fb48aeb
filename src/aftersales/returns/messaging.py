"""The buyer/seller/admin message thread on a return request."""

import json

from protean.fields import Identifier, Text
from protean.utils.globals import current_domain
from protean.utils.mixins import handle

from aftersales.domain import aftersales
from aftersales.identity.user import load_actor
from aftersales.returns.access import acting_role, require_can_view
from aftersales.returns.repository import load_request
from aftersales.returns.return_request import ReturnRequest


@aftersales.command(part_of="ReturnRequest")
class AddReturnMessage:
    return_request_id = Identifier(required=True)
    sender_id = Identifier(required=True)
    message = Text(required=True)
    media_urls = Text()  # JSON list of URLs


@aftersales.command(part_of="ReturnRequest")
class ReadReturnThread:
    return_request_id = Identifier(required=True)
    reader_id = Identifier(required=True)


@aftersales.command_handler(part_of=ReturnRequest)
class ReturnMessageHandler:
    @handle(AddReturnMessage)
    def add_message(self, command):
        actor = load_actor(command.sender_id)
        request = load_request(command.return_request_id)
        parties = require_can_view(actor, request)

        entry = request.post_message(
            str(actor.id),
            acting_role(parties),
            command.message,
            json.loads(command.media_urls) if command.media_urls else [],
        )
        current_domain.repository_for(ReturnRequest).save(request)
        return str(entry.id)

    @handle(ReadReturnThread)
    def read_thread(self, command):
        """Mark the thread read for the reader. Returns how many messages were newly read."""
        actor = load_actor(command.reader_id)
        request = load_request(command.return_request_id)
        require_can_view(actor, request)

        changed = request.mark_thread_read(str(actor.id))
        if changed:
            current_domain.repository_for(ReturnRequest).save(request)
        return changed
