"""Return lifecycle events.

Every status change raises `ReturnStatusChanged`; handlers look at
`new_status` to decide which side effects apply.
"""

from protean.fields import DateTime, Identifier, String, Text

from aftersales.domain import aftersales


@aftersales.event(part_of="ReturnRequest")
class ReturnRequested:
    """A buyer opened a return, refund or replacement request."""

    __version__ = 1

    return_request_id = Identifier(required=True)
    order_id = Identifier(required=True)
    order_item_id = Identifier(required=True)
    buyer_id = Identifier(required=True)
    seller_id = Identifier(required=True)
    request_type = String(required=True)
    created_at = DateTime(required=True)


@aftersales.event(part_of="ReturnRequest")
class ReturnStatusChanged:
    """A validated transition was applied and recorded in the status history."""

    __version__ = 1

    return_request_id = Identifier(required=True)
    order_id = Identifier(required=True)
    order_item_id = Identifier(required=True)
    buyer_id = Identifier(required=True)
    seller_id = Identifier(required=True)
    request_type = String(required=True)
    previous_status = String(required=True)
    new_status = String(required=True)
    changed_by = Identifier(required=True)
    notes = Text()
    changed_at = DateTime(required=True)


@aftersales.event(part_of="ReturnRequest")
class ReturnMessagePosted:
    """A party added a message to the request's thread."""

    __version__ = 1

    return_request_id = Identifier(required=True)
    message_id = Identifier(required=True)
    sender_id = Identifier(required=True)
    sender_role = String(required=True)
    buyer_id = Identifier(required=True)
    seller_id = Identifier(required=True)
    posted_at = DateTime(required=True)
