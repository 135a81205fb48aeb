"""Settlement outcome events."""

from protean.fields import DateTime, Float, Identifier, String, Text

from aftersales.domain import aftersales


@aftersales.event(part_of="ReturnRefund")
class RefundCompleted:
    """Money reached the buyer (wallet credit or gateway refund processed)."""

    __version__ = 1

    refund_id = Identifier(required=True)
    return_request_id = Identifier(required=True)
    amount = Float(required=True)
    method = String(required=True)
    external_refund_id = String()
    completed_at = DateTime(required=True)


@aftersales.event(part_of="ReturnRefund")
class RefundFailed:
    """A settlement attempt failed and needs a retry or manual handling."""

    __version__ = 1

    refund_id = Identifier(required=True)
    return_request_id = Identifier(required=True)
    amount = Float(required=True)
    method = String(required=True)
    reason = Text(required=True)
    failed_at = DateTime(required=True)
