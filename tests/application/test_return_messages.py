"""Application tests for the message thread on a return request."""

import pytest
from protean import current_domain
from protean.exceptions import ValidationError

from aftersales.errors import AccessDeniedError
from aftersales.notification.notification import Notification
from aftersales.returns.messaging import AddReturnMessage, ReadReturnThread
from aftersales.returns.return_request import ReturnRequest

pytestmark = pytest.mark.usefixtures("default_policy")


def _post(request_id, sender, message="Can you send a photo of the label?"):
    return current_domain.process(
        AddReturnMessage(return_request_id=request_id, sender_id=str(sender.id), message=message),
        asynchronous=False,
    )


def _message_notices(user):
    return [
        n for n in current_domain.repository_for(Notification).for_user(str(user.id)) if n.type == "return_message"
    ]


@pytest.fixture()
def request_id(marketplace, buyer, seller, reason_id):
    order = marketplace.order(buyer, seller)
    return marketplace.return_request(buyer, order, reason_id)


class TestPosting:
    def test_seller_message_reaches_buyer_and_admins(self, request_id, admin, buyer, seller):
        message_id = _post(request_id, seller)

        request = current_domain.repository_for(ReturnRequest).get(request_id)
        assert [str(m.id) for m in request.messages] == [message_id]
        assert request.messages[0].sender_role == "seller"
        assert len(_message_notices(buyer)) == 1
        assert _message_notices(seller) == []
        assert len(_message_notices(admin)) == 1

    def test_admin_message_does_not_notify_admins(self, request_id, admin, buyer, seller):
        _post(request_id, admin, "We are looking into this.")

        request = current_domain.repository_for(ReturnRequest).get(request_id)
        assert request.messages[0].sender_role == "admin"
        assert len(_message_notices(buyer)) == 1
        assert len(_message_notices(seller)) == 1
        assert _message_notices(admin) == []

    def test_empty_message_is_rejected(self, request_id, buyer):
        with pytest.raises(ValidationError):
            _post(request_id, buyer, "   ")

    def test_outsider_cannot_post(self, request_id, marketplace):
        outsider = marketplace.user("buyer")
        with pytest.raises(AccessDeniedError):
            _post(request_id, outsider)


class TestReading:
    def test_reading_marks_others_messages(self, request_id, buyer, seller):
        _post(request_id, seller)
        _post(request_id, buyer, "Sure, attached.")

        changed = current_domain.process(
            ReadReturnThread(return_request_id=request_id, reader_id=str(buyer.id)),
            asynchronous=False,
        )

        assert changed == 1
        request = current_domain.repository_for(ReturnRequest).get(request_id)
        assert all(m.is_read_by(buyer.id) for m in request.messages)
        assert not all(m.is_read_by(seller.id) for m in request.messages)

    def test_rereading_changes_nothing(self, request_id, buyer, seller):
        _post(request_id, seller)
        read = ReadReturnThread(return_request_id=request_id, reader_id=str(buyer.id))
        current_domain.process(read, asynchronous=False)
        assert current_domain.process(read, asynchronous=False) == 0
