"""Repository for ReturnRequest with version-checked saves."""

import structlog
from protean import UnitOfWork
from protean.exceptions import ExpectedVersionError, ObjectNotFoundError, ValidationError
from protean.utils.globals import current_domain, current_uow
from sqlalchemy.exc import IntegrityError

from aftersales.domain import aftersales
from aftersales.errors import (
    ConcurrentModificationError,
    IneligibleError,
    NotFoundError,
)
from aftersales.returns.return_request import ReturnRequest
from aftersales.utils.db import flush, locked_version

logger = structlog.get_logger(__name__)


@aftersales.repository(part_of=ReturnRequest)
class ReturnRequestRepository:
    def save(self, request: ReturnRequest) -> ReturnRequest:
        """Persist `request` unless somebody else saved it since it was loaded.

        The stored `_version` is read (row-locked on relational stores) and
        must equal the loaded one. A mismatch means a concurrent writer won,
        and this write is refused rather than overwriting theirs. Storage
        rejects a second active request for the same order item through the
        unique `active_item_key` index.
        """
        if not (current_uow and current_uow.in_progress):
            # The version check and the write must share one transaction
            with UnitOfWork():
                return self.save(request)

        if request.state_.is_persisted:
            stored = locked_version(self._dao, request.id)
            if stored != request._version:
                self._refuse(request, stored)

        try:
            self.add(request)
            flush(self._dao)
        except ExpectedVersionError:
            self._refuse(request, None)
        except ValidationError as exc:
            if "active_item_key" not in exc.messages:
                raise
            raise IneligibleError(
                "A return request already exists for this item"
            ) from None
        except IntegrityError:
            logger.warning(
                "Duplicate active return request refused by storage",
                order_item_id=request.order_item_id,
            )
            raise IneligibleError(
                "A return request already exists for this item"
            ) from None
        return request

    def _refuse(self, request: ReturnRequest, stored_version) -> None:
        logger.warning(
            "Concurrent modification of return request refused",
            return_request_id=str(request.id),
            stored_version=stored_version,
            loaded_version=request._version,
        )
        raise ConcurrentModificationError(str(request.id))

    def active_for_item(self, order_item_id: str) -> list[ReturnRequest]:
        """Requests for the item that still block a new one (not cancelled or rejected)."""
        return (
            self._dao.query.filter(active_item_key=str(order_item_id)).all().items
        )

    def for_order(self, order_id: str) -> list[ReturnRequest]:
        return self._dao.query.filter(order_id=str(order_id)).all().items

    def for_buyer(self, buyer_id: str) -> list[ReturnRequest]:
        return self._dao.query.filter(buyer_id=str(buyer_id)).all().items

    def for_seller(self, seller_id: str) -> list[ReturnRequest]:
        return self._dao.query.filter(seller_id=str(seller_id)).all().items

    def everything(self) -> list[ReturnRequest]:
        return self._dao.query.all().items


def load_request(return_request_id: str, expected_version=None) -> ReturnRequest:
    """Fetch a request, optionally insisting it is still at `expected_version`.

    Clients that read a request and act on it later send back the version
    they saw; a newer stored version means their view is stale.
    """
    try:
        request = current_domain.repository_for(ReturnRequest).get(
            str(return_request_id)
        )
    except ObjectNotFoundError:
        raise NotFoundError("Return request not found") from None

    if expected_version is not None and request._version != expected_version:
        logger.info(
            "Stale return request version",
            return_request_id=str(return_request_id),
            stored_version=request._version,
            expected_version=expected_version,
        )
        raise ConcurrentModificationError(str(return_request_id))
    return request
