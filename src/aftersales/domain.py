"""Aftersales bounded context — return, replacement and refund lifecycle.

Owns return requests from the buyer's first ask through settlement and
completion, the wallet ledger refunds are credited to, and the in-app
notifications every party receives along the way. Orders and users are
kept here as the narrow collaborators the lifecycle reads and writes.
"""

import structlog
from protean.domain import Domain

aftersales = Domain(name="aftersales")

logger = structlog.get_logger(__name__)
