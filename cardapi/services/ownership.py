"""
Ownership scoping for cards and transactions.

Every card or transaction operation calls assert_owned() before it reads
out or mutates the resource. The requester id always comes from a
verified access token, never from the request body.
"""

import uuid
from typing import Protocol

from cardapi.exceptions import ForbiddenError


class Owned(Protocol):
    owner_id: uuid.UUID


def assert_owned(resource: Owned, requester_id: uuid.UUID) -> None:
    """
    Raise ForbiddenError unless `resource` belongs to `requester_id`.

    Raises:
        ForbiddenError: If the owner differs from the requester.
    """
    if resource.owner_id != requester_id:
        raise ForbiddenError()
