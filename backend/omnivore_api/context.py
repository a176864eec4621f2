"""
Omnivore API - Request Context
==============================

What:  Everything a service needs about the current request, passed explicitly:
       the caller's claims, a transaction factory, and a request-scoped logger.
Who:   Built per request by get_request_context(); consumed by UploadService
       and PageService. Tests build one directly with a fake transaction.
"""

import logging
from contextlib import AbstractAsyncContextManager
from dataclasses import dataclass, field
from typing import Any, Callable, MutableMapping, Optional, Tuple

from fastapi import Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession

from omnivore_api.auth import Claims, get_optional_claims
from omnivore_api.database import transaction
from omnivore_api.middleware.request_id import request_id_var

TransactionFactory = Callable[[], AbstractAsyncContextManager[AsyncSession]]

_service_logger = logging.getLogger("omnivore.service")


class ContextLogAdapter(logging.LoggerAdapter):
    """Prefixes every message with the request id and user id."""

    def process(self, msg: Any, kwargs: MutableMapping[str, Any]) -> Tuple[Any, MutableMapping[str, Any]]:
        rid = self.extra.get("request_id") or "-"
        uid = self.extra.get("uid") or "anonymous"
        return f"[{rid}] [{uid}] {msg}", kwargs


@dataclass
class RequestContext:
    claims: Optional[Claims]
    transaction: TransactionFactory = transaction
    request_id: str = ""
    log: logging.LoggerAdapter = field(init=False)

    def __post_init__(self) -> None:
        self.log = ContextLogAdapter(
            _service_logger,
            {"request_id": self.request_id, "uid": self.uid},
        )

    @property
    def uid(self) -> Optional[str]:
        return self.claims.uid if self.claims else None


async def get_request_context(
    request: Request,
    claims: Optional[Claims] = Depends(get_optional_claims),
) -> RequestContext:
    rid = getattr(request.state, "request_id", "") or request_id_var.get()
    return RequestContext(claims=claims, transaction=transaction, request_id=rid)
