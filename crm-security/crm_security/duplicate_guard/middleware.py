"""
Duplicate Request Middleware
============================
Applies the duplicate request guard to state-changing requests.

Rejecting is the caller's decision: with ``reject=False`` duplicates are
only logged (and audited) and the request proceeds.
"""

from typing import Iterable, Optional

import structlog
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import JSONResponse

from ..audit import AuditEventType, HashChainAuditTrail, RequestSnapshot
from ..request_utils import attach_background, client_ip, user_agent
from .fingerprint import request_signature
from .guard import DuplicateRequestGuard

logger = structlog.get_logger(__name__)

DUPLICATE_MESSAGE = "Duplicate request detected. Please wait before retrying."
DEFAULT_METHODS = ("POST", "PUT", "PATCH", "DELETE")


class DuplicateRequestMiddleware(BaseHTTPMiddleware):
    """
    Reject (or flag) identical requests repeated within the guard window.

    Usage:
        app.add_middleware(DuplicateRequestMiddleware, guard=DuplicateRequestGuard())
    """

    def __init__(
        self,
        app,
        guard: Optional[DuplicateRequestGuard] = None,
        methods: Iterable[str] = DEFAULT_METHODS,
        paths: Optional[Iterable[str]] = None,
        reject: bool = True,
        trail: Optional[HashChainAuditTrail] = None,
        trust_forwarded: bool = False,
    ):
        super().__init__(app)
        self.guard = guard if guard is not None else DuplicateRequestGuard()
        self.methods = {m.upper() for m in methods}
        self.paths = tuple(paths) if paths is not None else None
        self.reject = reject
        self.trail = trail
        self.trust_forwarded = trust_forwarded

    def _applies(self, request: Request) -> bool:
        if request.method.upper() not in self.methods:
            return False
        if self.paths is None:
            return True
        return any(request.url.path.startswith(prefix) for prefix in self.paths)

    async def dispatch(self, request: Request, call_next):
        if not self.guard.enabled or not self._applies(request):
            return await call_next(request)

        ip = client_ip(request, self.trust_forwarded)
        agent = user_agent(request)
        body = await request.body()
        signature = request_signature(ip, agent, body)

        if not self.guard.check_and_record(signature):
            return await call_next(request)

        logger.warning(
            "duplicate_request",
            ip=ip,
            path=request.url.path,
            method=request.method,
            rejected=self.reject,
        )
        if self.reject:
            response = JSONResponse(status_code=429, content={"error": DUPLICATE_MESSAGE})
        else:
            response = await call_next(request)

        # Audited after the response is sent
        if self.trail is not None:
            attach_background(
                response,
                self.trail.record,
                AuditEventType.DUPLICATE_REQUEST,
                {"signature": signature[:16], "rejected": self.reject},
                actor=getattr(request.state, "user", None),
                request=RequestSnapshot(
                    method=request.method,
                    path=request.url.path,
                    ip=ip,
                    user_agent=agent or None,
                ),
            )
        return response
