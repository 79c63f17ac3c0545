"""
Audit Trail Middleware
======================
Starlette/FastAPI middleware that records every audited request in the
hash-chained audit trail.

The entry is written in a background task once the response has been
sent, so audit I/O never delays or fails a request.
"""

import json
import time
import uuid
from typing import Any, Optional

import structlog
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request

from ..request_utils import attach_background, client_ip, user_agent
from .classifier import SecurityEventClassifier
from .models import RequestSnapshot, ResponseSnapshot
from .trail import HashChainAuditTrail

logger = structlog.get_logger(__name__)

CORRELATION_HEADER = "X-Correlation-ID"
BODY_METHODS = {"POST", "PUT", "PATCH", "DELETE"}


class AuditTrailMiddleware(BaseHTTPMiddleware):
    """
    Audit every non-excluded request.

    Usage:
        app.add_middleware(AuditTrailMiddleware, trail=trail)

    The acting user is read from ``request.state.user`` (set by the app's
    authentication layer) as a mapping or an object with id/email/role.
    """

    def __init__(
        self,
        app,
        trail: HashChainAuditTrail,
        classifier: Optional[SecurityEventClassifier] = None,
        audit_anonymous: bool = True,
        max_body_bytes: int = 64 * 1024,
        trust_forwarded: bool = False,
    ):
        super().__init__(app)
        self.trail = trail
        self.classifier = classifier or trail.classifier
        self.audit_anonymous = audit_anonymous
        self.max_body_bytes = max_body_bytes
        self.trust_forwarded = trust_forwarded

    async def dispatch(self, request: Request, call_next):
        if not self.classifier.should_audit(request.url.path):
            return await call_next(request)

        correlation_id = str(uuid.uuid4())
        request.state.correlation_id = correlation_id
        body = await self._capture_body(request)
        start_time = time.perf_counter()

        try:
            response = await call_next(request)
        except Exception:
            # No response to hang the write on; the error propagates unblocked
            self.trail.run_in_background(self._record, request, body, 500, start_time, correlation_id)
            raise

        response.headers[CORRELATION_HEADER] = correlation_id
        return attach_background(
            response, self._record, request, body, response.status_code, start_time, correlation_id
        )

    async def _capture_body(self, request: Request) -> Any:
        if request.method not in BODY_METHODS:
            return None
        raw = await request.body()
        if not raw:
            return None
        if len(raw) > self.max_body_bytes:
            return {"_truncated": True, "_size": len(raw)}
        content_type = request.headers.get("content-type", "")
        if "json" not in content_type:
            return {"_contentType": content_type.split(";")[0], "_size": len(raw)}
        try:
            return json.loads(raw)
        except ValueError:
            return {"_unparsable": True, "_size": len(raw)}

    async def _record(
        self,
        request: Request,
        body: Any,
        status_code: int,
        start_time: float,
        correlation_id: str,
    ) -> None:
        actor = getattr(request.state, "user", None)
        if actor is None and not self.audit_anonymous:
            return

        duration_ms = (time.perf_counter() - start_time) * 1000
        event_type, severity = self.classifier.classify(request.method, request.url.path, status_code)
        # Query values are redacted separately; keep them out of the url
        url = str(request.url.replace(query=""))

        try:
            await self.trail.record(
                event_type,
                body,
                actor=actor,
                severity=severity,
                request=RequestSnapshot(
                    method=request.method,
                    path=request.url.path,
                    url=url,
                    ip=client_ip(request, self.trust_forwarded),
                    user_agent=user_agent(request) or None,
                    query=dict(request.query_params) or None,
                ),
                response=ResponseSnapshot(status_code=status_code, duration_ms=duration_ms),
                correlation_id=correlation_id,
            )
        except Exception as e:
            logger.error(
                "audit_record_failed",
                correlation_id=correlation_id,
                path=request.url.path,
                error=str(e),
            )
