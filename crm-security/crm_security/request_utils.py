"""
Request Utilities
=================
Helpers for extracting client identity from Starlette requests and for
deferring work until a response has been sent.
"""

from typing import Any, Callable, Optional

from starlette.background import BackgroundTasks
from starlette.requests import Request
from starlette.responses import Response


def client_ip(request: Request, trust_forwarded: bool = False) -> Optional[str]:
    """
    Get the client IP address.

    Args:
        request: Incoming request
        trust_forwarded: Use the first X-Forwarded-For hop (only behind a
            trusted proxy)
    """
    if trust_forwarded:
        forwarded = request.headers.get("X-Forwarded-For")
        if forwarded:
            return forwarded.split(",")[0].strip()
        real_ip = request.headers.get("X-Real-IP")
        if real_ip:
            return real_ip.strip()

    return request.client.host if request.client else None


def user_agent(request: Request) -> str:
    return request.headers.get("user-agent", "")


def attach_background(response: Response, func: Callable[..., Any], *args: Any, **kwargs: Any) -> Response:
    """
    Run ``func`` after ``response`` has been sent.

    A background task already on the response runs first.
    """
    tasks = BackgroundTasks()
    if response.background is not None:
        tasks.add_task(response.background)
    tasks.add_task(func, *args, **kwargs)
    response.background = tasks
    return response
