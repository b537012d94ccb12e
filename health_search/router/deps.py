"""
Request-scoped dependencies shared by the routers
"""
from fastapi import Request, Response
from typing import Optional

from health_search.services.pipeline import QueryPipeline
from health_search.services.throttle import Admission
from health_search.utils.validators import resolve_client_key


def get_pipeline(request: Request) -> QueryPipeline:
    return request.app.state.pipeline


def get_client_key(request: Request) -> str:
    """Quota bucket for the caller; never taken from the request body"""
    settings = request.app.state.settings
    return resolve_client_key(request, settings.jwt_secret, settings.jwt_algorithm)


def apply_rate_limit_headers(response: Response, admission: Optional[Admission]) -> None:
    if admission is None:
        return
    response.headers["X-RateLimit-Limit"] = str(admission.limit)
    response.headers["X-RateLimit-Remaining"] = str(getattr(admission, "remaining", 0))
    response.headers["X-RateLimit-Reset"] = admission.reset_at.isoformat()
