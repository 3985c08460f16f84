import logging
from typing import Optional

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse, RedirectResponse
from pydantic import BaseModel
from sqlalchemy.ext.asyncio import AsyncSession

from shortlink.database.database import get_async_session
from shortlink.rate_limit import RateLimiter, RateLimitResult
from shortlink.redirect.entries import AccessContext
from shortlink.redirect.outcomes import (RedirectOutcome, Redirect, NotFound, Inactive, Expired,
                                         NeedsCredential, InvalidCredential, ResolutionFailure)
from shortlink.redirect.repository import SQLAlchemyRedirectRepository
from shortlink.redirect.resolver import RedirectResolver
from shortlink.utils import utc_now

logger = logging.getLogger(__name__)
router = APIRouter(tags=["Redirect"])

STATUS_CODES = {
    Redirect: 200,
    NotFound: 404,
    Inactive: 423,
    Expired: 410,
    NeedsCredential: 401,
    InvalidCredential: 403,
}

DETAILS = {
    Redirect: "Redirect",
    NotFound: "Shortlink not found",
    Inactive: "Shortlink is inactive",
    Expired: "Shortlink has expired",
    NeedsCredential: "Password required",
    InvalidCredential: "Invalid password",
}


class RedirectRequest(BaseModel):
    password: Optional[str] = None


def get_clock():
    return utc_now


def get_resolver(
        request: Request,
        session: AsyncSession = Depends(get_async_session),
        clock=Depends(get_clock)
) -> RedirectResolver:
    return RedirectResolver(
        repository=SQLAlchemyRedirectRepository(session),
        recorder=request.app.state.recorder,
        clock=clock,
    )


def get_rate_limiter(request: Request) -> RateLimiter:
    return request.app.state.rate_limiter


def client_ip(request: Request) -> str:
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        return forwarded.split(",")[0].strip()
    real_ip = request.headers.get("x-real-ip")
    if real_ip:
        return real_ip.strip()
    return request.client.host if request.client else "unknown"


def access_context(request: Request) -> AccessContext:
    return AccessContext(
        ip_address=client_ip(request),
        user_agent=request.headers.get("user-agent"),
        referer=request.headers.get("referer") or request.headers.get("referrer"),
    )


def outcome_response(outcome: RedirectOutcome) -> JSONResponse:
    content = {"status": outcome.status, "detail": DETAILS[type(outcome)]}
    if isinstance(outcome, Redirect):
        content["target_url"] = outcome.target_url
    if isinstance(outcome, (NeedsCredential, InvalidCredential)):
        content["scope"] = outcome.scope.value
    return JSONResponse(status_code=STATUS_CODES[type(outcome)], content=content)


def failure_response(error: ResolutionFailure) -> JSONResponse:
    logger.exception(f"Redirect: resolution of {error.code} failed")
    return JSONResponse(
        status_code=503,
        content={"status": "resolution_failure", "detail": "Temporarily unable to resolve shortlink"},
    )


async def _is_limited(limiter: RateLimiter, key: str) -> bool:
    try:
        return await limiter.is_limited(key)
    except Exception:
        logger.exception(f"Rate limit: check failed for {key}")
        return False


async def _register_failure(limiter: RateLimiter, key: str) -> Optional[RateLimitResult]:
    try:
        return await limiter.hit(key)
    except Exception:
        logger.exception(f"Rate limit: could not register failure for {key}")
        return None


def rate_limited_response() -> JSONResponse:
    return JSONResponse(
        status_code=429,
        content={"status": "rate_limited", "detail": "Too many attempts, try again later"},
    )


@router.post("/redirect/{code}")
async def resolve_redirect(
        code: str,
        request: Request,
        data: Optional[RedirectRequest] = None,
        resolver: RedirectResolver = Depends(get_resolver),
        limiter: RateLimiter = Depends(get_rate_limiter)
):
    context = access_context(request)
    key = f"redirect:{code}:{context.ip_address}"

    if await _is_limited(limiter, key):
        logger.warning(f"Redirect: too many invalid passwords for {code} from {context.ip_address}")
        return rate_limited_response()

    try:
        outcome = await resolver.resolve(code, data.password if data else None, context=context)
    except ResolutionFailure as e:
        return failure_response(e)

    if isinstance(outcome, InvalidCredential):
        result = await _register_failure(limiter, key)
        # concurrent attempts can pass the check above and overshoot the limit
        if result is not None and not result.allowed:
            logger.warning(f"Redirect: invalid password for {code} from {context.ip_address} over the limit")
            return rate_limited_response()
    return outcome_response(outcome)


@router.get("/{code}", response_model=None)
async def browser_redirect(
        code: str,
        request: Request,
        resolver: RedirectResolver = Depends(get_resolver)
):
    logger.info(f"Redirecting to link with code: {code}")
    try:
        outcome = await resolver.resolve(code, None, context=access_context(request))
    except ResolutionFailure as e:
        return failure_response(e)

    if isinstance(outcome, Redirect):
        return RedirectResponse(url=outcome.target_url, status_code=307)
    return outcome_response(outcome)
