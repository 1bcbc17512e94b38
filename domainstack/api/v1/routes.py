"""
API v1 routes.

Defines REST endpoints for the domain tracking contract.
"""

from dataclasses import asdict

from fastapi import APIRouter, Depends, HTTPException, status

from domainstack.api.dependencies import get_tracking_service, get_user_id
from domainstack.api.models import (
    AddDomainRequest,
    AddDomainResponse,
    ErrorResponse,
    InstructionsResponse,
    VerifyRequest,
    VerifyResponse,
)
from domainstack.domain.exceptions import (
    DomainAlreadyTracked,
    DomainLimitReached,
    InvalidDomain,
    NotDomainOwner,
    TrackedDomainNotFound,
)
from domainstack.domain.tracking import TrackingService

router = APIRouter(tags=["v1"])

_OWNERSHIP_ERRORS = {
    404: {"model": ErrorResponse, "description": "Tracked domain not found"},
    403: {"model": ErrorResponse, "description": "Domain belongs to another user"},
    401: {"model": ErrorResponse, "description": "Missing caller identity"},
}


@router.post(
    "/domains",
    response_model=AddDomainResponse,
    status_code=status.HTTP_201_CREATED,
    responses={
        400: {"model": ErrorResponse, "description": "Invalid domain"},
        401: {"model": ErrorResponse, "description": "Missing caller identity"},
        403: {"model": ErrorResponse, "description": "Tracked domain limit reached"},
        409: {"model": ErrorResponse, "description": "Domain already tracked and verified"},
        422: {"description": "Validation error"},
    },
    summary="Track a domain",
    description="Claim a domain for monitoring. An unverified claim for the same "
    "domain is resumed with its original token.",
)
def add_domain(
    request_data: AddDomainRequest,
    user_id: str = Depends(get_user_id),
    service: TrackingService = Depends(get_tracking_service),
) -> AddDomainResponse:
    """
    Claim a domain and return its verification instructions.

    - **domain**: Bare domain or URL; reduced to the registrable domain
    """
    try:
        result = service.add_domain(user_id, request_data.domain)
    except InvalidDomain as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from None
    except DomainAlreadyTracked as exc:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(exc)) from None
    except DomainLimitReached as exc:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=str(exc)) from None
    return AddDomainResponse(
        id=result.id,
        domain=result.domain,
        verification_token=result.verification_token,
        instructions=InstructionsResponse(**asdict(result.instructions)),
        resumed=result.resumed,
    )


@router.post(
    "/domains/{tracked_domain_id}/verify",
    response_model=VerifyResponse,
    responses=_OWNERSHIP_ERRORS,
    summary="Verify domain ownership now",
    description="Run one method, or every method in priority order, and persist a success. "
    "A failed check is a 200 response with verified=false.",
)
def verify_domain(
    tracked_domain_id: str,
    request_data: VerifyRequest | None = None,
    user_id: str = Depends(get_user_id),
    service: TrackingService = Depends(get_tracking_service),
) -> VerifyResponse:
    method = request_data.method if request_data is not None else None
    try:
        result = service.verify_domain(user_id, tracked_domain_id, method)
    except TrackedDomainNotFound as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc)) from None
    except NotDomainOwner as exc:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=str(exc)) from None
    return VerifyResponse(verified=result.verified, method=result.method, error=result.error)


@router.get(
    "/domains/{tracked_domain_id}/instructions",
    response_model=InstructionsResponse,
    responses=_OWNERSHIP_ERRORS,
    summary="Get verification instructions",
)
def get_instructions(
    tracked_domain_id: str,
    user_id: str = Depends(get_user_id),
    service: TrackingService = Depends(get_tracking_service),
) -> InstructionsResponse:
    """Re-render the per-method instructions for a claim the caller owns."""
    try:
        instructions = service.get_verification_instructions(user_id, tracked_domain_id)
    except TrackedDomainNotFound as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc)) from None
    except NotDomainOwner as exc:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=str(exc)) from None
    return InstructionsResponse(**asdict(instructions))
