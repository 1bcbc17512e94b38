"""
API request and response models.

Pydantic models for FastAPI endpoint validation and OpenAPI schema generation.
"""

from pydantic import BaseModel, Field

from domainstack.domain.ports import VerificationMethod


class AddDomainRequest(BaseModel):
    """Request model for claiming a domain."""

    domain: str = Field(..., min_length=1, max_length=253, description="Domain name or URL")


class DnsInstructionsModel(BaseModel):
    title: str
    description: str
    hostname: str
    record_type: str
    value: str
    suggested_ttl: int
    suggested_ttl_label: str


class HtmlFileInstructionsModel(BaseModel):
    title: str
    description: str
    hostname: str
    path: str
    full_path: str
    filename: str
    file_content: str


class MetaTagInstructionsModel(BaseModel):
    title: str
    description: str
    meta_tag: str


class InstructionsResponse(BaseModel):
    """Per-method setup instructions for one claim."""

    dns_txt: DnsInstructionsModel
    html_file: HtmlFileInstructionsModel
    meta_tag: MetaTagInstructionsModel


class AddDomainResponse(BaseModel):
    """Response model for a new or resumed claim."""

    id: str
    domain: str
    verification_token: str
    instructions: InstructionsResponse
    resumed: bool


class VerifyRequest(BaseModel):
    """Request model for an on-demand verification check."""

    method: VerificationMethod | None = Field(
        default=None, description="Check one method only; all methods when omitted"
    )


class VerifyResponse(BaseModel):
    verified: bool
    method: VerificationMethod | None = None
    error: str | None = None


class ErrorResponse(BaseModel):
    """Standard error response model."""

    detail: str
