"""Pydantic schemas for the internal certificate API."""

from pydantic import BaseModel, Field


class ComponentResponse(BaseModel):
    """A workload that needs a certificate."""

    name: str
    namespace: str
    secret_name: str
    cert_exists: bool


class ComponentListResponse(BaseModel):
    items: list[ComponentResponse]
    total: int


class ReconcileResponse(BaseModel):
    """Components provisioned by a reconcile pass."""

    namespace: str
    provisioned: list[str]


class IssueRouteCertRequest(BaseModel):
    """Request body for filling a route secret with a self-signed certificate."""

    secret_name: str = Field(..., min_length=1, max_length=253)
    namespace: str = Field(..., min_length=1, max_length=253)
    hostnames: list[str] = Field(default_factory=list)


class IssueRouteCertResponse(BaseModel):
    issued: bool

