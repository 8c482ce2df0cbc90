"""Internal API for certificate discovery, reconcile and route issuance.

Called by cluster operators and route controllers, not by end users.
"""

import logging

from fastapi import APIRouter, Depends, HTTPException, status

from certs.api.schemas import (
    ComponentListResponse,
    ComponentResponse,
    IssueRouteCertRequest,
    IssueRouteCertResponse,
    ReconcileResponse,
)
from certs.ca.signing_engine import SigningTimeoutError, SigningToolError
from certs.repository.secret_store import SecretConflictError, SecretNotFoundError
from certs.services.cert_manager import CertDataError, CertManager
from certs.services.controller import CertController

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/internal/certs", tags=["internal"])

# Set during application startup
_cert_manager: CertManager | None = None
_controller: CertController | None = None


def set_cert_manager(manager: CertManager | None, controller: CertController | None) -> None:
    """Set the global certificate manager and controller."""
    global _cert_manager, _controller
    _cert_manager = manager
    _controller = controller


def get_cert_manager() -> CertManager:
    if _cert_manager is None:
        raise RuntimeError("CertManager not initialized")
    return _cert_manager


def get_controller() -> CertController:
    if _controller is None:
        raise RuntimeError("CertController not initialized")
    return _controller


def _to_http_error(e: Exception) -> HTTPException:
    """Map certificate manager errors to HTTP responses."""
    if isinstance(e, SecretNotFoundError):
        return HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))
    if isinstance(e, SecretConflictError):
        return HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(e))
    if isinstance(e, CertDataError):
        return HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=str(e))
    if isinstance(e, SigningTimeoutError):
        return HTTPException(status_code=status.HTTP_504_GATEWAY_TIMEOUT, detail=str(e))
    if isinstance(e, SigningToolError):
        return HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail=str(e))
    return HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=str(e))


@router.get("/{namespace}/components", response_model=ComponentListResponse)
def list_components(
    namespace: str,
    manager: CertManager = Depends(get_cert_manager),
) -> ComponentListResponse:
    """List workloads in a namespace that carry the certificate label."""
    components = manager.list_components(namespace)
    items = [
        ComponentResponse(
            name=c.name,
            namespace=c.namespace,
            secret_name=c.secret_name,
            cert_exists=manager.cert_exists(c),
        )
        for c in components
    ]
    return ComponentListResponse(items=items, total=len(items))


@router.post("/{namespace}/reconcile", response_model=ReconcileResponse)
def reconcile_namespace(
    namespace: str,
    controller: CertController = Depends(get_controller),
) -> ReconcileResponse:
    """Provision certificate secrets for every component missing one."""
    try:
        provisioned = controller.reconcile(namespace)
    except (
        SecretNotFoundError,
        SecretConflictError,
        CertDataError,
        SigningToolError,
        SigningTimeoutError,
    ) as e:
        logger.error("reconcile_failed", extra={"namespace": namespace, "error": str(e)})
        raise _to_http_error(e) from e

    return ReconcileResponse(namespace=namespace, provisioned=[c.name for c in provisioned])


@router.post("/routes", response_model=IssueRouteCertResponse)
def issue_route_cert(
    body: IssueRouteCertRequest,
    manager: CertManager = Depends(get_cert_manager),
) -> IssueRouteCertResponse:
    """Fill an existing route secret with a self-signed certificate if it has none."""
    try:
        issued = manager.issue_route_cert(body.secret_name, body.namespace, *body.hostnames)
    except (SigningToolError, SigningTimeoutError) as e:
        logger.error(
            "route_cert_failed",
            extra={"namespace": body.namespace, "secret_name": body.secret_name, "error": str(e)},
        )
        raise _to_http_error(e) from e

    return IssueRouteCertResponse(issued=issued)
