from backend.src.certs.api.internal import issue_route_cert, list_components, reconcile_namespace
from backend.src.certs.api.schemas import (
    ComponentListResponse,
    ComponentResponse,
    IssueRouteCertRequest,
)
from backend.src.certs.repository.models import SecretRecord, WorkloadRecord
from backend.src.certs.repository.secret_store import SqlSecretStore
from backend.src.main import health_check
from backend.src.shared.config import Settings

# Pydantic Settings
Settings.model_config
Settings.APP_ENV

# Pydantic schemas (serialized by FastAPI)
ComponentResponse.cert_exists
ComponentListResponse.total
IssueRouteCertRequest.hostnames

# SQLAlchemy models (columns used by Alembic migrations)
SecretRecord.created_at
SecretRecord.updated_at
WorkloadRecord.created_at

# Test and operator helpers
SqlSecretStore.put_workload

# FastAPI routes
health_check
list_components
reconcile_namespace
issue_route_cert
