from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from certs.api import internal as internal_api
from certs.ca.signing_engine import build_signing_engine
from certs.repository.secret_store import SqlSecretStore
from certs.services.bootstrap import CertificateAuthority
from certs.services.cert_manager import CertManager
from certs.services.controller import CertController
from fastapi import FastAPI
from opentelemetry import trace
from opentelemetry.instrumentation.fastapi import FastAPIInstrumentor
from opentelemetry.instrumentation.logging import LoggingInstrumentor
from opentelemetry.instrumentation.sqlalchemy import SQLAlchemyInstrumentor
from opentelemetry.sdk.resources import Resource
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import BatchSpanProcessor, ConsoleSpanExporter
from shared.config import settings
from shared.database import build_engine
from shared.logging import setup_logging
from shared.metrics import setup_metrics


def setup_tracing() -> None:
    resource = Resource.create({"service.name": settings.APP_NAME})
    provider = TracerProvider(resource=resource)

    processor = BatchSpanProcessor(ConsoleSpanExporter())
    provider.add_span_processor(processor)

    trace.set_tracer_provider(provider)


def build_services() -> tuple[CertManager, CertificateAuthority, CertController]:
    """Wire the store, signing engine, manager, CA and controller from settings."""
    db_engine = build_engine(settings.DATABASE_URL)
    SQLAlchemyInstrumentor().instrument(engine=db_engine)

    # The store's own namespace is the global one; CA lookups by bare name land there
    store = SqlSecretStore(db_engine, namespace=settings.GLOBAL_NAMESPACE)
    store.init_schema()

    signing_engine = build_signing_engine(settings.SIGNING_ENGINE, settings.OPENSSL_BINARY)

    manager = CertManager(
        store,
        signing_engine,
        global_namespace=settings.GLOBAL_NAMESPACE,
        cert_dir=settings.CERT_DIR,
        organization=settings.CSR_ORGANIZATION,
        validity_days=settings.CERT_VALIDITY_DAYS,
        timeout=settings.SIGNING_TIMEOUT_SECONDS,
    )
    ca = CertificateAuthority(
        store,
        signing_engine,
        global_namespace=settings.GLOBAL_NAMESPACE,
        common_name=settings.CA_COMMON_NAME,
        validity_days=settings.CERT_VALIDITY_DAYS,
        timeout=settings.SIGNING_TIMEOUT_SECONDS,
        work_dir=settings.CERT_DIR,
        key_path=settings.CA_KEY_PATH,
        cert_path=settings.CA_CERT_PATH,
    )
    controller = CertController(manager, ca, settings.CA_SECRET_NAME)
    return manager, ca, controller


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    # Startup
    logger_provider = setup_logging()
    setup_tracing()
    meter_provider = setup_metrics(settings.APP_NAME, console_export=settings.METRICS_CONSOLE_EXPORT)

    LoggingInstrumentor().instrument(set_logging_format=True)

    manager, ca, controller = build_services()

    # Make sure the CA exists before any CSR can be signed
    ca.ensure(settings.CA_SECRET_NAME)

    internal_api.set_cert_manager(manager, controller)

    yield

    # Shutdown
    meter_provider.shutdown()
    logger_provider.shutdown()


app = FastAPI(title=settings.APP_NAME, lifespan=lifespan)

FastAPIInstrumentor.instrument_app(app)

app.include_router(internal_api.router)


@app.get("/health")
async def health_check() -> dict[str, str]:
    return {"status": "ok", "service": settings.APP_NAME}
