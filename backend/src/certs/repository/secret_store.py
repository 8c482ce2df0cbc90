"""Key material store: namespaced secrets of binary fields, plus labelled workloads.

`SecretStore` is the contract the certificate manager depends on. `SqlSecretStore`
implements it on SQLAlchemy, storing field values base64-encoded the way the
cluster secret API does.

A store is scoped to a default namespace; calls that pass `namespace=None` use it.
"""

import base64
import logging
from typing import Protocol

from sqlalchemy import Engine, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, sessionmaker

from certs.domain.models import SECRET_TYPE_OPAQUE, LabeledResource, SecretData
from certs.repository.models import SecretRecord, WorkloadRecord
from shared.database import Base, build_session_factory, session_scope

logger = logging.getLogger(__name__)


class SecretNotFoundError(Exception):
    """Raised when a referenced secret does not exist."""

    pass


class SecretConflictError(Exception):
    """Raised when a create-only write finds an existing secret."""

    pass


class SecretStore(Protocol):
    """Operations the certificate manager needs from the key material store."""

    namespace: str

    def get(self, namespace: str | None, name: str) -> SecretData | None: ...

    def get_type(self, namespace: str | None, name: str) -> str | None: ...

    def create_or_replace(
        self,
        namespace: str | None,
        name: str,
        data: SecretData,
        secret_type: str = SECRET_TYPE_OPAQUE,
    ) -> None: ...

    def create(
        self,
        namespace: str | None,
        name: str,
        data: SecretData,
        secret_type: str = SECRET_TYPE_OPAQUE,
    ) -> None: ...

    def exists(self, namespace: str | None, name: str) -> bool: ...

    def list_by_label(self, namespace: str, label_key: str) -> list[LabeledResource]: ...


def encode_data(data: SecretData) -> dict[str, str]:
    return {field: base64.b64encode(value).decode("ascii") for field, value in data.items()}


def decode_data(data: dict[str, str]) -> SecretData:
    return {field: base64.b64decode(value) for field, value in data.items()}


class SqlSecretStore:
    """SecretStore on a relational database."""

    def __init__(self, engine: Engine, namespace: str) -> None:
        self.engine = engine
        self.namespace = namespace
        self._sessions: sessionmaker[Session] = build_session_factory(engine)

    def init_schema(self) -> None:
        """Create tables if missing. Deployed databases use the alembic migrations."""
        Base.metadata.create_all(self.engine)

    def _ns(self, namespace: str | None) -> str:
        return namespace if namespace is not None else self.namespace

    def _find(self, session: Session, namespace: str, name: str) -> SecretRecord | None:
        result = session.execute(
            select(SecretRecord)
            .where(SecretRecord.namespace == namespace)
            .where(SecretRecord.name == name)
        )
        return result.scalar_one_or_none()

    def get(self, namespace: str | None, name: str) -> SecretData | None:
        """Get the decoded fields of a secret, or None if it does not exist."""
        with self._sessions() as session:
            record = self._find(session, self._ns(namespace), name)
            if record is None:
                return None
            return decode_data(record.data)

    def get_type(self, namespace: str | None, name: str) -> str | None:
        with self._sessions() as session:
            record = self._find(session, self._ns(namespace), name)
            return record.type if record is not None else None

    def exists(self, namespace: str | None, name: str) -> bool:
        with self._sessions() as session:
            return self._find(session, self._ns(namespace), name) is not None

    def create_or_replace(
        self,
        namespace: str | None,
        name: str,
        data: SecretData,
        secret_type: str = SECRET_TYPE_OPAQUE,
    ) -> None:
        """Write the secret, replacing the data of an existing one."""
        ns = self._ns(namespace)
        with session_scope(self._sessions) as session:
            record = self._find(session, ns, name)
            if record is None:
                session.add(
                    SecretRecord(namespace=ns, name=name, type=secret_type, data=encode_data(data))
                )
                action = "created"
            else:
                record.type = secret_type
                record.data = encode_data(data)
                action = "replaced"

        logger.info(
            "secret_written",
            extra={"namespace": ns, "secret_name": name, "action": action, "fields": sorted(data)},
        )

    def create(
        self,
        namespace: str | None,
        name: str,
        data: SecretData,
        secret_type: str = SECRET_TYPE_OPAQUE,
    ) -> None:
        """Create a new secret.

        Raises:
            SecretConflictError: If a secret with this name already exists.
        """
        ns = self._ns(namespace)
        try:
            with session_scope(self._sessions) as session:
                if self._find(session, ns, name) is not None:
                    raise SecretConflictError(f"Secret {ns}/{name} already exists")
                session.add(
                    SecretRecord(namespace=ns, name=name, type=secret_type, data=encode_data(data))
                )
        except IntegrityError as e:
            # Lost a race with a concurrent create
            raise SecretConflictError(f"Secret {ns}/{name} already exists") from e

        logger.info(
            "secret_written",
            extra={"namespace": ns, "secret_name": name, "action": "created", "fields": sorted(data)},
        )

    def list_by_label(self, namespace: str, label_key: str) -> list[LabeledResource]:
        """List workloads in namespace carrying label_key, in insertion order."""
        with self._sessions() as session:
            result = session.execute(
                select(WorkloadRecord)
                .where(WorkloadRecord.namespace == namespace)
                .order_by(WorkloadRecord.id)
            )
            return [
                LabeledResource(
                    name=workload.name,
                    namespace=workload.namespace,
                    label_value=str(workload.labels[label_key]),
                )
                for workload in result.scalars().all()
                if label_key in (workload.labels or {})
            ]

    def put_workload(self, namespace: str, name: str, labels: dict[str, str]) -> None:
        """Register a workload, or replace the labels of an existing one."""
        with session_scope(self._sessions) as session:
            result = session.execute(
                select(WorkloadRecord)
                .where(WorkloadRecord.namespace == namespace)
                .where(WorkloadRecord.name == name)
            )
            workload = result.scalar_one_or_none()
            if workload is None:
                session.add(WorkloadRecord(namespace=namespace, name=name, labels=dict(labels)))
            else:
                workload.labels = dict(labels)
