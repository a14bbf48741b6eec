from __future__ import annotations

import os

os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("PENDING_UPDATES_CACHE_ENABLED", "false")

from datetime import datetime, timezone

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from update_manager import models
from update_manager.database import get_db
from update_manager.events import build_event_sink
from update_manager.main import create_app
from update_manager.schemas import (
    CustomerCreate,
    DeploymentCreate,
    LicenseCreate,
    ProductCreate,
    SubscriptionCreate,
    TenantCreate,
    VersionCreate,
)
from update_manager.use_cases.catalog import create_product_use_case, create_version_use_case
from update_manager.use_cases.customers import (
    create_customer_use_case,
    create_deployment_use_case,
    create_tenant_use_case,
)
from update_manager.use_cases.licensing import create_license_use_case, create_subscription_use_case
from update_manager.use_cases.version_transitions import (
    approve_version_use_case,
    deprecate_version_use_case,
    release_version_use_case,
    retire_version_use_case,
    submit_version_use_case,
)


@pytest.fixture()
def session_factory():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    models.Base.metadata.create_all(engine)
    yield sessionmaker(autocommit=False, autoflush=False, bind=engine)
    engine.dispose()


@pytest.fixture()
def db_session(session_factory):
    db = session_factory()
    yield db
    db.close()


@pytest.fixture()
def events():
    return build_event_sink()


@pytest.fixture()
def client(session_factory):
    app = create_app(check_database=False)

    def _get_test_db():
        db = session_factory()
        try:
            yield db
        finally:
            db.close()

    app.dependency_overrides[get_db] = _get_test_db
    with TestClient(app) as test_client:
        yield test_client


class Seed:
    """Builds catalog and customer records through the real use cases."""

    def __init__(self, db, events) -> None:
        self.db = db
        self.events = events

    def product(self, product_id: str = "acme-srv", *, type: str = "server", name: str | None = None):
        return create_product_use_case(
            data=ProductCreate(product_id=product_id, name=name or product_id, type=type),
            actor="tester",
            db=self.db,
            events=self.events,
        )

    def version(
        self,
        product_id: str,
        version_number: str,
        *,
        release_type: str = "feature",
        state: str = "released",
        eol_date: datetime | None = None,
        **fields,
    ):
        version = create_version_use_case(
            product_id=product_id,
            data=VersionCreate(
                version_number=version_number,
                release_type=release_type,
                **({"eol_date": eol_date} if eol_date is not None and state not in ("deprecated", "eol") else {}),
                **fields,
            ),
            actor="tester",
            db=self.db,
            events=self.events,
        )
        steps = {
            "draft": [],
            "pending_review": [submit_version_use_case],
            "approved": [submit_version_use_case, approve_version_use_case],
            "released": [submit_version_use_case, approve_version_use_case, release_version_use_case],
            "deprecated": [
                submit_version_use_case,
                approve_version_use_case,
                release_version_use_case,
                deprecate_version_use_case,
            ],
            "eol": [
                submit_version_use_case,
                approve_version_use_case,
                release_version_use_case,
                deprecate_version_use_case,
                retire_version_use_case,
            ],
        }[state]
        for step in steps:
            kwargs = {"version_id": version.id, "actor": "tester", "db": self.db, "events": self.events}
            if step is deprecate_version_use_case and eol_date is not None:
                kwargs["eol_date"] = eol_date
            version = step(**kwargs)
        return version

    def customer(self, customer_id: str = "CUST-1", **preferences):
        return create_customer_use_case(
            data=CustomerCreate(
                customer_id=customer_id,
                name=f"Customer {customer_id}",
                email=f"{customer_id.lower()}@example.com",
                notification_preferences=preferences,
            ),
            actor="tester",
            db=self.db,
            events=self.events,
        )

    def tenant(self, customer_id: str, tenant_id: str = "TEN-1"):
        return create_tenant_use_case(
            customer_id=customer_id,
            data=TenantCreate(tenant_id=tenant_id, name=f"Tenant {tenant_id}"),
            actor="tester",
            db=self.db,
            events=self.events,
        )

    def deployment(
        self,
        tenant_id: str,
        deployment_id: str,
        *,
        product_id: str,
        installed_version: str,
        deployment_type: str = "production",
    ):
        return create_deployment_use_case(
            tenant_id=tenant_id,
            data=DeploymentCreate(
                deployment_id=deployment_id,
                product_id=product_id,
                deployment_type=deployment_type,
                installed_version=installed_version,
            ),
            actor="tester",
            db=self.db,
            events=self.events,
        )

    def subscription(self, customer_id: str, subscription_id: str = "SUB-1"):
        return create_subscription_use_case(
            customer_id=customer_id,
            data=SubscriptionCreate(
                subscription_id=subscription_id,
                start_date=datetime(2026, 1, 1, tzinfo=timezone.utc),
            ),
            actor="tester",
            db=self.db,
            events=self.events,
        )

    def license(
        self,
        subscription_id: str,
        license_id: str = "LIC-1",
        *,
        product_id: str,
        seats: int = 10,
        license_type: str = "perpetual",
        end_date: datetime | None = None,
    ):
        return create_license_use_case(
            subscription_id=subscription_id,
            data=LicenseCreate(
                license_id=license_id,
                product_id=product_id,
                license_type=license_type,
                number_of_seats=seats,
                start_date=datetime(2026, 1, 1, tzinfo=timezone.utc),
                end_date=end_date,
            ),
            actor="tester",
            db=self.db,
            events=self.events,
        )


@pytest.fixture()
def seed(db_session, events):
    return Seed(db_session, events)
