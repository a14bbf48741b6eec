"""Seed database with a demo catalog and customer estate."""
from datetime import datetime, timezone

from update_manager.database import SessionLocal
from update_manager.events import build_event_sink
from update_manager.schemas import (
    AllocationCreate,
    CompatibilityMatrixIn,
    CustomerCreate,
    DeploymentCreate,
    LicenseCreate,
    ProductCreate,
    SubscriptionCreate,
    TenantCreate,
    VersionCreate,
)
from update_manager.use_cases.catalog import create_product_use_case, create_version_use_case
from update_manager.use_cases.compatibility_matrix import set_compatibility_use_case
from update_manager.use_cases.customers import (
    create_customer_use_case,
    create_deployment_use_case,
    create_tenant_use_case,
)
from update_manager.use_cases.licensing import (
    allocate_seats_use_case,
    create_license_use_case,
    create_subscription_use_case,
)
from update_manager.use_cases.version_transitions import (
    approve_version_use_case,
    release_version_use_case,
    submit_version_use_case,
)

ACTOR = "seed"

PRODUCTS = [
    {"product_id": "acme-server", "name": "Acme Server", "type": "server", "vendor": "Acme"},
    {"product_id": "acme-client", "name": "Acme Desktop Client", "type": "client", "vendor": "Acme"},
]

VERSIONS = {
    "acme-server": [
        ("1.0.0", "feature", {}),
        ("1.0.1", "security", {}),
        ("1.5.0", "feature", {}),
        ("2.0.0", "major", {}),
    ],
    "acme-client": [
        ("4.0.0", "feature", {"min_server_version": "1.0.0"}),
        ("4.1.0", "feature", {"min_server_version": "1.0.0", "recommended_server_version": "1.5.0"}),
        ("5.0.0", "major", {"min_server_version": "2.0.0"}),
    ],
}


def _release(db, events, product_id, version_number, release_type, fields):
    version = create_version_use_case(
        product_id=product_id,
        data=VersionCreate(version_number=version_number, release_type=release_type, **fields),
        actor=ACTOR,
        db=db,
        events=events,
    )
    for step in (submit_version_use_case, approve_version_use_case, release_version_use_case):
        version = step(version_id=version.id, actor=ACTOR, db=db, events=events)
    return version


def seed():
    """Seed database with demo data."""
    db = SessionLocal()
    events = build_event_sink()
    start = datetime(2026, 1, 1, tzinfo=timezone.utc)

    try:
        for product in PRODUCTS:
            create_product_use_case(data=ProductCreate(**product), actor=ACTOR, db=db, events=events)

        released = {}
        for product_id, versions in VERSIONS.items():
            for version_number, release_type, fields in versions:
                released[(product_id, version_number)] = _release(
                    db, events, product_id, version_number, release_type, fields
                )

        set_compatibility_use_case(
            version_id=released[("acme-client", "4.1.0")].id,
            data=CompatibilityMatrixIn(
                min_server_version="1.0.0",
                max_server_version="1.9.9",
                recommended_server_version="1.5.0",
                incompatible_versions=["1.0.1"],
            ),
            actor=ACTOR,
            db=db,
            events=events,
        )

        create_customer_use_case(
            data=CustomerCreate(customer_id="CUST-DEMO", name="Demo Manufacturing", email="it@demo.example"),
            actor=ACTOR,
            db=db,
            events=events,
        )
        for tenant_id, name in (("TEN-PROD", "Production"), ("TEN-UAT", "Acceptance")):
            create_tenant_use_case(
                customer_id="CUST-DEMO",
                data=TenantCreate(tenant_id=tenant_id, name=name),
                actor=ACTOR,
                db=db,
                events=events,
            )

        deployments = [
            ("TEN-PROD", "DEP-SRV-PROD", "acme-server", "1.0.0", "production"),
            ("TEN-PROD", "DEP-CLI-PROD", "acme-client", "4.0.0", "production"),
            ("TEN-UAT", "DEP-SRV-UAT", "acme-server", "1.5.0", "uat"),
        ]
        for tenant_id, deployment_id, product_id, installed_version, deployment_type in deployments:
            create_deployment_use_case(
                tenant_id=tenant_id,
                data=DeploymentCreate(
                    deployment_id=deployment_id,
                    product_id=product_id,
                    deployment_type=deployment_type,
                    installed_version=installed_version,
                ),
                actor=ACTOR,
                db=db,
                events=events,
            )

        create_subscription_use_case(
            customer_id="CUST-DEMO",
            data=SubscriptionCreate(subscription_id="SUB-DEMO", start_date=start),
            actor=ACTOR,
            db=db,
            events=events,
        )
        create_license_use_case(
            subscription_id="SUB-DEMO",
            data=LicenseCreate(
                license_id="LIC-CLIENT",
                product_id="acme-client",
                license_type="perpetual",
                number_of_seats=25,
                start_date=start,
            ),
            actor=ACTOR,
            db=db,
            events=events,
        )
        allocate_seats_use_case(
            license_id="LIC-CLIENT",
            data=AllocationCreate(tenant_id="TEN-PROD", number_of_seats_allocated=20),
            actor=ACTOR,
            db=db,
            events=events,
        )

        print("✅ Database seeded successfully!")
        print("\nDemo estate:")
        print("  products: acme-server, acme-client")
        print("  customer: CUST-DEMO (tenants TEN-PROD, TEN-UAT)")
        print("  license:  LIC-CLIENT, 20 of 25 seats allocated")

    except Exception as e:
        db.rollback()
        print(f"❌ Error seeding database: {e}")
        raise
    finally:
        db.close()


if __name__ == "__main__":
    seed()
