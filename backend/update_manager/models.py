"""SQLAlchemy models for catalog, lifecycle, customers and licensing."""
from sqlalchemy import (
    JSON, Boolean, Column, String, Integer, DateTime, Text, Uuid,
    ForeignKey, CheckConstraint, Index, UniqueConstraint, or_, and_,
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.sql import func
import uuid

from .database import Base
from .enums import (
    AllocationStatus, CustomerStatus, DeploymentStatus, DeploymentType, LicenseStatus,
    LicenseType, NotificationType, PathType, Priority, ProductType, ReleaseType,
    RolloutStatus, SubscriptionStatus, TenantStatus, ValidationStatus, VersionState, values,
)

JSONType = JSON().with_variant(JSONB(), "postgresql")


class Product(Base):
    """Product in the catalog (server or client)."""
    __tablename__ = "products"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    product_id = Column(String(100), unique=True, nullable=False, index=True)
    name = Column(String(255), nullable=False)
    type = Column(String(20), nullable=False)
    description = Column(Text, nullable=True)
    vendor = Column(String(255), nullable=True)
    is_active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    __table_args__ = (
        CheckConstraint(type.in_(values(ProductType)), name="chk_product_type"),
    )


class Version(Base):
    """A product version moving through the release lifecycle."""
    __tablename__ = "versions"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    product_id = Column(String(100), ForeignKey("products.product_id"), nullable=False)
    version_number = Column(String(100), nullable=False)
    release_type = Column(String(20), nullable=False)
    state = Column(String(20), nullable=False, default=VersionState.DRAFT.value)
    release_date = Column(DateTime(timezone=True), nullable=True)
    released_at = Column(DateTime(timezone=True), nullable=True)
    eol_date = Column(DateTime(timezone=True), nullable=True)
    min_server_version = Column(String(100), nullable=True)
    max_server_version = Column(String(100), nullable=True)
    recommended_server_version = Column(String(100), nullable=True)
    release_notes = Column(JSONType, nullable=True)
    # PackageInfo records owned by the version: id, type, name, size_bytes, sha256, ...
    packages = Column(JSONType, nullable=False, default=list)
    created_by = Column(String(255), nullable=True)
    approved_by = Column(String(255), nullable=True)
    approved_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    __table_args__ = (
        UniqueConstraint("product_id", "version_number", name="uq_version_product_number"),
        CheckConstraint(release_type.in_(values(ReleaseType)), name="chk_version_release_type"),
        CheckConstraint(state.in_(values(VersionState)), name="chk_version_state"),
        Index("idx_versions_product_state", "product_id", "state"),
    )


class CompatibilityMatrix(Base):
    """Server-version compatibility declared by a client version."""
    __tablename__ = "compatibility_matrices"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    product_id = Column(String(100), ForeignKey("products.product_id"), nullable=False)
    version_number = Column(String(100), nullable=False)
    min_server_version = Column(String(100), nullable=True)
    max_server_version = Column(String(100), nullable=True)
    recommended_server_version = Column(String(100), nullable=True)
    incompatible_versions = Column(JSONType, nullable=False, default=list)
    validation_status = Column(String(20), nullable=False, default=ValidationStatus.PENDING.value)
    validation_errors = Column(JSONType, nullable=False, default=list)
    validated_at = Column(DateTime(timezone=True), nullable=True)
    validated_by = Column(String(255), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    __table_args__ = (
        UniqueConstraint("product_id", "version_number", name="uq_compat_product_version"),
        CheckConstraint(
            validation_status.in_(values(ValidationStatus)),
            name="chk_compat_validation_status",
        ),
    )


class UpgradePath(Base):
    """Operator-curated upgrade path between two versions of a product."""
    __tablename__ = "upgrade_paths"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    product_id = Column(String(100), ForeignKey("products.product_id"), nullable=False)
    from_version = Column(String(100), nullable=False)
    to_version = Column(String(100), nullable=False)
    path_type = Column(String(20), nullable=False, default=PathType.DIRECT.value)
    intermediate_versions = Column(JSONType, nullable=False, default=list)
    is_blocked = Column(Boolean, nullable=False, default=False)
    block_reason = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    __table_args__ = (
        UniqueConstraint("product_id", "from_version", "to_version", name="uq_upgrade_path"),
        CheckConstraint(path_type.in_(values(PathType)), name="chk_upgrade_path_type"),
    )


class UpdateDetection(Base):
    """Latest known available version per (endpoint, product)."""
    __tablename__ = "update_detections"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    endpoint_id = Column(String(255), nullable=False)
    product_id = Column(String(100), ForeignKey("products.product_id"), nullable=False)
    current_version = Column(String(100), nullable=False)
    available_version = Column(String(100), nullable=False)
    detected_at = Column(DateTime(timezone=True), nullable=False)
    last_checked_at = Column(DateTime(timezone=True), nullable=False)

    __table_args__ = (
        UniqueConstraint("endpoint_id", "product_id", name="uq_detection_endpoint_product"),
    )


class UpdateRollout(Base):
    """Record of an update being applied to an endpoint or deployment."""
    __tablename__ = "update_rollouts"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    endpoint_id = Column(String(255), nullable=False, index=True)
    product_id = Column(String(100), ForeignKey("products.product_id"), nullable=False)
    deployment_id = Column(String(100), ForeignKey("deployments.deployment_id"), nullable=True, index=True)
    from_version = Column(String(100), nullable=False)
    to_version = Column(String(100), nullable=False)
    status = Column(String(20), nullable=False, default=RolloutStatus.PENDING.value)
    progress = Column(Integer, nullable=False, default=0)
    initiated_by = Column(String(255), nullable=True)
    initiated_at = Column(DateTime(timezone=True), nullable=False)
    started_at = Column(DateTime(timezone=True), nullable=True)
    completed_at = Column(DateTime(timezone=True), nullable=True)
    failed_at = Column(DateTime(timezone=True), nullable=True)
    error_message = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    __table_args__ = (
        CheckConstraint(status.in_(values(RolloutStatus)), name="chk_rollout_status"),
        CheckConstraint(and_(progress >= 0, progress <= 100), name="chk_rollout_progress_range"),
    )


class Customer(Base):
    __tablename__ = "customers"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    customer_id = Column(String(100), unique=True, nullable=False, index=True)
    name = Column(String(255), nullable=False)
    organization_name = Column(String(255), nullable=True)
    email = Column(String(255), nullable=False)
    phone = Column(String(50), nullable=True)
    address = Column(Text, nullable=True)
    account_status = Column(String(20), nullable=False, default=CustomerStatus.ACTIVE.value)
    # email_enabled, in_app_enabled, uat_notifications, production_notifications
    notification_preferences = Column(JSONType, nullable=False, default=dict)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    __table_args__ = (
        CheckConstraint(account_status.in_(values(CustomerStatus)), name="chk_customer_status"),
    )


class CustomerTenant(Base):
    __tablename__ = "customer_tenants"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    tenant_id = Column(String(100), unique=True, nullable=False, index=True)
    customer_id = Column(String(100), ForeignKey("customers.customer_id"), nullable=False, index=True)
    name = Column(String(255), nullable=False)
    description = Column(Text, nullable=True)
    status = Column(String(20), nullable=False, default=TenantStatus.ACTIVE.value)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    __table_args__ = (
        CheckConstraint(status.in_(values(TenantStatus)), name="chk_tenant_status"),
    )


class Deployment(Base):
    """Installed product of a tenant in one environment."""
    __tablename__ = "deployments"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    deployment_id = Column(String(100), unique=True, nullable=False, index=True)
    tenant_id = Column(String(100), ForeignKey("customer_tenants.tenant_id"), nullable=False, index=True)
    product_id = Column(String(100), ForeignKey("products.product_id"), nullable=False)
    deployment_type = Column(String(20), nullable=False)
    installed_version = Column(String(100), nullable=False)
    number_of_users = Column(Integer, nullable=True)
    server_hostname = Column(String(255), nullable=True)
    environment_details = Column(Text, nullable=True)
    status = Column(String(20), nullable=False, default=DeploymentStatus.ACTIVE.value)
    deployment_date = Column(DateTime(timezone=True), nullable=True)
    last_updated_date = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    __table_args__ = (
        UniqueConstraint("tenant_id", "product_id", "deployment_type", name="uq_deployment_tenant_product_type"),
        CheckConstraint(deployment_type.in_(values(DeploymentType)), name="chk_deployment_type"),
        CheckConstraint(status.in_(values(DeploymentStatus)), name="chk_deployment_status"),
    )


class Subscription(Base):
    __tablename__ = "subscriptions"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    subscription_id = Column(String(100), unique=True, nullable=False, index=True)
    customer_id = Column(String(100), ForeignKey("customers.customer_id"), nullable=False, index=True)
    name = Column(String(255), nullable=True)
    description = Column(Text, nullable=True)
    start_date = Column(DateTime(timezone=True), nullable=False)
    end_date = Column(DateTime(timezone=True), nullable=True)
    status = Column(String(20), nullable=False, default=SubscriptionStatus.ACTIVE.value)
    created_by = Column(String(255), nullable=True)
    notes = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    __table_args__ = (
        CheckConstraint(status.in_(values(SubscriptionStatus)), name="chk_subscription_status"),
    )


class License(Base):
    """Seat entitlement for one product under a subscription."""
    __tablename__ = "licenses"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    license_id = Column(String(100), unique=True, nullable=False, index=True)
    subscription_id = Column(
        String(100), ForeignKey("subscriptions.subscription_id"), nullable=False, index=True
    )
    product_id = Column(String(100), ForeignKey("products.product_id"), nullable=False)
    license_type = Column(String(20), nullable=False)
    number_of_seats = Column(Integer, nullable=False)
    start_date = Column(DateTime(timezone=True), nullable=False)
    end_date = Column(DateTime(timezone=True), nullable=True)
    status = Column(String(20), nullable=False, default=LicenseStatus.ACTIVE.value)
    assigned_by = Column(String(255), nullable=True)
    assignment_date = Column(DateTime(timezone=True), nullable=True)
    notes = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    __table_args__ = (
        CheckConstraint(license_type.in_(values(LicenseType)), name="chk_license_type"),
        CheckConstraint(status.in_(values(LicenseStatus)), name="chk_license_status"),
        CheckConstraint(number_of_seats >= 1, name="chk_license_seats_positive"),
        CheckConstraint(
            or_(
                license_type != LicenseType.TIME_BASED.value,
                and_(end_date.isnot(None), end_date > start_date),
            ),
            name="chk_license_time_based_window",
        ),
    )


class LicenseAllocation(Base):
    """Seats of a license held by a tenant or a deployment."""
    __tablename__ = "license_allocations"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    allocation_id = Column(String(100), unique=True, nullable=False, index=True)
    license_id = Column(String(100), ForeignKey("licenses.license_id"), nullable=False)
    tenant_id = Column(String(100), ForeignKey("customer_tenants.tenant_id"), nullable=True)
    deployment_id = Column(String(100), ForeignKey("deployments.deployment_id"), nullable=True)
    number_of_seats_allocated = Column(Integer, nullable=False)
    status = Column(String(20), nullable=False, default=AllocationStatus.ACTIVE.value)
    allocation_date = Column(DateTime(timezone=True), nullable=False)
    allocated_by = Column(String(255), nullable=True)
    released_date = Column(DateTime(timezone=True), nullable=True)
    released_by = Column(String(255), nullable=True)
    notes = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    __table_args__ = (
        CheckConstraint(status.in_(values(AllocationStatus)), name="chk_allocation_status"),
        CheckConstraint(number_of_seats_allocated >= 1, name="chk_allocation_seats_positive"),
        CheckConstraint(
            or_(
                and_(tenant_id.isnot(None), deployment_id.is_(None)),
                and_(tenant_id.is_(None), deployment_id.isnot(None)),
            ),
            name="chk_allocation_single_target",
        ),
        Index("idx_allocations_license_status", "license_id", "status"),
    )


class Notification(Base):
    __tablename__ = "notifications"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    type = Column(String(30), nullable=False)
    recipient_id = Column(String(100), nullable=False, index=True)
    product_id = Column(String(100), nullable=True)
    version_id = Column(Uuid(as_uuid=True), nullable=True)
    customer_id = Column(String(100), nullable=True)
    tenant_id = Column(String(100), nullable=True)
    deployment_id = Column(String(100), nullable=True)
    title = Column(String(255), nullable=False)
    message = Column(Text, nullable=False)
    priority = Column(String(20), nullable=False, default=Priority.NORMAL.value)
    is_read = Column(Boolean, nullable=False, default=False)
    read_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    __table_args__ = (
        CheckConstraint(type.in_(values(NotificationType)), name="chk_notification_type"),
        CheckConstraint(priority.in_(values(Priority)), name="chk_notification_priority"),
        Index("idx_notifications_recipient_read", "recipient_id", "is_read"),
    )


class AuditLog(Base):
    """Append-only record of every mutating operation."""
    __tablename__ = "audit_logs"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    action = Column(String(50), nullable=False, index=True)
    resource_type = Column(String(50), nullable=False)
    resource_id = Column(String(100), nullable=False)
    user_id = Column(String(255), nullable=True)
    details = Column(JSONType, nullable=False, default=dict)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    __table_args__ = (
        Index("idx_audit_resource", "resource_type", "resource_id"),
    )
