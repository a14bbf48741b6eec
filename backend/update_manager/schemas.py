"""Pydantic schemas for API."""
from pydantic import BaseModel, Field, ConfigDict
from typing import Generic, Optional, TypeVar
from datetime import datetime
from uuid import UUID

from .enums import (
    DeploymentStatus, DeploymentType, LicenseStatus, LicenseType,
    PackageType, ProductType, ReleaseType, RolloutStatus, SubscriptionStatus,
    CustomerStatus, TenantStatus,
)

T = TypeVar("T")


# Pagination
class Page(BaseModel, Generic[T]):
    items: list[T]
    page: int
    limit: int
    total: int
    total_pages: int


# Products
class ProductCreate(BaseModel):
    product_id: str = Field(min_length=1, max_length=100)
    name: str = Field(min_length=1, max_length=255)
    type: ProductType
    description: Optional[str] = None
    vendor: Optional[str] = None


class ProductUpdate(BaseModel):
    name: Optional[str] = Field(default=None, min_length=1, max_length=255)
    description: Optional[str] = None
    vendor: Optional[str] = None
    is_active: Optional[bool] = None


class ProductOut(BaseModel):
    id: UUID
    product_id: str
    name: str
    type: str
    description: Optional[str] = None
    vendor: Optional[str] = None
    is_active: bool
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)


# Versions
class PackageCreate(BaseModel):
    type: PackageType
    name: str = Field(min_length=1, max_length=255)
    size_bytes: int = Field(ge=0)
    sha256: str
    url: Optional[str] = None


class PackageOut(BaseModel):
    id: str
    type: str
    name: str
    size_bytes: int
    sha256: str
    url: Optional[str] = None
    uploaded_at: Optional[datetime] = None
    uploaded_by: Optional[str] = None


class VersionCreate(BaseModel):
    version_number: str = Field(min_length=1, max_length=100)
    release_type: ReleaseType
    release_date: Optional[datetime] = None
    eol_date: Optional[datetime] = None
    min_server_version: Optional[str] = None
    max_server_version: Optional[str] = None
    recommended_server_version: Optional[str] = None
    release_notes: Optional[dict] = None


class VersionUpdate(BaseModel):
    release_type: Optional[ReleaseType] = None
    release_date: Optional[datetime] = None
    eol_date: Optional[datetime] = None
    min_server_version: Optional[str] = None
    max_server_version: Optional[str] = None
    recommended_server_version: Optional[str] = None
    release_notes: Optional[dict] = None


class VersionEolUpdate(BaseModel):
    eol_date: Optional[datetime] = None


class VersionOut(BaseModel):
    id: UUID
    product_id: str
    version_number: str
    release_type: str
    state: str
    effective_state: str
    release_date: Optional[datetime] = None
    released_at: Optional[datetime] = None
    eol_date: Optional[datetime] = None
    min_server_version: Optional[str] = None
    max_server_version: Optional[str] = None
    recommended_server_version: Optional[str] = None
    release_notes: Optional[dict] = None
    packages: list[PackageOut] = []
    created_by: Optional[str] = None
    approved_by: Optional[str] = None
    approved_at: Optional[datetime] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class EolWarningOut(BaseModel):
    version_id: UUID
    product_id: str
    version_number: str
    state: str
    eol_date: datetime
    days_remaining: int


# Compatibility
class CompatibilityMatrixIn(BaseModel):
    min_server_version: Optional[str] = None
    max_server_version: Optional[str] = None
    recommended_server_version: Optional[str] = None
    incompatible_versions: list[str] = []


class CompatibilityMatrixOut(BaseModel):
    id: UUID
    product_id: str
    version_number: str
    min_server_version: Optional[str] = None
    max_server_version: Optional[str] = None
    recommended_server_version: Optional[str] = None
    incompatible_versions: list[str] = []
    validation_status: str
    validation_errors: list[str] = []
    validated_at: Optional[datetime] = None
    validated_by: Optional[str] = None

    model_config = ConfigDict(from_attributes=True)


class CompatibilityCheckOut(BaseModel):
    product_id: str
    client_version: str
    server_version: str
    status: str
    reason: Optional[str] = None


# Upgrade paths
class UpgradePlanOut(BaseModel):
    product_id: str
    from_version: str
    to_version: str
    path_type: str
    intermediate_versions: list[str] = []
    is_blocked: bool = False
    block_reason: Optional[str] = None


class UpgradePathCreate(BaseModel):
    from_version: str = Field(min_length=1)
    to_version: str = Field(min_length=1)
    intermediate_versions: list[str] = []
    is_blocked: bool = False
    block_reason: Optional[str] = None


class UpgradePathBlock(BaseModel):
    from_version: str = Field(min_length=1)
    to_version: str = Field(min_length=1)
    reason: str = Field(min_length=1)


class UpgradePathUnblock(BaseModel):
    from_version: str = Field(min_length=1)
    to_version: str = Field(min_length=1)


class UpgradePathOut(BaseModel):
    id: UUID
    product_id: str
    from_version: str
    to_version: str
    path_type: str
    intermediate_versions: list[str] = []
    is_blocked: bool
    block_reason: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)


# Customers / tenants / deployments
class NotificationPreferences(BaseModel):
    email_enabled: bool = True
    in_app_enabled: bool = True
    uat_notifications: bool = True
    production_notifications: bool = True


class CustomerCreate(BaseModel):
    customer_id: str = Field(min_length=1, max_length=100)
    name: str = Field(min_length=1, max_length=255)
    organization_name: Optional[str] = None
    email: str = Field(min_length=3, max_length=255)
    phone: Optional[str] = None
    address: Optional[str] = None
    notification_preferences: NotificationPreferences = NotificationPreferences()


class CustomerUpdate(BaseModel):
    name: Optional[str] = Field(default=None, min_length=1, max_length=255)
    organization_name: Optional[str] = None
    email: Optional[str] = Field(default=None, min_length=3, max_length=255)
    phone: Optional[str] = None
    address: Optional[str] = None
    account_status: Optional[CustomerStatus] = None
    notification_preferences: Optional[NotificationPreferences] = None


class CustomerOut(BaseModel):
    id: UUID
    customer_id: str
    name: str
    organization_name: Optional[str] = None
    email: str
    phone: Optional[str] = None
    address: Optional[str] = None
    account_status: str
    notification_preferences: dict = {}
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)


class TenantCreate(BaseModel):
    tenant_id: str = Field(min_length=1, max_length=100)
    name: str = Field(min_length=1, max_length=255)
    description: Optional[str] = None


class TenantUpdate(BaseModel):
    name: Optional[str] = Field(default=None, min_length=1, max_length=255)
    description: Optional[str] = None
    status: Optional[TenantStatus] = None


class TenantOut(BaseModel):
    id: UUID
    tenant_id: str
    customer_id: str
    name: str
    description: Optional[str] = None
    status: str
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)


class DeploymentCreate(BaseModel):
    deployment_id: str = Field(min_length=1, max_length=100)
    product_id: str = Field(min_length=1, max_length=100)
    deployment_type: DeploymentType
    installed_version: str = Field(min_length=1, max_length=100)
    number_of_users: Optional[int] = Field(default=None, ge=0)
    server_hostname: Optional[str] = None
    environment_details: Optional[str] = None
    deployment_date: Optional[datetime] = None


class DeploymentUpdate(BaseModel):
    installed_version: Optional[str] = Field(default=None, min_length=1, max_length=100)
    status: Optional[DeploymentStatus] = None
    number_of_users: Optional[int] = Field(default=None, ge=0)
    server_hostname: Optional[str] = None
    environment_details: Optional[str] = None


class DeploymentOut(BaseModel):
    id: UUID
    deployment_id: str
    tenant_id: str
    product_id: str
    deployment_type: str
    installed_version: str
    number_of_users: Optional[int] = None
    server_hostname: Optional[str] = None
    environment_details: Optional[str] = None
    status: str
    deployment_date: Optional[datetime] = None
    last_updated_date: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)


# Pending updates
class AvailableUpdateOut(BaseModel):
    version_id: UUID
    version_number: str
    release_type: str
    release_date: Optional[datetime] = None
    released_at: Optional[datetime] = None
    is_security_update: bool
    compatibility_status: str
    path_type: str
    upgrade_path: list[str] = []
    gap_type: str
    priority: str


class DeploymentPendingUpdatesOut(BaseModel):
    deployment_id: str
    tenant_id: str
    product_id: str
    product_name: Optional[str] = None
    deployment_type: str
    installed_version: str
    latest_version: Optional[str] = None
    version_gap_type: str
    priority: Optional[str] = None
    update_count: int
    updates: list[AvailableUpdateOut] = []


class TenantPendingUpdatesOut(BaseModel):
    tenant_id: str
    customer_id: str
    total_pending_updates: int
    by_priority: dict[str, int] = {}
    by_product: dict[str, int] = {}
    deployments: list[DeploymentPendingUpdatesOut] = []


class CustomerPendingUpdatesOut(BaseModel):
    customer_id: str
    total_pending_updates: int
    by_priority: dict[str, int] = {}
    by_product: dict[str, int] = {}
    by_tenant: dict[str, int] = {}
    tenants: list[TenantPendingUpdatesOut] = []


# Detections / rollouts
class DetectionCreate(BaseModel):
    endpoint_id: str = Field(min_length=1, max_length=255)
    product_id: str = Field(min_length=1, max_length=100)
    current_version: str = Field(min_length=1)
    available_version: str = Field(min_length=1)


class DetectionOut(BaseModel):
    id: UUID
    endpoint_id: str
    product_id: str
    current_version: str
    available_version: str
    detected_at: datetime
    last_checked_at: datetime

    model_config = ConfigDict(from_attributes=True)


class RolloutCreate(BaseModel):
    endpoint_id: str = Field(min_length=1, max_length=255)
    product_id: str = Field(min_length=1, max_length=100)
    from_version: str = Field(min_length=1)
    to_version: str = Field(min_length=1)


class DeploymentRolloutCreate(BaseModel):
    to_version: str = Field(min_length=1)
    endpoint_id: Optional[str] = None


class RolloutUpdate(BaseModel):
    status: Optional[RolloutStatus] = None
    progress: Optional[int] = None
    error_message: Optional[str] = None


class RolloutOut(BaseModel):
    id: UUID
    endpoint_id: str
    product_id: str
    deployment_id: Optional[str] = None
    from_version: str
    to_version: str
    status: str
    progress: int
    initiated_by: Optional[str] = None
    initiated_at: datetime
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    failed_at: Optional[datetime] = None
    error_message: Optional[str] = None

    model_config = ConfigDict(from_attributes=True)


# Subscriptions / licenses
class SubscriptionCreate(BaseModel):
    subscription_id: str = Field(min_length=1, max_length=100)
    name: Optional[str] = None
    description: Optional[str] = None
    start_date: datetime
    end_date: Optional[datetime] = None
    status: SubscriptionStatus = SubscriptionStatus.ACTIVE
    notes: Optional[str] = None


class SubscriptionOut(BaseModel):
    id: UUID
    subscription_id: str
    customer_id: str
    name: Optional[str] = None
    description: Optional[str] = None
    start_date: datetime
    end_date: Optional[datetime] = None
    status: str
    created_by: Optional[str] = None
    notes: Optional[str] = None

    model_config = ConfigDict(from_attributes=True)


class LicenseCreate(BaseModel):
    license_id: str = Field(min_length=1, max_length=100)
    product_id: str = Field(min_length=1, max_length=100)
    license_type: LicenseType
    number_of_seats: int = Field(ge=1)
    start_date: datetime
    end_date: Optional[datetime] = None
    notes: Optional[str] = None


class LicenseUpdate(BaseModel):
    number_of_seats: Optional[int] = Field(default=None, ge=1)
    end_date: Optional[datetime] = None
    status: Optional[LicenseStatus] = None
    notes: Optional[str] = None


class LicenseOut(BaseModel):
    id: UUID
    license_id: str
    subscription_id: str
    product_id: str
    license_type: str
    number_of_seats: int
    start_date: datetime
    end_date: Optional[datetime] = None
    status: str
    assigned_by: Optional[str] = None
    assignment_date: Optional[datetime] = None
    notes: Optional[str] = None

    model_config = ConfigDict(from_attributes=True)


class AllocationCreate(BaseModel):
    tenant_id: Optional[str] = None
    deployment_id: Optional[str] = None
    number_of_seats_allocated: int = Field(ge=1)
    notes: Optional[str] = None


class AllocationOut(BaseModel):
    id: UUID
    allocation_id: str
    license_id: str
    tenant_id: Optional[str] = None
    deployment_id: Optional[str] = None
    number_of_seats_allocated: int
    status: str
    allocation_date: datetime
    allocated_by: Optional[str] = None
    released_date: Optional[datetime] = None
    released_by: Optional[str] = None
    notes: Optional[str] = None

    model_config = ConfigDict(from_attributes=True)


class LicenseUtilizationOut(BaseModel):
    license_id: str
    total_seats: int
    allocated_seats: int
    available_seats: int
    utilization_percent: float
    active_allocations: int


# Notifications / audit
class NotificationOut(BaseModel):
    id: UUID
    type: str
    recipient_id: str
    product_id: Optional[str] = None
    version_id: Optional[UUID] = None
    customer_id: Optional[str] = None
    title: str
    message: str
    priority: str
    is_read: bool
    read_at: Optional[datetime] = None
    created_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)


class UnreadCountOut(BaseModel):
    recipient_id: str
    unread_count: int


class AuditLogOut(BaseModel):
    id: UUID
    action: str
    resource_type: str
    resource_id: str
    user_id: Optional[str] = None
    details: dict = {}
    created_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)


# System
class HealthCheckResponse(BaseModel):
    status: str
    database: str
    redis: str
    version: str

