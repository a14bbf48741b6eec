"""Closed value sets stored as plain strings."""
from enum import Enum


class ProductType(str, Enum):
    SERVER = "server"
    CLIENT = "client"


class ReleaseType(str, Enum):
    SECURITY = "security"
    FEATURE = "feature"
    MAINTENANCE = "maintenance"
    MAJOR = "major"


class VersionState(str, Enum):
    DRAFT = "draft"
    PENDING_REVIEW = "pending_review"
    APPROVED = "approved"
    RELEASED = "released"
    DEPRECATED = "deprecated"
    EOL = "eol"


class PackageType(str, Enum):
    FULL_INSTALLER = "full_installer"
    UPDATE = "update"
    DELTA = "delta"
    ROLLBACK = "rollback"


class ValidationStatus(str, Enum):
    PENDING = "pending"
    PASSED = "passed"
    FAILED = "failed"


class CompatibilityStatus(str, Enum):
    RECOMMENDED = "recommended"
    COMPATIBLE = "compatible"
    INCOMPATIBLE = "incompatible"
    NOT_APPLICABLE = "not_applicable"
    UNKNOWN = "unknown"


class PathType(str, Enum):
    DIRECT = "direct"
    MULTI_STEP = "multi_step"
    BLOCKED = "blocked"


class RolloutStatus(str, Enum):
    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"


class CustomerStatus(str, Enum):
    ACTIVE = "active"
    INACTIVE = "inactive"
    SUSPENDED = "suspended"


class TenantStatus(str, Enum):
    ACTIVE = "active"
    INACTIVE = "inactive"


class DeploymentType(str, Enum):
    UAT = "uat"
    TESTING = "testing"
    PRODUCTION = "production"


class DeploymentStatus(str, Enum):
    ACTIVE = "active"
    INACTIVE = "inactive"


class SubscriptionStatus(str, Enum):
    ACTIVE = "active"
    INACTIVE = "inactive"
    EXPIRED = "expired"
    SUSPENDED = "suspended"


class LicenseType(str, Enum):
    PERPETUAL = "perpetual"
    TIME_BASED = "time_based"


class LicenseStatus(str, Enum):
    ACTIVE = "active"
    INACTIVE = "inactive"
    EXPIRED = "expired"
    REVOKED = "revoked"


class AllocationStatus(str, Enum):
    ACTIVE = "active"
    RELEASED = "released"


class NotificationType(str, Enum):
    NEW_VERSION = "new_version"
    SECURITY_RELEASE = "security_release"
    EOL_WARNING = "eol_warning"
    UPDATE_AVAILABLE = "update_available"


class Priority(str, Enum):
    CRITICAL = "critical"
    HIGH = "high"
    NORMAL = "normal"
    LOW = "low"


class GapType(str, Enum):
    MAJOR = "major"
    MINOR = "minor"
    PATCH = "patch"
    UNKNOWN = "unknown"


def values(enum_cls) -> list[str]:
    return [member.value for member in enum_cls]
