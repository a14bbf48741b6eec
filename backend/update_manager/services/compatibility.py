"""Client/server compatibility evaluation and matrix validation."""

from __future__ import annotations

from dataclasses import dataclass, field

from ..enums import CompatibilityStatus
from .version_algebra import compare, in_list, is_newer, is_older, same_version


@dataclass(frozen=True)
class CompatibilityRule:
    """Server-version constraints declared by one client version."""

    min_server_version: str | None = None
    max_server_version: str | None = None
    recommended_server_version: str | None = None
    incompatible_versions: tuple[str, ...] = field(default_factory=tuple)

    @classmethod
    def from_record(cls, record) -> "CompatibilityRule":
        return cls(
            min_server_version=record.min_server_version,
            max_server_version=record.max_server_version,
            recommended_server_version=record.recommended_server_version,
            incompatible_versions=tuple(getattr(record, "incompatible_versions", None) or ()),
        )

    @property
    def is_empty(self) -> bool:
        return not (
            self.min_server_version
            or self.max_server_version
            or self.recommended_server_version
            or self.incompatible_versions
        )


@dataclass(frozen=True)
class CompatibilityResult:
    status: str
    reason: str | None = None


def evaluate(rule: CompatibilityRule, server_version: str) -> CompatibilityResult:
    if in_list(server_version, rule.incompatible_versions):
        return CompatibilityResult(CompatibilityStatus.INCOMPATIBLE.value, "blacklisted")
    if rule.min_server_version and is_older(server_version, rule.min_server_version):
        return CompatibilityResult(CompatibilityStatus.INCOMPATIBLE.value, "below_min")
    if rule.max_server_version and is_newer(server_version, rule.max_server_version):
        return CompatibilityResult(CompatibilityStatus.INCOMPATIBLE.value, "above_max")
    if rule.recommended_server_version and same_version(server_version, rule.recommended_server_version):
        return CompatibilityResult(CompatibilityStatus.RECOMMENDED.value)
    return CompatibilityResult(CompatibilityStatus.COMPATIBLE.value)


def validate_rule(rule: CompatibilityRule) -> list[str]:
    """Return well-formedness errors; empty when the rule is consistent."""
    errors: list[str] = []
    low = rule.min_server_version
    high = rule.max_server_version
    recommended = rule.recommended_server_version

    if low and high and compare(low, high) > 0:
        errors.append(f"min_server_version {low} is greater than max_server_version {high}")
    if recommended:
        if low and is_older(recommended, low):
            errors.append(f"recommended_server_version {recommended} is below min_server_version {low}")
        if high and is_newer(recommended, high):
            errors.append(f"recommended_server_version {recommended} is above max_server_version {high}")
        if in_list(recommended, rule.incompatible_versions):
            errors.append(f"recommended_server_version {recommended} is listed as incompatible")
    return errors
