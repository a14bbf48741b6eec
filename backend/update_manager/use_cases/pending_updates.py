"""Pending-updates computation per deployment, tenant and customer.

For a deployment the candidates are the released versions of its product
newer than the installed one, minus versions past EOL, versions whose
upgrade plan is blocked and (for client products) versions incompatible
with the tenant's server. Each candidate carries a priority; summaries roll
the candidates up by priority, product and tenant.
"""
from __future__ import annotations

import logging
from collections import Counter
from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional

from sqlalchemy.orm import Session

from ..database import store_retry
from ..enums import (
    CompatibilityStatus,
    DeploymentStatus,
    GapType,
    Priority,
    ProductType,
    ReleaseType,
    TenantStatus,
    VersionState,
)
from ..models import CustomerTenant, Deployment, Product, UpgradePath, Version
from ..pagination import PageParams, page_of
from ..schemas import (
    AvailableUpdateOut,
    CustomerPendingUpdatesOut,
    DeploymentPendingUpdatesOut,
    TenantPendingUpdatesOut,
)
from ..services.compatibility import evaluate
from ..services.pending_cache import PendingUpdatesCache
from ..services.upgrade_planner import PlanCandidate
from ..services.version_algebra import gap_type, is_newer, sort_key
from ..services.version_rules import is_past, now_utc
from .compatibility_matrix import rule_for_version
from .customers import get_customer, get_deployment, get_tenant
from .upgrade_paths import load_plan_candidates, plan_upgrade

logger = logging.getLogger(__name__)

PRIORITY_RANK: dict[str, int] = {
    Priority.LOW.value: 0,
    Priority.NORMAL.value: 1,
    Priority.HIGH.value: 2,
    Priority.CRITICAL.value: 3,
}


@dataclass(frozen=True)
class PendingFilters:
    product_id: Optional[str] = None
    deployment_type: Optional[str] = None
    priority: Optional[str] = None

    def cache_parts(self) -> tuple:
        return (self.product_id, self.deployment_type, self.priority)


@dataclass
class _ProductContext:
    """Per-product data loaded once per request."""

    product: Product
    released: list[Version]
    candidates: list[PlanCandidate]
    stored_paths: list[UpgradePath]
    versions_by_number: dict[str, Version] = field(default_factory=dict)


def candidate_priority(*, installed: str, target: Version, intermediates: list[Version]) -> str:
    if target.release_type == ReleaseType.SECURITY.value:
        return Priority.CRITICAL.value
    if gap_type(installed, target.version_number) == GapType.MAJOR.value:
        return Priority.HIGH.value
    if any(v.release_type == ReleaseType.SECURITY.value for v in intermediates):
        return Priority.HIGH.value
    return Priority.NORMAL.value


def highest_priority(priorities) -> Optional[str]:
    ranked = sorted(priorities, key=lambda p: PRIORITY_RANK.get(p, -1))
    return ranked[-1] if ranked else None


def _load_product_context(db: Session, product_id: str, *, at: datetime) -> _ProductContext | None:
    product = db.query(Product).filter(Product.product_id == product_id).first()
    if product is None:
        return None
    versions = db.query(Version).filter(Version.product_id == product_id).all()
    released = [
        v for v in versions
        if v.state == VersionState.RELEASED.value and not is_past(v.eol_date, at=at)
    ]
    released.sort(key=lambda v: sort_key(v.version_number))
    return _ProductContext(
        product=product,
        released=released,
        candidates=load_plan_candidates(db, product_id, at=at),
        stored_paths=db.query(UpgradePath).filter(UpgradePath.product_id == product_id).all(),
        versions_by_number={v.version_number: v for v in versions},
    )


def resolve_server_version(db: Session, deployment: Deployment) -> Optional[str]:
    """Installed version of the tenant's server deployment paired with a client deployment."""
    servers = (
        db.query(Deployment)
        .join(Product, Product.product_id == Deployment.product_id)
        .filter(
            Deployment.tenant_id == deployment.tenant_id,
            Deployment.status == DeploymentStatus.ACTIVE.value,
            Product.type == ProductType.SERVER.value,
        )
        .order_by(Deployment.deployment_id)
        .all()
    )
    for server in servers:
        if server.deployment_type == deployment.deployment_type:
            return server.installed_version
    return servers[0].installed_version if servers else None


def compute_deployment_updates(
    db: Session,
    deployment: Deployment,
    *,
    at: datetime,
    contexts: dict[str, _ProductContext | None] | None = None,
) -> DeploymentPendingUpdatesOut:
    contexts = contexts if contexts is not None else {}
    if deployment.product_id not in contexts:
        contexts[deployment.product_id] = _load_product_context(db, deployment.product_id, at=at)
    context = contexts[deployment.product_id]

    installed = deployment.installed_version
    updates: list[AvailableUpdateOut] = []
    if context is not None and deployment.status == DeploymentStatus.ACTIVE.value:
        is_client = context.product.type == ProductType.CLIENT.value
        server_version = resolve_server_version(db, deployment) if is_client else None

        for target in context.released:
            if not is_newer(target.version_number, installed):
                continue
            plan = plan_upgrade(
                db=db,
                product_id=deployment.product_id,
                from_version=installed,
                to_version=target.version_number,
                at=at,
                candidates=context.candidates,
                stored_paths=context.stored_paths,
            )
            if plan.is_blocked:
                continue

            if not is_client:
                compatibility = CompatibilityStatus.NOT_APPLICABLE.value
            elif server_version is None:
                compatibility = CompatibilityStatus.UNKNOWN.value
            else:
                result = evaluate(rule_for_version(db, target), server_version)
                if result.status == CompatibilityStatus.INCOMPATIBLE.value:
                    continue
                compatibility = result.status

            intermediates = [
                context.versions_by_number[number]
                for number in plan.intermediate_versions
                if number in context.versions_by_number
            ]
            updates.append(
                AvailableUpdateOut(
                    version_id=target.id,
                    version_number=target.version_number,
                    release_type=target.release_type,
                    release_date=target.release_date,
                    released_at=target.released_at,
                    is_security_update=target.release_type == ReleaseType.SECURITY.value,
                    compatibility_status=compatibility,
                    path_type=plan.path_type,
                    upgrade_path=[*plan.intermediate_versions, target.version_number],
                    gap_type=gap_type(installed, target.version_number),
                    priority=candidate_priority(installed=installed, target=target, intermediates=intermediates),
                )
            )

    latest = updates[-1].version_number if updates else None
    return DeploymentPendingUpdatesOut(
        deployment_id=deployment.deployment_id,
        tenant_id=deployment.tenant_id,
        product_id=deployment.product_id,
        product_name=context.product.name if context else None,
        deployment_type=deployment.deployment_type,
        installed_version=installed,
        latest_version=latest,
        version_gap_type=gap_type(installed, latest) if latest else GapType.UNKNOWN.value,
        priority=highest_priority(u.priority for u in updates),
        update_count=len(updates),
        updates=updates,
    )


def _matches(result: DeploymentPendingUpdatesOut, filters: PendingFilters) -> bool:
    if result.update_count == 0:
        return False
    if filters.priority and result.priority != filters.priority:
        return False
    return True


def _filtered_deployments(query, filters: PendingFilters):
    query = query.filter(Deployment.status == DeploymentStatus.ACTIVE.value)
    if filters.product_id:
        query = query.filter(Deployment.product_id == filters.product_id)
    if filters.deployment_type:
        query = query.filter(Deployment.deployment_type == filters.deployment_type)
    return query.order_by(Deployment.deployment_id).all()


def summarize_tenant(
    db: Session,
    tenant: CustomerTenant,
    *,
    filters: PendingFilters,
    at: datetime,
    contexts: dict | None = None,
) -> TenantPendingUpdatesOut:
    contexts = contexts if contexts is not None else {}
    deployments = _filtered_deployments(db.query(Deployment).filter(Deployment.tenant_id == tenant.tenant_id), filters)

    results = [compute_deployment_updates(db, d, at=at, contexts=contexts) for d in deployments]
    results = [r for r in results if _matches(r, filters)]

    by_priority: Counter = Counter()
    by_product: Counter = Counter()
    for result in results:
        for update in result.updates:
            by_priority[update.priority] += 1
        by_product[result.product_id] += result.update_count

    return TenantPendingUpdatesOut(
        tenant_id=tenant.tenant_id,
        customer_id=tenant.customer_id,
        total_pending_updates=sum(r.update_count for r in results),
        by_priority=dict(by_priority),
        by_product=dict(by_product),
        deployments=results,
    )


@store_retry
def deployment_pending_updates_use_case(
    *,
    deployment_id: str,
    db: Session,
    cache: PendingUpdatesCache | None = None,
    at: datetime | None = None,
) -> DeploymentPendingUpdatesOut:
    deployment = get_deployment(db, deployment_id)
    key = PendingUpdatesCache.key("deployment", deployment_id, deployment.installed_version)
    if cache is not None and at is None:
        cached = cache.get(key)
        if cached is not None:
            return DeploymentPendingUpdatesOut.model_validate(cached)

    result = compute_deployment_updates(db, deployment, at=at or now_utc())
    if cache is not None and at is None:
        cache.set(key, result.model_dump(mode="json"))
    return result


@store_retry
def tenant_pending_updates_use_case(
    *,
    tenant_id: str,
    db: Session,
    filters: PendingFilters = PendingFilters(),
    cache: PendingUpdatesCache | None = None,
    at: datetime | None = None,
) -> TenantPendingUpdatesOut:
    tenant = get_tenant(db, tenant_id)
    key = PendingUpdatesCache.key("tenant", tenant_id, *filters.cache_parts())
    if cache is not None and at is None:
        cached = cache.get(key)
        if cached is not None:
            return TenantPendingUpdatesOut.model_validate(cached)

    result = summarize_tenant(db, tenant, filters=filters, at=at or now_utc())
    if cache is not None and at is None:
        cache.set(key, result.model_dump(mode="json"))
    return result


@store_retry
def customer_pending_updates_use_case(
    *,
    customer_id: str,
    db: Session,
    filters: PendingFilters = PendingFilters(),
    cache: PendingUpdatesCache | None = None,
    at: datetime | None = None,
) -> CustomerPendingUpdatesOut:
    get_customer(db, customer_id)
    key = PendingUpdatesCache.key("customer", customer_id, *filters.cache_parts())
    if cache is not None and at is None:
        cached = cache.get(key)
        if cached is not None:
            return CustomerPendingUpdatesOut.model_validate(cached)

    ts = at or now_utc()
    tenants = (
        db.query(CustomerTenant)
        .filter(CustomerTenant.customer_id == customer_id, CustomerTenant.status == TenantStatus.ACTIVE.value)
        .order_by(CustomerTenant.tenant_id)
        .all()
    )
    contexts: dict = {}
    summaries = [summarize_tenant(db, t, filters=filters, at=ts, contexts=contexts) for t in tenants]
    summaries = [s for s in summaries if s.total_pending_updates > 0]

    by_priority: Counter = Counter()
    by_product: Counter = Counter()
    for summary in summaries:
        by_priority.update(summary.by_priority)
        by_product.update(summary.by_product)

    result = CustomerPendingUpdatesOut(
        customer_id=customer_id,
        total_pending_updates=sum(s.total_pending_updates for s in summaries),
        by_priority=dict(by_priority),
        by_product=dict(by_product),
        by_tenant={s.tenant_id: s.total_pending_updates for s in summaries},
        tenants=summaries,
    )
    if cache is not None and at is None:
        cache.set(key, result.model_dump(mode="json"))
    logger.info(
        "pending_updates.customer id=%s tenants=%s total=%s",
        customer_id,
        len(summaries),
        result.total_pending_updates,
    )
    return result


@store_retry
def list_all_pending_updates_use_case(
    *,
    db: Session,
    params: PageParams,
    filters: PendingFilters = PendingFilters(),
    at: datetime | None = None,
) -> dict:
    ts = at or now_utc()
    deployments = _filtered_deployments(
        db.query(Deployment)
        .join(CustomerTenant, CustomerTenant.tenant_id == Deployment.tenant_id)
        .filter(CustomerTenant.status == TenantStatus.ACTIVE.value),
        filters,
    )
    contexts: dict = {}
    results = [compute_deployment_updates(db, d, at=ts, contexts=contexts) for d in deployments]
    results = [r for r in results if _matches(r, filters)]
    window = results[params.offset: params.offset + params.limit]
    return page_of(window, total=len(results), params=params)
