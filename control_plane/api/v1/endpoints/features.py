"""Feature management API.

Endpoints:
- GET    /features                        → list (filters + pagination)
- POST   /features                        → create
- GET    /features/stats/summary          → counts by state and category
- GET    /features/platform/{platform}    → enabled features for a platform (public)
- GET    /features/check/{name}           → evaluate for platform + target_key (public)
- GET    /features/{id}                   → get
- PATCH  /features/{id}                   → update descriptive fields
- POST   /features/{id}/enable|disable|toggle
- PATCH  /features/{id}/rollout           → set rollout percentage
- PATCH  /features/{id}/config            → merge config keys
- DELETE /features/{id}                   → retire
- GET    /features/{id}/changelog         → audit entries, newest first

Mutations take an optional ``expected_version`` query parameter.
"""

from typing import Any, List, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query, status

from control_plane.api import deps
from control_plane.middleware.metrics import FEATURE_EVALUATIONS
from control_plane.schemas.audit import AuditEntry
from control_plane.schemas.feature import (
    ConfigUpdate,
    FeatureCreate,
    FeatureEvaluation,
    FeatureFilter,
    FeatureRecord,
    FeatureStats,
    FeatureUpdate,
    PlatformFeature,
    RolloutUpdate,
)
from control_plane.schemas.pagination import Page, PageParams
from control_plane.services.control_plane import ControlPlane

router = APIRouter()


@router.get("/", response_model=Page[FeatureRecord])
def list_features(
    filters: FeatureFilter = Depends(deps.get_feature_filter),
    page: PageParams = Depends(deps.get_page_params),
    cp: ControlPlane = Depends(deps.get_control_plane),
    actor: str = Depends(deps.get_actor),
) -> Any:
    return cp.features.list(actor, filters, page)


@router.post("/", response_model=FeatureRecord, status_code=status.HTTP_201_CREATED)
def create_feature(
    body: FeatureCreate,
    cp: ControlPlane = Depends(deps.get_control_plane),
    actor: str = Depends(deps.get_actor),
) -> Any:
    return cp.features.create(actor, body)


@router.get("/stats/summary", response_model=FeatureStats)
def feature_stats(
    cp: ControlPlane = Depends(deps.get_control_plane),
    actor: str = Depends(deps.get_actor),
) -> Any:
    return cp.features.stats(actor)


@router.get("/platform/{platform}", response_model=List[PlatformFeature])
def platform_features(
    platform: str,
    cp: ControlPlane = Depends(deps.get_control_plane),
) -> Any:
    return cp.features.list_for_platform(platform)


@router.get("/check/{name}", response_model=FeatureEvaluation)
def check_feature(
    name: str,
    platform: str = Query(...),
    target_key: Optional[str] = None,
    cp: ControlPlane = Depends(deps.get_control_plane),
) -> Any:
    enabled = cp.is_feature_enabled(name, platform, target_key)
    FEATURE_EVALUATIONS.labels(result="on" if enabled else "off").inc()
    return FeatureEvaluation(name=name, platform=platform, enabled=enabled)


@router.get("/{feature_id}", response_model=FeatureRecord)
def get_feature(
    feature_id: UUID,
    cp: ControlPlane = Depends(deps.get_control_plane),
    actor: str = Depends(deps.get_actor),
) -> Any:
    return cp.features.get(actor, feature_id)


@router.patch("/{feature_id}", response_model=FeatureRecord)
def update_feature(
    feature_id: UUID,
    body: FeatureUpdate,
    expected_version: Optional[int] = None,
    cp: ControlPlane = Depends(deps.get_control_plane),
    actor: str = Depends(deps.get_actor),
) -> Any:
    return cp.features.update(actor, feature_id, body, expected_version)


@router.post("/{feature_id}/enable", response_model=FeatureRecord)
def enable_feature(
    feature_id: UUID,
    expected_version: Optional[int] = None,
    cp: ControlPlane = Depends(deps.get_control_plane),
    actor: str = Depends(deps.get_actor),
) -> Any:
    return cp.features.enable(actor, feature_id, expected_version)


@router.post("/{feature_id}/disable", response_model=FeatureRecord)
def disable_feature(
    feature_id: UUID,
    expected_version: Optional[int] = None,
    cp: ControlPlane = Depends(deps.get_control_plane),
    actor: str = Depends(deps.get_actor),
) -> Any:
    return cp.features.disable(actor, feature_id, expected_version)


@router.post("/{feature_id}/toggle", response_model=FeatureRecord)
def toggle_feature(
    feature_id: UUID,
    expected_version: Optional[int] = None,
    cp: ControlPlane = Depends(deps.get_control_plane),
    actor: str = Depends(deps.get_actor),
) -> Any:
    return cp.features.toggle(actor, feature_id, expected_version)


@router.patch("/{feature_id}/rollout", response_model=FeatureRecord)
def update_rollout(
    feature_id: UUID,
    body: RolloutUpdate,
    expected_version: Optional[int] = None,
    cp: ControlPlane = Depends(deps.get_control_plane),
    actor: str = Depends(deps.get_actor),
) -> Any:
    return cp.features.update_rollout(actor, feature_id, body.rollout_percentage, expected_version)


@router.patch("/{feature_id}/config", response_model=FeatureRecord)
def update_config(
    feature_id: UUID,
    body: ConfigUpdate,
    expected_version: Optional[int] = None,
    cp: ControlPlane = Depends(deps.get_control_plane),
    actor: str = Depends(deps.get_actor),
) -> Any:
    return cp.features.update_config(actor, feature_id, body.config, expected_version)


@router.delete("/{feature_id}", response_model=FeatureRecord)
def retire_feature(
    feature_id: UUID,
    expected_version: Optional[int] = None,
    cp: ControlPlane = Depends(deps.get_control_plane),
    actor: str = Depends(deps.get_actor),
) -> Any:
    return cp.features.delete(actor, feature_id, expected_version)


@router.get("/{feature_id}/changelog", response_model=Page[AuditEntry])
def feature_changelog(
    feature_id: UUID,
    page: PageParams = Depends(deps.get_page_params),
    cp: ControlPlane = Depends(deps.get_control_plane),
    actor: str = Depends(deps.get_actor),
) -> Any:
    return cp.features.get_changelog(actor, feature_id, page)
