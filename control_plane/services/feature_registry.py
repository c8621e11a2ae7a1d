"""
Feature registry.

Owns feature records. Every committed mutation writes exactly one audit
entry in the same store transaction; a call that would change nothing
(enabling an enabled feature, setting the same rollout) writes nothing and
returns the feature unchanged.

Every flip of ``enabled`` bumps ``toggle_count`` and stamps ``last_toggled_at``;
both are bookkeeping and stay out of audit diffs.

Features are never physically deleted: ``delete`` retires them, keeping
the id and its audit trail.
"""
import logging
from typing import Any, Callable, Dict, List, Optional
from uuid import UUID, uuid4

from control_plane.exceptions import ConflictError, NotFoundError, ValidationError
from control_plane.repositories.base import ControlPlaneStore, StoreReader
from control_plane.schemas.feature import (
    PLATFORMS,
    CategoryStats,
    FeatureCreate,
    FeatureFilter,
    FeatureRecord,
    FeatureStats,
    FeatureUpdate,
    PlatformFeature,
    to_config,
)
from control_plane.schemas.pagination import Page, PageParams
from control_plane.services.audit_log import AuditLog, diff
from control_plane.services.common import check_expected_version, evolve, parse_input, utcnow
from control_plane.services.role_authorization import RoleAuthorization

logger = logging.getLogger("control_plane.features")

MANAGE = "manage_features"
READ = "read"


def _validate_percentage(percentage: Any) -> int:
    # bool is an int subclass; True is not a percentage
    if isinstance(percentage, bool) or not isinstance(percentage, int) or not 0 <= percentage <= 100:
        raise ValidationError(
            "rollout_percentage must be an integer between 0 and 100",
            [{"field": "rollout_percentage", "error": "out_of_range"}],
        )
    return percentage


class FeatureRegistry:

    def __init__(self, store: ControlPlaneStore, audit: AuditLog, authorization: RoleAuthorization):
        self.store = store
        self.audit = audit
        self.authorization = authorization

    # ─── Reads ───

    @staticmethod
    def _load(reader: StoreReader, feature_id: UUID) -> FeatureRecord:
        feature = reader.get_feature(feature_id)
        if feature is None:
            raise NotFoundError("Feature", str(feature_id))
        return feature

    def get(self, actor: str, feature_id: UUID) -> FeatureRecord:
        self.authorization.authorize(actor, READ)
        return self._load(self.store, feature_id)

    def get_by_name(self, actor: str, name: str) -> FeatureRecord:
        self.authorization.authorize(actor, READ)
        feature = self.store.get_feature_by_name(name)
        if feature is None:
            raise NotFoundError("Feature", name)
        return feature

    def list(
        self,
        actor: str,
        filters: Optional[FeatureFilter] = None,
        page: Optional[PageParams] = None,
    ) -> Page[FeatureRecord]:
        """Filtered page of features; insertion order unless ``filters.sort`` says otherwise."""
        self.authorization.authorize(actor, READ)
        params = (page or PageParams()).normalized()
        items, total = self.store.list_features(filters or FeatureFilter(), params.offset, params.limit)
        return Page[FeatureRecord].build(items, total, params)

    def list_for_platform(self, platform: str) -> List[PlatformFeature]:
        """Enabled, non-retired features scoped to ``platform``.

        Unauthenticated; exposes names and descriptions only, never config.
        Rollout is not applied here; use evaluation for per-identity answers.
        """
        if platform not in PLATFORMS:
            raise ValidationError(
                f"Unknown platform '{platform}'",
                [{"field": "platform", "error": "unknown"}],
            )
        scoped = [
            f for f in self.store.all_features()
            if not f.retired and f.enabled and platform in f.platforms
        ]
        return [
            PlatformFeature(name=f.name, display_name=f.display_name, description=f.description)
            for f in sorted(scoped, key=lambda f: f.name)
        ]

    def stats(self, actor: str) -> FeatureStats:
        self.authorization.authorize(actor, READ)
        features = self.store.all_features()
        live = [f for f in features if not f.retired]
        by_category: Dict[str, CategoryStats] = {}
        for feature in live:
            bucket = by_category.setdefault(feature.category, CategoryStats())
            bucket.total += 1
            if feature.enabled:
                bucket.enabled += 1
        enabled = sum(1 for f in live if f.enabled)
        return FeatureStats(
            total_features=len(live),
            enabled_features=enabled,
            disabled_features=len(live) - enabled,
            retired_features=len(features) - len(live),
            by_category=by_category,
        )

    def get_changelog(
        self,
        actor: str,
        feature_id: UUID,
        page: Optional[PageParams] = None,
    ):
        """Audit entries for the feature, most recent first."""
        self.authorization.authorize(actor, READ)
        self._load(self.store, feature_id)
        return self.audit.query(feature_id, page)

    # ─── Mutations ───

    def create(self, actor: str, data: Any) -> FeatureRecord:
        spec = parse_input(FeatureCreate, data)
        config = to_config(spec.config)
        with self.store.transaction() as tx:
            self.authorization.authorize(actor, MANAGE, tx)
            if tx.get_feature_by_name(spec.name) is not None:
                raise ValidationError(
                    f"Feature name '{spec.name}' already exists",
                    [{"field": "name", "error": "duplicate"}],
                )
            now = utcnow()
            feature = FeatureRecord(
                id=uuid4(),
                **spec.model_dump(exclude={"config"}),
                config=config,
                created_by=actor,
                updated_by=actor,
                created_at=now,
                updated_at=now,
            )
            tx.put_feature(feature, None)
            entry = self.audit.record(tx, feature.id, "feature", "created", actor, diff(None, feature))
        self.audit.committed(entry)
        return feature

    def _mutate(
        self,
        actor: str,
        feature_id: UUID,
        expected_version: Optional[int],
        action: Callable[[FeatureRecord], str],
        changes: Callable[[FeatureRecord], Dict[str, Any]],
    ) -> FeatureRecord:
        """Read-modify-write one feature under the store's version check.

        ``changes`` maps the current record to the fields to set; ``action``
        names the audit action (it may depend on the current state, as
        for toggle).
        """
        with self.store.transaction() as tx:
            self.authorization.authorize(actor, MANAGE, tx)
            current = self._load(tx, feature_id)
            check_expected_version("Feature", current, expected_version)
            if current.retired:
                raise ConflictError(f"Feature '{current.name}' is retired")
            updated = evolve(current, **changes(current))
            delta = diff(current, updated)
            if not delta:
                return current
            now = utcnow()
            bookkeeping = {"updated_by": actor, "updated_at": now, "version": current.version + 1}
            if "enabled" in delta:
                bookkeeping.update(toggle_count=current.toggle_count + 1, last_toggled_at=now)
            updated = evolve(updated, **bookkeeping)
            tx.put_feature(updated, current.version)
            entry = self.audit.record(tx, current.id, "feature", action(current), actor, delta)
        self.audit.committed(entry)
        return updated

    def update(
        self,
        actor: str,
        feature_id: UUID,
        patch: Any,
        expected_version: Optional[int] = None,
    ) -> FeatureRecord:
        """Partial update of descriptive fields. ``config`` here replaces the whole map."""
        changes = parse_input(FeatureUpdate, patch)
        fields = changes.model_dump(exclude_unset=True, exclude_none=True, exclude={"name", "config"})
        if changes.config is not None:
            fields["config"] = to_config(changes.config)

        def apply(current: FeatureRecord) -> Dict[str, Any]:
            if changes.name is not None and changes.name != current.name:
                raise ValidationError("Feature name cannot be changed", [{"field": "name", "error": "immutable"}])
            return fields

        return self._mutate(actor, feature_id, expected_version, lambda _: "updated", apply)

    def enable(self, actor: str, feature_id: UUID, expected_version: Optional[int] = None) -> FeatureRecord:
        return self._mutate(
            actor, feature_id, expected_version, lambda _: "enabled", lambda _: {"enabled": True}
        )

    def disable(self, actor: str, feature_id: UUID, expected_version: Optional[int] = None) -> FeatureRecord:
        return self._mutate(
            actor, feature_id, expected_version, lambda _: "disabled", lambda _: {"enabled": False}
        )

    def toggle(self, actor: str, feature_id: UUID, expected_version: Optional[int] = None) -> FeatureRecord:
        return self._mutate(
            actor,
            feature_id,
            expected_version,
            lambda current: "disabled" if current.enabled else "enabled",
            lambda current: {"enabled": not current.enabled},
        )

    def update_rollout(
        self,
        actor: str,
        feature_id: UUID,
        percentage: int,
        expected_version: Optional[int] = None,
    ) -> FeatureRecord:
        percentage = _validate_percentage(percentage)
        return self._mutate(
            actor,
            feature_id,
            expected_version,
            lambda _: "rollout_updated",
            lambda _: {"rollout_percentage": percentage},
        )

    def update_config(
        self,
        actor: str,
        feature_id: UUID,
        config_patch: Dict[str, Any],
        expected_version: Optional[int] = None,
    ) -> FeatureRecord:
        """Merge ``config_patch`` into the config: new keys added, existing keys overwritten."""
        patch = to_config(config_patch)
        return self._mutate(
            actor,
            feature_id,
            expected_version,
            lambda _: "config_updated",
            lambda current: {"config": {**current.config, **patch}},
        )

    def delete(self, actor: str, feature_id: UUID, expected_version: Optional[int] = None) -> FeatureRecord:
        """Retire the feature. Retiring an already retired feature is a no-op."""
        with self.store.transaction() as tx:
            self.authorization.authorize(actor, MANAGE, tx)
            current = self._load(tx, feature_id)
            check_expected_version("Feature", current, expected_version)
            if current.retired:
                return current
            now = utcnow()
            updated = evolve(
                current,
                retired=True,
                retired_at=now,
                updated_by=actor,
                updated_at=now,
                version=current.version + 1,
            )
            tx.put_feature(updated, current.version)
            entry = self.audit.record(tx, current.id, "feature", "retired", actor, diff(current, updated))
        self.audit.committed(entry)
        return updated
