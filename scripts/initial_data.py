"""Seed the standard admin roles and the first super admin."""
import logging

from control_plane.config import settings
from control_plane.db.session import SessionLocal
from control_plane.repositories.sql import SqlAlchemyStore
from control_plane.services.audit_log import AuditLog
from control_plane.services.bootstrap import bootstrap_super_admin, seed_default_roles

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)


def init_db() -> None:
    store = SqlAlchemyStore(SessionLocal)
    audit = AuditLog(store)

    super_admin_ref = settings.FIRST_SUPER_ADMIN_REF
    if super_admin_ref == "admin@example.com":
        logger.warning(
            "Using default super admin 'admin@example.com'. "
            "Set FIRST_SUPER_ADMIN_REF in .env for production."
        )

    created = seed_default_roles(store, audit)
    logger.info("Created roles: %s", ", ".join(r.name for r in created) or "none")

    if store.count_admin_users() == 0:
        logger.info("Assigning first super admin: %s", super_admin_ref)
        bootstrap_super_admin(store, audit, super_admin_ref)
    else:
        logger.info("Admins already exist, skipping super admin bootstrap")


def main() -> None:
    logger.info("Creating initial data")
    init_db()
    logger.info("Initial data created")


if __name__ == "__main__":
    main()
