"""
Seed script to populate default permissions and roles.

Run this script after database initialization to create:
- Default system permissions
- Default system roles
- Initial role-permission assignments

Existing rows are left untouched, so the script can be run repeatedly.

Usage:
    python -m scripts.seed_permissions
"""
import asyncio
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.acl import DEFAULT_PERMISSIONS, DEFAULT_ROLES, DEFAULT_SUPER_ADMIN_ROLE, get_acl_settings
from app.core.database.engine import get_db, init_db
from app.features.permissions.models import Permission, Role
from app.utils import get_logger


log = get_logger(__name__)


async def seed_permissions(db: AsyncSession) -> dict[str, Permission]:
    """
    Create default permissions, all flagged as system permissions.

    Returns:
        Dictionary mapping permission names to Permission objects
    """
    log.info("Creating default permissions...")
    permissions_map = {}

    for name, display_name, description in DEFAULT_PERMISSIONS:
        stmt = select(Permission).where(Permission.name == name)
        result = await db.execute(stmt)
        existing = result.scalars().first()

        if existing:
            log.debug(f"Permission '{name}' already exists, skipping")
            permissions_map[name] = existing
            continue

        permission = Permission(
            name=name,
            display_name=display_name,
            description=description,
            is_system=True,
        )
        db.add(permission)
        permissions_map[name] = permission
        log.info(f"Created permission: {name}")

    await db.commit()

    # Refresh all permissions to get server-side defaults
    for perm in permissions_map.values():
        await db.refresh(perm)

    log.info(f"Seeded {len(permissions_map)} permissions")
    return permissions_map


async def seed_roles(db: AsyncSession, permissions_map: dict[str, Permission]):
    """
    Create default roles and assign permissions.

    The super admin role is created under the configured name, which may
    differ from the catalog default.

    Args:
        db: Database session
        permissions_map: Dictionary of permission name -> Permission object
    """
    log.info("Creating default roles...")
    super_admin_role = get_acl_settings().super_admin_role

    for role_name, role_config in DEFAULT_ROLES.items():
        if role_name == DEFAULT_SUPER_ADMIN_ROLE:
            role_name = super_admin_role

        stmt = select(Role).where(Role.name == role_name)
        result = await db.execute(stmt)
        existing = result.scalars().first()

        if existing:
            log.debug(f"Role '{role_name}' already exists, skipping")
            continue

        role = Role(
            name=role_name,
            display_name=role_config["display_name"],
            description=role_config["description"],
        )

        if role_config["permissions"] == "ALL":
            role.permissions = list(permissions_map.values())
            log.info(f"Created role '{role_name}' with ALL permissions")
        else:
            role_permissions = []
            for perm_name in role_config["permissions"]:
                if perm_name in permissions_map:
                    role_permissions.append(permissions_map[perm_name])
                else:
                    log.warning(f"Permission '{perm_name}' not found for role '{role_name}'")

            role.permissions = role_permissions
            log.info(f"Created role '{role_name}' with {len(role_permissions)} permissions")

        db.add(role)

    await db.commit()
    log.info("Default roles created successfully")


async def main():
    """Main function to seed permissions and roles."""
    log.info("Starting permission seeding...")

    log.info("Initializing database tables...")
    await init_db()

    async for db in get_db():
        try:
            permissions_map = await seed_permissions(db)
            await seed_roles(db, permissions_map)

            log.info("Permission seeding completed successfully!")
            for role_name, role_config in DEFAULT_ROLES.items():
                log.info(f"  - {role_name}: {role_config['description']}")

        except Exception as e:
            log.error(f"Error seeding permissions: {e}", exc_info=True)
            await db.rollback()
            raise

        break  # Only use first session


if __name__ == "__main__":
    asyncio.run(main())
