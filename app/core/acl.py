"""
Access-control catalog and runtime settings.

The catalog lists the roles and system permissions installed by
``scripts/seed_permissions.py``. ``get_acl_settings()`` exposes the parts the
permission core consults at runtime: the super-admin role name, the reserved
permission names and the permission display names used in error messages.
"""
from functools import lru_cache
from typing import Dict, FrozenSet, Optional

from pydantic import BaseModel, ConfigDict, Field

from app.core import config


# (name, display_name, description) - every entry is seeded with is_system=True
DEFAULT_PERMISSIONS = [
    # Users
    ("user_view", "View Users", "Can view users"),
    ("user_create", "Create Users", "Can create new users"),
    ("user_update", "Update Users", "Can update existing users"),
    ("user_delete", "Delete Users", "Can move users to the trash"),
    ("user_restore", "Restore Users", "Can restore trashed users"),
    ("user_force_delete", "Permanently Delete Users", "Can purge users for good"),
    ("change_status", "Change Status", "Can change user status"),

    # User grants
    ("assign_role", "Assign Roles", "Can assign roles to users"),
    ("remove_role", "Remove Roles", "Can remove roles from users"),
    ("give_permission", "Give Permissions", "Can give permissions to users"),
    ("revoke_permission", "Revoke Permissions", "Can revoke permissions from users"),

    # Roles
    ("role_view", "View Roles", "Can view roles"),
    ("role_create", "Create Roles", "Can create new roles"),
    ("role_update", "Update Roles", "Can update existing roles"),
    ("role_delete", "Delete Roles", "Can delete roles"),

    # Permissions
    ("permission_view", "View Permissions", "Can view permissions"),
    ("permission_create", "Create Permissions", "Can create new permissions"),
    ("permission_update", "Update Permissions", "Can update existing permissions"),
    ("permission_delete", "Delete Permissions", "Can delete permissions"),

    # Audit
    ("audit_log_view", "View Audit Logs", "Can view the audit trail"),

    # Blog
    ("blog_view", "View Blog Posts", "Can view blog posts"),
    ("blog_create", "Create Blog Posts", "Can create new blog posts"),
    ("blog_update", "Update Blog Posts", "Can update existing blog posts"),
    ("blog_delete", "Delete Blog Posts", "Can delete blog posts"),
    ("blog_restore", "Restore Blog Posts", "Can restore deleted blog posts"),
]


DEFAULT_SUPER_ADMIN_ROLE = "super-admin"

DEFAULT_ROLES = {
    DEFAULT_SUPER_ADMIN_ROLE: {
        "display_name": "Super Admin",
        "description": "Super Administrator with all permissions",
        "permissions": "ALL",
    },
    "admin": {
        "display_name": "Administrator",
        "description": "Administrator with most permissions",
        "permissions": [
            "user_view", "user_create", "user_update", "user_delete", "user_restore",
            "role_view", "role_create", "role_update", "role_delete",
            "permission_view",
        ],
    },
    "manager": {
        "display_name": "Manager",
        "description": "Manager with limited permissions",
        "permissions": ["user_view", "user_create", "user_update", "role_view"],
    },
    "user": {
        "display_name": "User",
        "description": "Regular user with basic permissions",
        "permissions": ["user_view"],
    },
}


RESERVED_PERMISSIONS = frozenset({
    "user_view", "user_create", "user_update", "user_delete", "user_restore",
    "role_view", "role_create", "role_update", "role_delete",
    "permission_view", "permission_create", "permission_update", "permission_delete",
    "career_view", "career_create", "career_update", "career_delete", "career_restore",
    "home_page_view", "home_page_create", "home_page_update", "home_page_delete", "home_page_restore",
    "contact_view", "contact_update",
    "message_view", "message_respond", "message_update", "message_archive",
    "message_delete", "message_restore",
    "page_view", "page_create", "page_update", "page_delete", "page_restore", "page_publish",
    "page_image_view", "page_image_create", "page_image_update", "page_image_delete",
    "page_image_restore",
})


class AclSettings(BaseModel):
    """Runtime access-control configuration."""
    model_config = ConfigDict(frozen=True)

    super_admin_role: str = DEFAULT_SUPER_ADMIN_ROLE
    reserved_permissions: FrozenSet[str] = Field(default_factory=frozenset)
    permission_display_names: Dict[str, str] = Field(default_factory=dict)

    def is_reserved_permission(self, name: str) -> bool:
        return name in self.reserved_permissions

    def permission_label(self, name: str) -> str:
        """Human-readable label for a permission, falling back to its raw name."""
        return self.permission_display_names.get(name) or name


def _parse_reserved(raw: Optional[str]) -> FrozenSet[str]:
    if raw is None:
        return RESERVED_PERMISSIONS
    return frozenset(part.strip() for part in raw.split(",") if part.strip())


@lru_cache
def get_acl_settings() -> AclSettings:
    """Build the settings from the environment and the default catalog."""
    return AclSettings(
        super_admin_role=config.ACL_SUPER_ADMIN_ROLE,
        reserved_permissions=_parse_reserved(config.ACL_RESERVED_PERMISSIONS),
        permission_display_names={name: display for name, display, _ in DEFAULT_PERMISSIONS},
    )
