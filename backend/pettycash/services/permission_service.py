# Overview: Service-layer operations for permission; encapsulates business logic and database work.

"""
Permission Checking and the Authorization Policy

WHY: The ledger core never inspects roles directly. It asks an
authorization policy two questions:
- can(user, code): does the user hold a capability?
- is_review_required(user): do the user's transactions need review?

The default policy answers both from the roles/permissions tables. Tests
and embedding applications can install their own object with the same
methods on app.extensions[POLICY_EXTENSION].

DESIGN PRINCIPLES:
- Fail closed: Deny by default, require explicit permission grant
- Inactive users hold no permissions
"""

from flask import current_app, has_app_context

from ..extensions import db, POLICY_EXTENSION
from ..errors import UnauthorizedError
from ..models import User, UserRole, Role, RolePermission, Permission
from ..permissions import PERMISSION_DEFINITIONS, DEFAULT_ROLES, DEFAULT_ROLE_PERMISSIONS, SYSTEM_ADMIN


def get_user_permissions(user_id: int) -> set[str]:
    """
    Get all permission codes for a user.

    Returns set of permission codes (e.g., {"CREATE_TRANSACTIONS", "VIEW_TRANSACTIONS"}).
    """
    rows = (
        db.session.query(Permission.code)
        .join(RolePermission, RolePermission.permission_id == Permission.id)
        .join(UserRole, UserRole.role_id == RolePermission.role_id)
        .join(User, User.id == UserRole.user_id)
        .filter(UserRole.user_id == user_id, User.is_active.is_(True))
        .all()
    )
    return {r[0] for r in rows}


def user_has_permission(user_id: int, permission_code: str) -> bool:
    """Check if user has a specific permission."""
    return permission_code in get_user_permissions(user_id)


def get_user_role_names(user_id: int) -> list[str]:
    """Get list of role names for a user."""
    rows = (
        db.session.query(Role.name)
        .join(UserRole, UserRole.role_id == Role.id)
        .filter(UserRole.user_id == user_id)
        .order_by(Role.name)
        .all()
    )
    return [r[0] for r in rows]


def get_users_with_permission(permission_code: str, exclude_user_id: int | None = None) -> list[User]:
    """Active users holding a permission through any of their roles."""
    query = (
        db.session.query(User)
        .join(UserRole, UserRole.user_id == User.id)
        .join(RolePermission, RolePermission.role_id == UserRole.role_id)
        .join(Permission, Permission.id == RolePermission.permission_id)
        .filter(Permission.code == permission_code, User.is_active.is_(True))
    )
    if exclude_user_id is not None:
        query = query.filter(User.id != exclude_user_id)
    return query.distinct().order_by(User.id).all()


class RolePermissionPolicy:
    """Authorization policy backed by the roles/permissions tables."""

    def can(self, user: User, permission_code: str) -> bool:
        if user is None or not user.is_active:
            return False
        return user_has_permission(user.id, permission_code)

    def is_review_required(self, user: User) -> bool:
        """True when any of the user's roles is flagged requires_review."""
        return (
            db.session.query(Role.id)
            .join(UserRole, UserRole.role_id == Role.id)
            .filter(UserRole.user_id == user.id, Role.requires_review.is_(True))
            .first()
            is not None
        )

    def is_admin(self, user: User) -> bool:
        return self.can(user, SYSTEM_ADMIN)

    def reviewers(self, permission_code: str, exclude_user_id: int | None = None) -> list[User]:
        return get_users_with_permission(permission_code, exclude_user_id=exclude_user_id)


_default_policy = RolePermissionPolicy()


def get_policy():
    """Policy installed on the current app, or the role/permission default."""
    if has_app_context():
        return current_app.extensions.get(POLICY_EXTENSION, _default_policy)
    return _default_policy


def require_capability(user: User, permission_code: str, policy=None) -> None:
    """Raise UnauthorizedError unless the policy grants the capability."""
    policy = policy or get_policy()
    if not policy.can(user, permission_code):
        raise UnauthorizedError(
            f"Permission denied: {permission_code}",
            details={"required_permission": permission_code},
        )


# =============================================================================
# BOOTSTRAP
# =============================================================================

def create_default_roles() -> int:
    """Create standard roles if they don't exist. Idempotent."""
    created = 0
    for name, desc, requires_review in DEFAULT_ROLES:
        existing = db.session.query(Role).filter_by(name=name).first()
        if not existing:
            db.session.add(Role(name=name, description=desc, requires_review=requires_review))
            created += 1

    db.session.commit()
    return created


def initialize_permissions() -> int:
    """
    Initialize all permission definitions in database.

    Creates Permission records for all codes in PERMISSION_DEFINITIONS.
    Idempotent: Safe to run multiple times.
    """
    created_count = 0

    for code, name, description, category in PERMISSION_DEFINITIONS:
        existing = db.session.query(Permission).filter_by(code=code).first()

        if not existing:
            permission = Permission(
                code=code,
                name=name,
                description=description,
                category=category
            )
            db.session.add(permission)
            created_count += 1

    db.session.commit()
    return created_count


def assign_default_role_permissions() -> int:
    """
    Assign default permissions to roles based on DEFAULT_ROLE_PERMISSIONS.

    Idempotent: Safe to run multiple times (skips existing).
    """
    created_count = 0

    for role_name, permission_codes in DEFAULT_ROLE_PERMISSIONS.items():
        role = db.session.query(Role).filter_by(name=role_name).first()

        if not role:
            continue  # Role doesn't exist, skip

        for permission_code in permission_codes:
            permission = db.session.query(Permission).filter_by(code=permission_code).first()

            if not permission:
                continue

            existing = db.session.query(RolePermission).filter_by(
                role_id=role.id,
                permission_id=permission.id
            ).first()

            if not existing:
                db.session.add(RolePermission(role_id=role.id, permission_id=permission.id))
                created_count += 1

    db.session.commit()
    return created_count


def grant_permission_to_role(role_name: str, permission_code: str) -> RolePermission:
    """Grant a permission to a role."""
    role = db.session.query(Role).filter_by(name=role_name).first()
    if not role:
        raise ValueError(f"Role '{role_name}' not found")

    permission = db.session.query(Permission).filter_by(code=permission_code).first()
    if not permission:
        raise ValueError(f"Permission '{permission_code}' not found")

    existing = db.session.query(RolePermission).filter_by(
        role_id=role.id,
        permission_id=permission.id
    ).first()

    if existing:
        return existing  # Already granted

    role_permission = RolePermission(role_id=role.id, permission_id=permission.id)
    db.session.add(role_permission)
    db.session.commit()

    return role_permission


def revoke_permission_from_role(role_name: str, permission_code: str) -> bool:
    """Revoke a permission from a role."""
    role = db.session.query(Role).filter_by(name=role_name).first()
    if not role:
        raise ValueError(f"Role '{role_name}' not found")

    permission = db.session.query(Permission).filter_by(code=permission_code).first()
    if not permission:
        raise ValueError(f"Permission '{permission_code}' not found")

    role_permission = db.session.query(RolePermission).filter_by(
        role_id=role.id,
        permission_id=permission.id
    ).first()

    if role_permission:
        db.session.delete(role_permission)
        db.session.commit()
        return True

    return False  # Wasn't granted in the first place
