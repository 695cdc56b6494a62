"""
Permission System Constants and Definitions

WHY: Centralized permission definitions ensure consistency across the application.
All permission codes and role mappings defined here.

DESIGN PRINCIPLES:
- Permissions are granular (one action per permission)
- Categories group related permissions for UI display
- Review requirement is a role flag, not a permission: a requester can hold
  CREATE_TRANSACTIONS and still need a second pair of eyes
- Admin has all permissions by default
"""

# =============================================================================
# PERMISSION CATEGORIES
# =============================================================================

class PermissionCategory:
    """Permission categories for organization."""
    TRANSACTIONS = "TRANSACTIONS"
    CASH = "CASH"
    SYSTEM = "SYSTEM"


# =============================================================================
# PERMISSION CODES
# =============================================================================

VIEW_TRANSACTIONS = "VIEW_TRANSACTIONS"
CREATE_TRANSACTIONS = "CREATE_TRANSACTIONS"
EDIT_TRANSACTIONS = "EDIT_TRANSACTIONS"
DELETE_TRANSACTIONS = "DELETE_TRANSACTIONS"
APPROVE_TRANSACTIONS = "APPROVE_TRANSACTIONS"
MANAGE_TRANSACTIONS = "MANAGE_TRANSACTIONS"
VIEW_BUDGETS = "VIEW_BUDGETS"
SYSTEM_ADMIN = "SYSTEM_ADMIN"


# Each permission is defined as: (code, name, description, category)
PERMISSION_DEFINITIONS = [
    (
        VIEW_TRANSACTIONS,
        "View Transactions",
        "View transactions, balances and cash periods",
        PermissionCategory.TRANSACTIONS
    ),
    (
        CREATE_TRANSACTIONS,
        "Create Transactions",
        "Record cash-in and cash-out movements",
        PermissionCategory.TRANSACTIONS
    ),
    (
        EDIT_TRANSACTIONS,
        "Edit Transactions",
        "Edit pending transactions",
        PermissionCategory.TRANSACTIONS
    ),
    (
        DELETE_TRANSACTIONS,
        "Delete Transactions",
        "Delete pending transactions (soft delete)",
        PermissionCategory.TRANSACTIONS
    ),
    (
        APPROVE_TRANSACTIONS,
        "Approve Transactions",
        "Approve or reject transactions submitted by other users",
        PermissionCategory.TRANSACTIONS
    ),
    (
        MANAGE_TRANSACTIONS,
        "Manage Cash Periods",
        "Open, reconcile, close and delete cash balance periods",
        PermissionCategory.CASH
    ),
    (
        VIEW_BUDGETS,
        "View Budgets",
        "View category budgets and budget alerts",
        PermissionCategory.CASH
    ),
    (
        SYSTEM_ADMIN,
        "System Administration",
        "Full system access; acts on other users' transactions (admin only)",
        PermissionCategory.SYSTEM
    ),
]


# =============================================================================
# DEFAULT ROLES
# =============================================================================

# (name, description, requires_review)
DEFAULT_ROLES = [
    ("admin", "Full system access", False),
    ("accountant", "Reviews requests and reconciles the fund", False),
    ("cashier", "Keeps the fund; records movements directly", False),
    ("requester", "Submits cash requests for review", True),
]


# WHY these mappings:
# - ADMIN: Full access to everything (trust model)
# - ACCOUNTANT: Approvals and period management
# - CASHIER: Records and manages movements; approves requests
# - REQUESTER: Creates transactions only; every one goes to review

DEFAULT_ROLE_PERMISSIONS = {
    "admin": [code for code, _, _, _ in PERMISSION_DEFINITIONS],

    "accountant": [
        VIEW_TRANSACTIONS,
        CREATE_TRANSACTIONS,
        EDIT_TRANSACTIONS,
        DELETE_TRANSACTIONS,
        APPROVE_TRANSACTIONS,
        MANAGE_TRANSACTIONS,
        VIEW_BUDGETS,
    ],

    "cashier": [
        VIEW_TRANSACTIONS,
        CREATE_TRANSACTIONS,
        EDIT_TRANSACTIONS,
        DELETE_TRANSACTIONS,
        APPROVE_TRANSACTIONS,
        MANAGE_TRANSACTIONS,
    ],

    "requester": [
        VIEW_TRANSACTIONS,
        CREATE_TRANSACTIONS,
    ],
}


# =============================================================================
# PERMISSION HELPERS
# =============================================================================

def get_all_permission_codes():
    """Get list of all permission codes."""
    return [perm[0] for perm in PERMISSION_DEFINITIONS]


def validate_permission_code(code):
    """Check if a permission code is valid."""
    return code in get_all_permission_codes()
