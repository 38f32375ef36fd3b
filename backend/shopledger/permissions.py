"""
Role and Permission Definitions

WHY: Two fixed roles with explicit capability sets. Routes check a
permission code, never the role name, so capabilities can move between
roles without touching route code.

DESIGN PRINCIPLES:
- Permissions are granular (one action per permission)
- Customers get only self-service capabilities
- Manager has all permissions
"""


class Role:
    """User roles."""
    MANAGER = "MANAGER"
    CUSTOMER = "CUSTOMER"


VALID_ROLES = (Role.MANAGER, Role.CUSTOMER)


class PermissionCategory:
    """Permission categories for organization."""
    CATALOG = "CATALOG"
    ORDERS = "ORDERS"
    LEDGER = "LEDGER"
    NOTIFICATIONS = "NOTIFICATIONS"
    DASHBOARD = "DASHBOARD"


# Each permission is defined as: (code, name, description, category)
PERMISSION_DEFINITIONS = [
    # CATALOG
    ("MANAGE_PRODUCTS", "Manage Products", "Create, edit, discount and deactivate products", PermissionCategory.CATALOG),
    ("VIEW_INVENTORY", "View Inventory", "View low-stock and inactive products", PermissionCategory.CATALOG),

    # ORDERS
    ("PLACE_ORDER", "Place Order", "Place an order for yourself", PermissionCategory.ORDERS),
    ("BILL_CUSTOMER", "Bill Customer", "Place an order on behalf of another user", PermissionCategory.ORDERS),
    ("VIEW_ALL_ORDERS", "View All Orders", "View every customer's orders", PermissionCategory.ORDERS),

    # LEDGER
    ("RECORD_OWN_PAYMENT", "Record Own Payment", "Pay down your own dues", PermissionCategory.LEDGER),
    ("RECORD_CUSTOMER_PAYMENT", "Record Customer Payment", "Record a payment for another user", PermissionCategory.LEDGER),
    ("VIEW_DUES", "View Dues", "View customers with outstanding dues and their ledgers", PermissionCategory.LEDGER),
    ("RECONCILE_LEDGER", "Reconcile Ledger", "Compare cached dues against the ledger", PermissionCategory.LEDGER),

    # NOTIFICATIONS
    ("SEND_REMINDERS", "Send Reminders", "Send dues reminders and broadcasts", PermissionCategory.NOTIFICATIONS),

    # DASHBOARD
    ("VIEW_MANAGER_DASHBOARD", "View Manager Dashboard", "Store-wide sales and dues rollups", PermissionCategory.DASHBOARD),
    ("VIEW_OWN_DASHBOARD", "View Own Dashboard", "Own order and dues summary", PermissionCategory.DASHBOARD),
]

ALL_PERMISSION_CODES = frozenset(code for code, _, _, _ in PERMISSION_DEFINITIONS)

ROLE_PERMISSIONS = {
    Role.MANAGER: ALL_PERMISSION_CODES,
    Role.CUSTOMER: frozenset({
        "PLACE_ORDER",
        "RECORD_OWN_PAYMENT",
        "VIEW_OWN_DASHBOARD",
    }),
}


def permissions_for_role(role: str) -> frozenset:
    """Unknown roles get nothing (fail closed)."""
    return ROLE_PERMISSIONS.get(role, frozenset())


def has_permission(user, permission_code: str) -> bool:
    return permission_code in permissions_for_role(user.role)
