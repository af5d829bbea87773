ROLE_SUPERADMIN = "superadmin"
ROLE_TENANT_ADMIN = "tenant_admin"
ROLE_ADMIN = "admin"
ROLE_BRANCH_MANAGER = "branch_manager"
ROLE_CONTROLLER = "controller"
ROLE_STAFF = "staff"

UNSCOPED_ROLES = (ROLE_SUPERADMIN, ROLE_TENANT_ADMIN, ROLE_ADMIN)
STOCK_ADMIN_ROLES = UNSCOPED_ROLES + (ROLE_BRANCH_MANAGER,)

SOURCE_PREVIOUS_CLOSING = "previous_closing_stock"
SOURCE_MANUAL_ENTRY = "manual_entry"
SOURCE_ZERO = "zero"

PAYMENT_MODES = ("cash", "transfer", "card")

SEED_INSERT_BATCH_SIZE = 1000
