# Import models here so Alembic can discover metadata.
from tenantgate.models.identity import Identity  # noqa: F401
from tenantgate.models.tenant import Tenant  # noqa: F401
from tenantgate.models.branch import Branch  # noqa: F401
from tenantgate.models.membership import Membership  # noqa: F401

# RBAC
from tenantgate.models.menu_node import MenuNode  # noqa: F401
from tenantgate.models.role import Role, RoleType  # noqa: F401
from tenantgate.models.role_permission import RolePermission  # noqa: F401
from tenantgate.models.role_assignment import RoleAssignment  # noqa: F401

# Sessions and emailed tokens
from tenantgate.models.session import GlobalSession, TenantSession  # noqa: F401
from tenantgate.models.auth_token import AuthToken  # noqa: F401

# Onboarding collaborators
from tenantgate.models.subscription import SubscriptionPlan, TenantSubscription  # noqa: F401
