from .auth import User, Role, UserRole, Permission, RolePermission, SessionToken
from .ledger import Category, Transaction, Approval, TransactionSequence, Budget
from .periods import CashPeriod, PeriodGuard
from .notifications import Notification

__all__ = [
    'User', 'Role', 'UserRole', 'Permission', 'RolePermission', 'SessionToken',
    'Category', 'Transaction', 'Approval', 'TransactionSequence', 'Budget',
    'CashPeriod', 'PeriodGuard',
    'Notification',
]
