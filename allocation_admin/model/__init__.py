# ------ allocation_admin/model/__init__.py ------

from .user import User
from .allocation import Allocation, AllocationProduct
from .tier import AllocationTier, TierOverride, TierProductOverride, CustomerTier

__all__ = [
    "User",
    "Allocation",
    "AllocationProduct",
    "AllocationTier",
    "TierOverride",
    "TierProductOverride",
    "CustomerTier",
]
