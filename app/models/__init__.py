import importlib

from app.models.branch_transfer import BranchTransfer
from app.models.cascade_lock import CascadeLock
from app.models.closing_stock import ClosingStock
from app.models.item import Item
from app.models.opening_stock import OpeningStock
from app.models.organization import Branch, Organization
from app.models.profile import Profile
from app.models.restocking import Restocking
from app.models.sale import Sale
from app.models.waste_spoilage import WasteSpoilage


def import_all_models() -> None:
    for module_name in (
        "app.models.branch_transfer",
        "app.models.cascade_lock",
        "app.models.closing_stock",
        "app.models.item",
        "app.models.opening_stock",
        "app.models.organization",
        "app.models.profile",
        "app.models.restocking",
        "app.models.sale",
        "app.models.waste_spoilage",
    ):
        importlib.import_module(module_name)


__all__ = [
    "Branch",
    "BranchTransfer",
    "CascadeLock",
    "ClosingStock",
    "Item",
    "OpeningStock",
    "Organization",
    "Profile",
    "Restocking",
    "Sale",
    "WasteSpoilage",
    "import_all_models",
]
