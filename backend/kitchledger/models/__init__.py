from .tenancy import Tenant, Branch
from .inventory import InventoryBatch, InventoryMovement, StockLevel
from .recipes import Recipe, RecipeIngredient, ProductionRun
from .waste import WasteLog, WasteCostLine
from .approvals import ApprovalRequest

__all__ = [
    'Tenant', 'Branch',
    'InventoryBatch', 'InventoryMovement', 'StockLevel',
    'Recipe', 'RecipeIngredient', 'ProductionRun',
    'WasteLog', 'WasteCostLine',
    'ApprovalRequest',
]
