from .inventory import Store, Product, StockMovement
from .documents import InventoryTransfer
from .mirror import MirrorDocument, MirrorOutbox

__all__ = [
    'Store', 'Product', 'StockMovement',
    'InventoryTransfer',
    'MirrorDocument', 'MirrorOutbox',
]
