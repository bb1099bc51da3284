from .inventory import StockRecord, StockLedgerEntry, LowStockThreshold
from .settings import SystemSetting
from .catalog import BomLine, ProductionRoute
from .orders import (
    Order,
    CustomerOrder,
    WarehouseOrder,
    ProductionOrder,
    ProductionControlOrder,
    AssemblyControlOrder,
    WorkstationOrder,
    FinalAssemblyOrder,
    SupplyOrder,
    OrderLine,
    OrderSequence,
)
from .events import OrderAudit, PipelineEvent

__all__ = [
    'StockRecord', 'StockLedgerEntry', 'LowStockThreshold',
    'SystemSetting',
    'BomLine', 'ProductionRoute',
    'Order', 'CustomerOrder', 'WarehouseOrder', 'ProductionOrder',
    'ProductionControlOrder', 'AssemblyControlOrder', 'WorkstationOrder',
    'FinalAssemblyOrder', 'SupplyOrder', 'OrderLine', 'OrderSequence',
    'OrderAudit', 'PipelineEvent',
]
