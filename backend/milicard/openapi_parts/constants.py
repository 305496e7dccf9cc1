"""Registry driving the OpenAPI spec builder. Output order follows these lists."""
from typing import Dict, List, Tuple

BASE_PREFIX = "/bases/{base_id}"

# (SchemaName, path prefix, collection, id param, read permission)
ENTITIES: List[Tuple[str, str, str, str, str]] = [
    ("OperatingBase", "", "bases", "base_id", "BASE.READ"),
    ("Goods", "", "goods", "goods_id", "GOODS.READ"),
    ("Category", "", "categories", "category_id", "GOODS.READ"),
    ("GoodsLocalSetting", BASE_PREFIX, "goods-settings", "setting_id", "GOODS.READ"),
    ("Location", BASE_PREFIX, "locations", "location_id", "LOC.READ"),
    ("Personnel", BASE_PREFIX, "personnel", "person_id", "STAFF.READ"),
    ("Supplier", BASE_PREFIX, "suppliers", "supplier_id", "SUP.READ"),
    ("PurchaseOrder", BASE_PREFIX, "purchase-orders", "po_id", "PO.READ"),
    ("Arrival", BASE_PREFIX, "arrivals", "arrival_id", "ARR.READ"),
    ("TransferOrder", BASE_PREFIX, "transfers", "transfer_id", "INV.READ"),
    ("StockOut", BASE_PREFIX, "stock-outs", "so_id", "SO.READ"),
    ("Point", BASE_PREFIX, "points", "point_id", "POINT.READ"),
    ("PointOrder", BASE_PREFIX, "point-orders", "order_id", "PTO.READ"),
    ("PointVisit", BASE_PREFIX, "point-visits", "visit_id", "VISIT.READ"),
    ("Customer", BASE_PREFIX, "customers", "customer_id", "SALES.READ"),
    ("DistributionOrder", BASE_PREFIX, "distribution-orders", "order_id", "SALES.READ"),
    ("CurrencyRate", "/settings", "currency-rates", "rate_id", "FX.READ"),
    ("GlobalSetting", "/settings", "global-settings", "setting_id", "SET.READ"),
    ("DataPermissionRule", "/iam", "data-permission-rules", "rule_id", "ADMIN.DATA_PERM.MANAGE"),
]

# State-changing POST endpoints below the single resource path.
ACTION_REGISTRY: Dict[str, List[Dict[str, str]]] = {
    "PurchaseOrder": [
        {"action": "close", "summary": "Close purchase order", "permission": "PO.CLOSE"},
        {"action": "cancel", "summary": "Cancel purchase order", "permission": "PO.CLOSE"},
        {"action": "payments", "summary": "Record purchase payment", "permission": "PO.PAY"},
    ],
    "PointOrder": [
        {"action": "confirm", "summary": "Confirm point order", "permission": "PTO.CONFIRM"},
        {"action": "ship", "summary": "Ship point order", "permission": "PTO.SHIP"},
        {"action": "deliver", "summary": "Deliver point order", "permission": "PTO.DELIVER"},
        {"action": "complete", "summary": "Complete point order", "permission": "PTO.COMPLETE"},
        {"action": "cancel", "summary": "Cancel point order", "permission": "PTO.CANCEL"},
        {"action": "payments", "summary": "Record point order payment", "permission": "PTO.PAY"},
    ],
    "DistributionOrder": [
        {"action": "approve", "summary": "Approve distribution order", "permission": "SALES.APPROVE"},
        {"action": "fulfill", "summary": "Fulfill distribution order", "permission": "SALES.FULFILL"},
        {"action": "complete", "summary": "Complete distribution order", "permission": "SALES.COMPLETE"},
        {"action": "cancel", "summary": "Cancel distribution order", "permission": "SALES.CANCEL"},
        {"action": "payments", "summary": "Record distribution order payment", "permission": "SALES.PAY"},
    ],
}

# Lifecycle metadata published as x-transitions on the schema.
TRANSITIONS: Dict[str, List[str]] = {
    "PurchaseOrder": ["OPEN", "CLOSED", "CANCELLED"],
    "PointOrder": ["PENDING", "CONFIRMED", "SHIPPING", "DELIVERED", "COMPLETED", "CANCELLED"],
    "DistributionOrder": ["NEW", "APPROVED", "FULFILLED", "COMPLETED", "CANCELLED"],
}

SORT_DETAILS: Dict[str, str] = {
    "OperatingBase": "name,code,updated_at,id",
    "Goods": "name,code,category_id,retail_price_cents,updated_at,id",
    "Category": "",
    "GoodsLocalSetting": "",
    "Location": "name,code,type,updated_at,id",
    "Personnel": "name,code,role,updated_at,id",
    "Supplier": "name,code,updated_at,id",
    "PurchaseOrder": "purchase_date,status,total_amount_cents,updated_at,id",
    "Arrival": "arrival_date,created_at,id",
    "TransferOrder": "transfer_date,created_at,id",
    "StockOut": "out_date,type,total_pieces,created_at,id",
    "Point": "name,code,created_at,updated_at,id",
    "PointOrder": "order_date,status,total_amount_cents,updated_at,id",
    "PointVisit": "visit_date,created_at,id",
    "Customer": "name,code,updated_at,id",
    "DistributionOrder": "order_date,status,total_amount_cents,updated_at,id",
    "CurrencyRate": "currency_code,currency_name,updated_at,id",
    "GlobalSetting": "",
    "DataPermissionRule": "role_id,resource,id",
}


def sort_param_name(schema_name: str) -> str:
    return f"Sort{schema_name}Param"


__all__ = [
    "BASE_PREFIX",
    "ENTITIES",
    "ACTION_REGISTRY",
    "TRANSITIONS",
    "SORT_DETAILS",
    "sort_param_name",
]
