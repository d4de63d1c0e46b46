from typing import Dict, List

from core.wizard_state import (
    GOAL_INVENTORY,
    GOAL_NEW_PRODUCT,
    GOAL_PROMOTIONS,
    GOAL_REPLENISHMENT,
    SOURCE_CSV,
    SOURCE_EXCEL,
    SOURCE_SHEETS,
    SOURCE_SHOPIFY,
)


GOAL_DEFINITIONS: List[Dict[str, str]] = [
    {
        "code": GOAL_REPLENISHMENT,
        "label": "Replenishment",
        "description": "Keep shelves stocked by forecasting regular reorder quantities.",
    },
    {
        "code": GOAL_NEW_PRODUCT,
        "label": "New Product Launch",
        "description": "Estimate demand for items with little or no sales history.",
    },
    {
        "code": GOAL_PROMOTIONS,
        "label": "Promotions",
        "description": "Measure and plan the uplift from discounts and campaigns.",
    },
    {
        "code": GOAL_INVENTORY,
        "label": "Inventory Optimization",
        "description": "Balance safety stock against holding cost across the range.",
    },
]

SOURCE_DEFINITIONS: List[Dict[str, str]] = [
    {"code": SOURCE_SHEETS, "label": "Use Current Sheet Data"},
    {"code": SOURCE_SHOPIFY, "label": "Shopify"},
    {"code": SOURCE_CSV, "label": "CSV Upload"},
    {"code": SOURCE_EXCEL, "label": "Excel / Other Spreadsheet"},
]

TEMPLATE_COLUMNS: List[str] = [
    "product_id",
    "date",
    "sales_quantity",
    "price",
    "cost",
    "lead_time",
]
