# Overview: Default order-form field configuration restored by a reset.

from .models import ORDER_STATUSES


DEFAULT_FIELD_CONFIGS = [
    {
        "name": "item_number",
        "label": "Item Number",
        "type": "text",
        "required": True,
        "editable_by": "admin",
        "visible_to": "both",
        "placeholder": "e.g., 68240575AB(iron)",
        "position": 1,
    },
    {
        "name": "product_name",
        "label": "Product Name",
        "type": "text",
        "required": True,
        "editable_by": "admin",
        "visible_to": "both",
        "placeholder": "Product description",
        "position": 2,
    },
    {
        "name": "quantity",
        "label": "Quantity",
        "type": "number",
        "required": True,
        "editable_by": "admin",
        "visible_to": "both",
        "validation": {"min": 1},
        "position": 3,
    },
    {
        "name": "unit_price_cents",
        "label": "Price",
        "type": "number",
        "editable_by": "admin",
        "visible_to": "admin",
        "validation": {"min": 0},
        "position": 4,
    },
    {
        "name": "vendor_id",
        "label": "Vendor",
        "type": "select",
        "required": True,
        "editable_by": "admin",
        "visible_to": "both",
        "position": 5,
    },
    {
        "name": "confirmation_date",
        "label": "Confirmation Date",
        "type": "text",
        "editable_by": "admin",
        "visible_to": "both",
        "placeholder": "e.g., Dec.20th, Nov.08",
        "position": 6,
    },
    {
        "name": "estimated_date_ready",
        "label": "Estimated Date to be Ready",
        "type": "date",
        "editable_by": "vendor",
        "visible_to": "both",
        "placeholder": "Vendor will fill this",
        "position": 7,
    },
    {
        "name": "invoice_number",
        "label": "Invoice Number",
        "type": "text",
        "editable_by": "vendor",
        "visible_to": "both",
        "placeholder": "e.g., MS002",
        "position": 8,
    },
    {
        "name": "transfer_amount_cents",
        "label": "Transfer Amount",
        "type": "number",
        "editable_by": "vendor",
        "visible_to": "both",
        "validation": {"min": 0},
        "position": 9,
    },
    {
        "name": "shipping_date_to_agent",
        "label": "Shipping Date to Agent",
        "type": "date",
        "editable_by": "vendor",
        "visible_to": "both",
        "position": 10,
    },
    {
        "name": "shipping_date_to_destination",
        "label": "Shipping Date to Destination",
        "type": "date",
        "editable_by": "vendor",
        "visible_to": "both",
        "position": 11,
    },
    {
        "name": "arrival_date",
        "label": "Arrival Date",
        "type": "date",
        "editable_by": "vendor",
        "visible_to": "both",
        "position": 12,
    },
    {
        "name": "notes",
        "label": "Notes",
        "type": "textarea",
        "editable_by": "both",
        "visible_to": "both",
        "placeholder": "Additional information",
        "position": 13,
    },
    {
        "name": "status",
        "label": "Status",
        "type": "select",
        "editable_by": "admin",
        "visible_to": "both",
        "options": [{"value": s, "label": s.capitalize()} for s in ORDER_STATUSES],
        "position": 14,
    },
]
