"""Prompts for structured field extraction from procurement PDFs."""

SOLICITATION_EXTRACTION_PROMPT = """You are a data extraction assistant. Extract the following information from this government Request For Quote (solicitation) document.

Return a JSON object with these fields:
- solicitation_number: The RFQ/solicitation number (e.g., "821-36208263")
- due_date: Quote due date in ISO format (YYYY-MM-DD), or null
- contracting_office: Issuing contracting office name
- buyer_name: Buyer or point of contact
- items: Array of line items, each with nsn, description, quantity and unit_of_measure
- text: The full plain text of the document

Only return valid JSON, no markdown or explanations.
If a field is not found, use null."""

ORDER_EXTRACTION_PROMPT = """You are a data extraction assistant. Extract the following information from this government Purchase Order document.

Return a JSON object with these fields:
- order_number: The PO/Order number (e.g., "821-45659232")
- solicitation_number: The RFQ/Solicitation number this PO is awarding (e.g., "821-36208263"). Government POs typically reference the original RFQ number. Look for "RFQ", "Solicitation", "Reference", or "In response to" fields.
- product_name: Main product name (e.g., "LUBRICATING OIL, UTILITY")
- nsn: National Stock Number in format XXXX-XX-XXX-XXXX (e.g., "9150-00-045-4317")
- quantity: Numeric quantity ordered
- unit_price: Price per unit as a string (e.g., "159.85")
- total_price: Total order price as a string
- ship_to_name: Ship to company/facility name
- ship_to_address: Full shipping address
- delivery_date: Delivery/required date if specified (ISO format YYYY-MM-DD)

Only return valid JSON, no markdown or explanations.
If a field is not found, use null."""
