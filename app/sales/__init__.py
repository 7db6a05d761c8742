"""
Sales app: customers and orders.

Only the parts of the sales domain the financial core depends on live here:
- Customer: credit limit and the cached available credit
- Order: order total and payment status
- OrderPlacementService: the credit check run before accepting an order
"""
