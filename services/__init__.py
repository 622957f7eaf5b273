"""
Back-of-house services

- pricing_service: pure totals computation (subtotal, discount, tax, total)
- stock_service: stock reservation ledger over inventory records
- table_service: table state machine and best-fit assignment
- order_service: order lifecycle manager
- fulfillment_service: outer contract returning structured results
"""
