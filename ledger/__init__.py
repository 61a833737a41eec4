"""
Ledger app

Durable record of each long-running operation: processing -> completed|failed,
with the result payload or error message. Read by polling clients and history
views.
"""
