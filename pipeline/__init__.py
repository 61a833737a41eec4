"""
Pipeline app

Runs the multi-stage generation pipeline (parse -> analyze -> suggest ->
persist) synchronously inside the request, records the outcome in the task
ledger, and turns approved suggestions into a final document.
"""
