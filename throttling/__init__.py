"""
Throttling app

Sliding-window rate limiting per identifier (user id or network address),
backed by a table of timestamped hits.
"""
