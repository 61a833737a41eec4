"""
Accounts app

Custom user model with per-user model usage counters.
"""
