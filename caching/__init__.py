"""
Caching app

User-scoped, TTL-bounded key/value store kept in a relational table. Used to
memoize model calls made by the generation pipeline.
"""
