"""
Examples of read_through_cache usage.

- participants_api: list endpoints with filters, TTL tiers, excluded routes
  and per-caller caching
"""
