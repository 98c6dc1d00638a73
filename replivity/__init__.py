"""
Replivity Cache

Application-level query/result caching for the Replivity dashboard:
1. Two-tier cache store (in-process + Redis) with tag invalidation
2. Typed cached accessors over the SQL data model
3. Event-driven invalidation and batched cache warming
4. Query timing, retry and cache health monitoring
"""

__version__ = "0.1.0"
