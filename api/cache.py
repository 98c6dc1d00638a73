"""
Cache Management API

Provides endpoints for cache monitoring and manual operations.

Endpoints:
- Health check for monitoring/alerting
- Statistics and query timings for dashboard insights
- Event, tag and full invalidation for operators
- User warmup trigger
"""

import logging
from datetime import datetime
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Request
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from replivity.cache.exceptions import CacheNotInitializedError
from replivity.cache.invalidation import InvalidationResult, resolve_event
from replivity.cache.runtime import CacheRuntime
from replivity.database.session import get_db


logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/cache", tags=["Cache Management"])


# =============================================================================
# DEPENDENCIES
# =============================================================================

def get_cache_runtime(request: Request) -> CacheRuntime:
    """Resolve the application's cache runtime."""
    runtime = getattr(request.app.state, "cache_runtime", None)
    if runtime is None:
        raise CacheNotInitializedError("Cache runtime is not initialized")
    return runtime


# =============================================================================
# REQUEST / RESPONSE MODELS
# =============================================================================

class CacheHealthResponse(BaseModel):
    """Cache health check response."""
    status: str = Field(..., description="healthy, degraded or unhealthy")
    state: str = Field(..., description="Store lifecycle state")
    remote_configured: bool
    remote_up: bool
    memory_ok: bool
    checks: Dict[str, bool] = {}
    issues: List[Dict[str, Any]] = []
    latency_ms: float
    timestamp: datetime = Field(default_factory=datetime.utcnow)


class CacheStatsResponse(BaseModel):
    """Cache statistics response."""
    enabled: bool
    hits: int
    misses: int
    sets: int
    deletes: int
    errors: int
    hit_rate_percent: float
    memory_entries: int
    memory_usage_bytes: int
    remote_connected: bool


class InvalidationResponse(BaseModel):
    """Cache invalidation response."""
    success: bool
    event: Optional[str] = None
    scope_id: Optional[str] = None
    keys_invalidated: int
    duration_ms: float
    errors: List[str] = []


class TagInvalidationRequest(BaseModel):
    tags: List[str] = Field(..., min_length=1, description="Tags to purge")


class WarmUsersRequest(BaseModel):
    user_ids: List[str] = Field(..., min_length=1, description="Users to warm")
    batch_size: int = Field(default=10, ge=1, le=100)


class WarmupResponse(BaseModel):
    """Warmup response."""
    succeeded: int
    failed: int
    duration_seconds: float
    failures: Dict[str, str] = {}


def _invalidation_response(result: InvalidationResult) -> InvalidationResponse:
    return InvalidationResponse(
        success=result.success,
        event=result.event.value if result.event is not None else None,
        scope_id=result.scope_id,
        keys_invalidated=result.keys_invalidated,
        duration_ms=result.duration_ms,
        errors=result.errors,
    )


# =============================================================================
# ENDPOINTS
# =============================================================================

@router.get("/health", response_model=CacheHealthResponse)
async def cache_health_check(runtime: CacheRuntime = Depends(get_cache_runtime)):
    """
    Check cache infrastructure health.

    Use this endpoint for monitoring and alerting systems. Pings the
    remote tier live.
    """
    health = await runtime.manager.get_health()
    result = await runtime.monitor.health_check()

    return CacheHealthResponse(
        status=result.status.value,
        state=health.state.value,
        remote_configured=health.remote_configured,
        remote_up=health.remote_up,
        memory_ok=health.memory_ok,
        checks=result.checks,
        issues=result.issues,
        latency_ms=result.latency_ms,
        timestamp=result.timestamp,
    )


@router.get("/stats", response_model=CacheStatsResponse)
def get_cache_stats(runtime: CacheRuntime = Depends(get_cache_runtime)):
    """
    Get current cache statistics.

    Note: Stats are per process and reset on application restart.
    """
    stats = runtime.manager.get_stats()
    return CacheStatsResponse(
        enabled=runtime.config.enabled,
        hits=stats.hits,
        misses=stats.misses,
        sets=stats.sets,
        deletes=stats.deletes,
        errors=stats.errors,
        hit_rate_percent=stats.hit_rate,
        memory_entries=stats.memory_entry_count,
        memory_usage_bytes=stats.memory_usage,
        remote_connected=stats.remote_connected,
    )


@router.get("/queries")
def get_query_stats(
    threshold_ms: Optional[float] = Query(None, ge=0, description="Slow query threshold override"),
    runtime: CacheRuntime = Depends(get_cache_runtime),
):
    """Query timings recorded on cache misses."""
    summary = runtime.query_monitor.get_performance_summary()
    if threshold_ms is not None:
        summary["slow_queries"] = runtime.query_monitor.get_slow_queries(threshold_ms)
    return summary


@router.post("/invalidate/event/{event}", response_model=InvalidationResponse)
async def invalidate_event(
    event: str,
    scope_id: Optional[str] = Query(None, description="User or entity id to scope the purge to"),
    runtime: CacheRuntime = Depends(get_cache_runtime),
):
    """
    Fire a domain invalidation event by hand.

    Use this after manual data corrections or during debugging.
    """
    if resolve_event(event) is None:
        raise HTTPException(status_code=400, detail=f"Unknown event: {event}")

    result = await runtime.invalidator.invalidate_by_event(event, scope_id)
    return _invalidation_response(result)


@router.post("/invalidate/tags", response_model=InvalidationResponse)
async def invalidate_tags(
    request: TagInvalidationRequest,
    runtime: CacheRuntime = Depends(get_cache_runtime),
):
    """Purge every entry carrying any of the given tags."""
    result = await runtime.invalidator.invalidate_tags(request.tags)
    return _invalidation_response(result)


@router.post("/invalidate/all", response_model=InvalidationResponse)
async def invalidate_all_cache(runtime: CacheRuntime = Depends(get_cache_runtime)):
    """
    Invalidate ALL cache data.

    CAUTION: This clears the entire cache and will temporarily
    degrade performance until caches are repopulated.
    """
    result = await runtime.invalidator.invalidate_all()
    if not result.success:
        raise HTTPException(status_code=500, detail="; ".join(result.errors))
    return _invalidation_response(result)


@router.post("/warm/users", response_model=WarmupResponse)
async def warm_users(
    request: WarmUsersRequest,
    runtime: CacheRuntime = Depends(get_cache_runtime),
    db: Session = Depends(get_db),
):
    """
    Warm per-user cache entries.

    Failing users are reported, not raised.
    """
    warmer = runtime.warmer(db)
    report = await warmer.warmup_users(request.user_ids, batch_size=request.batch_size)

    return WarmupResponse(
        succeeded=report.succeeded,
        failed=report.failed,
        duration_seconds=report.duration_seconds,
        failures=report.failures,
    )
