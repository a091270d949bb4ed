from typing import Any

from arq import create_pool
from arq.connections import ArqRedis, RedisSettings
from arq.jobs import Job

from roomledger.core.config import settings

# Redis connection settings
redis_settings = RedisSettings.from_dsn(settings.REDIS_URL)


async def get_redis_pool() -> ArqRedis:
    """Get or create Redis pool for arq"""
    return await create_pool(redis_settings)


async def enqueue_task(task_name: str, *args: Any, **kwargs: Any) -> Job:
    """
    Enqueue a task to the arq worker.

    Args:
        task_name: Name of the task function
        *args: Positional arguments for the task
        **kwargs: Keyword arguments for the task

    Returns:
        Job object from arq
    """
    pool = await get_redis_pool()
    try:
        job = await pool.enqueue_job(task_name, *args, **kwargs)
        return job  # type: ignore[return-value]
    finally:
        await pool.close()


async def enqueue_refund_notification(booking_id: str) -> Job:
    """Enqueue the customer notification for a booking's refund."""
    return await enqueue_task("send_refund_notification", booking_id)


async def enqueue_audit_event(
    resource_type: str,
    resource_id: str,
    action: str,
    changes: dict[str, Any] | None = None,
    actor_type: str = "system",
    actor_id: str | None = None,
) -> Job:
    """Enqueue an audit trail entry."""
    return await enqueue_task(
        "record_audit_event_task",
        resource_type,
        resource_id,
        action,
        changes=changes,
        actor_type=actor_type,
        actor_id=actor_id,
    )
