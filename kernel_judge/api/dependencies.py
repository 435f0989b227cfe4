from __future__ import annotations

import os
from functools import lru_cache

from fastapi import Header, HTTPException
from redis import Redis

from kernel_judge import config
from kernel_judge.adapters.filesystem_storage_adapter import ArchiveLimits, FileSystemStorageAdapter
from kernel_judge.adapters.in_memory_job_queue_adapter import InMemoryJobQueueAdapter
from kernel_judge.adapters.in_memory_job_status_adapter import InMemoryJobStatusAdapter
from kernel_judge.adapters.redis_job_queue_adapter import RedisJobQueueAdapter
from kernel_judge.adapters.redis_job_status_adapter import RedisJobStatusAdapter
from kernel_judge.ports.job_queue_port import JobQueuePort
from kernel_judge.ports.job_status_port import JobStatusPort
from kernel_judge.ports.storage_port import StoragePort


@lru_cache(maxsize=1)
def get_redis_client() -> Redis:
    return Redis.from_url(config.get_redis_url())


# memory バックエンドではキューと状態をプロセス内で共有する
@lru_cache(maxsize=1)
def get_memory_job_queue() -> InMemoryJobQueueAdapter:
    return InMemoryJobQueueAdapter()


@lru_cache(maxsize=1)
def get_memory_job_status() -> InMemoryJobStatusAdapter:
    return InMemoryJobStatusAdapter()


def get_job_queue() -> JobQueuePort:
    if config.get_backend() == "memory":
        return get_memory_job_queue()
    return RedisJobQueueAdapter(get_redis_client())


def get_job_status() -> JobStatusPort:
    if config.get_backend() == "memory":
        return get_memory_job_status()
    return RedisJobStatusAdapter(get_redis_client())


def get_storage() -> StoragePort:
    return FileSystemStorageAdapter(
        config.get_upload_root(),
        overlay_dir=config.get_user_overlay_dir(),
        limits=ArchiveLimits(max_uncompressed_bytes=config.get_max_archive_bytes()),
    )


def get_current_user(authorization: str | None = Header(None)) -> str:
    token_prefix = "Bearer "
    tokens = [token.strip() for token in os.getenv("API_TOKENS", "").split(",") if token.strip()]

    if not authorization or not authorization.startswith(token_prefix):
        raise HTTPException(status_code=401, detail="missing Authorization header")

    token = authorization[len(token_prefix) :].strip()
    if not token or (tokens and token not in tokens):
        raise HTTPException(status_code=401, detail="invalid token")
    return token
