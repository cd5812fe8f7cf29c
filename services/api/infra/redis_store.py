"""
Redis record store for workflows, versions and working copies.
"""

import logging
import os
from functools import wraps
from typing import List, Optional
import redis
from shared.constants import REDIS_KEY_PREFIX
from shared.exceptions import PersistenceError
from shared.types import VersionRecord, WorkflowRecord, WorkingCopy


def _store_call(func):
    """Turns client failures into PersistenceError so callers can decide severity"""

    @wraps(func)
    def wrapper(self, *args, **kwargs):
        try:
            return func(self, *args, **kwargs)
        except redis.RedisError as e:
            logging.error(
                "Record store call failed",
                extra={"operation": func.__name__, "error": str(e)}
            )
            raise PersistenceError(
                f"Record store operation '{func.__name__}' failed: {e}",
                operation=func.__name__,
            ) from e

    return wrapper


class RedisStore:
    """Redis client wrapper; every record lives under its own key"""

    def __init__(self, redis_url: Optional[str] = None, client=None):
        if client is None:
            url = redis_url or os.getenv("REDIS_URL", "redis://localhost:6379/0")
            client = redis.Redis.from_url(url, decode_responses=False)
        self.client = client

    # ── Keys ──

    @staticmethod
    def workflow_key(workflow_id: str) -> str:
        return f"{REDIS_KEY_PREFIX}:workflow:{workflow_id}"

    @staticmethod
    def index_key() -> str:
        return f"{REDIS_KEY_PREFIX}:workflows"

    @staticmethod
    def versions_key(workflow_id: str) -> str:
        return f"{REDIS_KEY_PREFIX}:workflow:{workflow_id}:versions"

    @staticmethod
    def version_key(version_id: str) -> str:
        return f"{REDIS_KEY_PREFIX}:version:{version_id}"

    @staticmethod
    def working_copy_key(workflow_id: str) -> str:
        return f"{REDIS_KEY_PREFIX}:workflow:{workflow_id}:working_copy"

    # ── Workflows ──

    @_store_call
    def save_workflow(self, record: WorkflowRecord) -> None:
        pipe = self.client.pipeline()
        pipe.set(self.workflow_key(record.id), record.model_dump_json(by_alias=True))
        pipe.sadd(self.index_key(), record.id)
        pipe.execute()

    @_store_call
    def get_workflow(self, workflow_id: str) -> Optional[WorkflowRecord]:
        data = self.client.get(self.workflow_key(workflow_id))
        if data:
            return WorkflowRecord.model_validate_json(data)
        return None

    @_store_call
    def list_workflows(self) -> List[WorkflowRecord]:
        records = []
        for member in self.client.smembers(self.index_key()):
            workflow_id = member.decode('utf-8') if isinstance(member, bytes) else member
            data = self.client.get(self.workflow_key(workflow_id))
            if data:
                records.append(WorkflowRecord.model_validate_json(data))
        return sorted(records, key=lambda r: r.updated_at, reverse=True)

    @_store_call
    def delete_workflow(self, workflow_id: str) -> bool:
        """Deletes the workflow with its versions and working copy"""
        version_ids = [
            v.decode('utf-8') if isinstance(v, bytes) else v
            for v in self.client.lrange(self.versions_key(workflow_id), 0, -1)
        ]
        pipe = self.client.pipeline()
        for version_id in version_ids:
            pipe.delete(self.version_key(version_id))
        pipe.delete(self.versions_key(workflow_id))
        pipe.delete(self.working_copy_key(workflow_id))
        pipe.delete(self.workflow_key(workflow_id))
        pipe.srem(self.index_key(), workflow_id)
        results = pipe.execute()
        return bool(results[-2])

    # ── Versions ──

    @_store_call
    def add_version(self, record: VersionRecord) -> None:
        # Versions are append-only: SET NX refuses to overwrite an existing key
        created = self.client.set(
            self.version_key(record.id), record.model_dump_json(by_alias=True), nx=True
        )
        if not created:
            raise PersistenceError(
                f"Version {record.id} already exists",
                record.workflow_id,
                version_id=record.id,
            )
        self.client.rpush(self.versions_key(record.workflow_id), record.id)

    @_store_call
    def get_version(self, version_id: str) -> Optional[VersionRecord]:
        data = self.client.get(self.version_key(version_id))
        if data:
            return VersionRecord.model_validate_json(data)
        return None

    @_store_call
    def list_versions(self, workflow_id: str) -> List[VersionRecord]:
        """All versions of a workflow, oldest first"""
        records = []
        for member in self.client.lrange(self.versions_key(workflow_id), 0, -1):
            version_id = member.decode('utf-8') if isinstance(member, bytes) else member
            data = self.client.get(self.version_key(version_id))
            if data:
                records.append(VersionRecord.model_validate_json(data))
        return sorted(records, key=lambda r: r.version_number)

    def latest_version(self, workflow_id: str) -> Optional[VersionRecord]:
        versions = self.list_versions(workflow_id)
        return versions[-1] if versions else None

    # ── Working copies ──

    @_store_call
    def get_working_copy(self, workflow_id: str) -> Optional[WorkingCopy]:
        data = self.client.get(self.working_copy_key(workflow_id))
        if data:
            return WorkingCopy.model_validate_json(data)
        return None

    @_store_call
    def put_working_copy(self, working_copy: WorkingCopy) -> None:
        self.client.set(
            self.working_copy_key(working_copy.workflow_id),
            working_copy.model_dump_json(by_alias=True),
        )

    # ── Connection ──

    @_store_call
    def ping(self) -> bool:
        return bool(self.client.ping())

    def close(self) -> None:
        self.client.close()
