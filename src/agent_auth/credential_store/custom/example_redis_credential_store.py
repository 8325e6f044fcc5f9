"""
Redis Credential Store Implementation

Redis-backed alternative to the default in-memory store, for deployments
where the authorize step and the token exchange may run on different
instances.

To use this implementation, set the following environment variables:

AA_CREDENTIAL_STORE_MODULE=agent_auth.credential_store.custom.example_redis_credential_store
AA_CREDENTIAL_STORE_CLASS=RedisCredentialStore

Redis configuration environment variables:
- AA_REDIS_HOST (default: localhost)
- AA_REDIS_PORT (default: 6379)
- AA_REDIS_DB (default: 0)
- AA_REDIS_TTL (default: AA_FLOW_STATE_TTL, else 300 seconds)
- AA_REDIS_PWD (optional)
- AA_REDIS_SSL (default: false)
"""

import json
import threading
from typing import Any

import redis

from agent_auth.app_config import AppConfig
from agent_auth.configs import (
    AA_FLOW_STATE_TTL,
    AA_REDIS_DB,
    AA_REDIS_HOST,
    AA_REDIS_PORT,
    AA_REDIS_PWD,
    AA_REDIS_SSL,
    AA_REDIS_TTL,
)
from agent_auth.credential_store.credential_store import CredentialStore


class RedisCredentialStore(CredentialStore):
    def __init__(self, app_config: AppConfig = None):
        """
        Initialize the Redis-based credential store.

        Args:
            app_config: Application configuration object. If None, creates a new one.
        """
        if app_config is None:
            app_config = AppConfig()

        self.app_config = app_config
        self._lock = threading.Lock()

        redis_host = self.app_config.get(AA_REDIS_HOST.env_name) or "localhost"
        redis_port = int(self.app_config.get(AA_REDIS_PORT.env_name) or 6379)
        redis_db = int(self.app_config.get(AA_REDIS_DB.env_name) or 0)
        redis_password = self.app_config.get(AA_REDIS_PWD.env_name)
        redis_ssl = (self.app_config.get(AA_REDIS_SSL.env_name) or "false").lower() == "true"
        self.ttl = int(
            self.app_config.get(AA_REDIS_TTL.env_name)
            or self.app_config.get(AA_FLOW_STATE_TTL.env_name)
            or 300
        )

        self.redis_client = redis.Redis(
            host=redis_host,
            port=redis_port,
            db=redis_db,
            password=redis_password,
            ssl=redis_ssl,
            decode_responses=True,
            socket_connect_timeout=5,
            socket_timeout=5,
            retry_on_timeout=True,
        )

        try:
            self.redis_client.ping()
        except redis.ConnectionError as e:
            raise ConnectionError(f"Failed to connect to Redis: {e}") from e

    def _get_redis_key(self, key: str) -> str:
        return f"agent_auth:{key}"

    def set(self, key: str, value: dict[str, Any]) -> None:
        """Store a value with TTL."""
        with self._lock:
            try:
                self.redis_client.setex(self._get_redis_key(key), self.ttl, json.dumps(value))
            except redis.RedisError as e:
                raise RuntimeError(f"Failed to store credential data in Redis: {e}") from e

    def get(self, key: str) -> dict[str, Any]:
        with self._lock:
            redis_key = self._get_redis_key(key)
            try:
                data_str = self.redis_client.get(redis_key)
            except redis.RedisError as e:
                raise RuntimeError(f"Failed to retrieve credential data from Redis: {e}") from e

            if data_str is None:
                return {}

            try:
                data = json.loads(data_str)
                if not isinstance(data, dict):
                    raise ValueError("stored value is not an object")
                return data
            except (json.JSONDecodeError, ValueError) as e:
                # Corrupted entries are dropped so the next flow starts clean
                try:
                    self.redis_client.delete(redis_key)
                except redis.RedisError:
                    pass
                raise ValueError(f"Corrupted credential data found for key {key}: {e}") from e

    def remove(self, key: str) -> None:
        with self._lock:
            try:
                self.redis_client.delete(self._get_redis_key(key))
            except redis.RedisError as e:
                raise RuntimeError(f"Failed to delete credential data from Redis: {e}") from e

    def compare_and_set(
        self, key: str, expected: dict[str, Any], value: dict[str, Any]
    ) -> bool:
        """Optimistic WATCH/MULTI update; a concurrent writer makes this return False."""
        redis_key = self._get_redis_key(key)
        with self._lock:
            try:
                with self.redis_client.pipeline() as pipe:
                    pipe.watch(redis_key)
                    current = pipe.get(redis_key)
                    try:
                        matches = current is not None and json.loads(current) == expected
                    except json.JSONDecodeError:
                        matches = False
                    if not matches:
                        pipe.unwatch()
                        return False
                    pipe.multi()
                    pipe.setex(redis_key, self.ttl, json.dumps(value))
                    pipe.execute()
                    return True
            except redis.WatchError:
                return False
            except redis.RedisError as e:
                raise RuntimeError(f"Failed to update credential data in Redis: {e}") from e

    def health_check(self) -> bool:
        """Check if Redis connection is healthy."""
        try:
            self.redis_client.ping()
            return True
        except redis.RedisError:
            return False
