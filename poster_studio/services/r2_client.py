"""Cloudflare R2 helpers for the temporary generation bucket."""
from __future__ import annotations

import datetime as _dt
import logging
import re
import uuid
from functools import lru_cache

import boto3
from botocore.client import BaseClient
from botocore.exceptions import BotoCoreError, ClientError

from poster_studio.config import StorageConfig, get_settings
from poster_studio.errors import StorageUnavailable

logger = logging.getLogger(__name__)

_NOT_FOUND_CODES = {"404", "NoSuchKey", "NotFound"}


@lru_cache(maxsize=1)
def _session() -> boto3.session.Session:
    return boto3.session.Session()


def _build_client(config: StorageConfig) -> BaseClient:
    if not config.is_configured:
        raise StorageUnavailable("R2 storage is not configured")
    return _session().client(
        "s3",
        endpoint_url=config.endpoint,
        aws_access_key_id=config.access_key,
        aws_secret_access_key=config.secret_key,
        region_name=config.region,
    )


def make_key(prefix: str, request_id: str, filename: str) -> str:
    """Build a request-scoped key with a random suffix so requests never collide."""

    prefix = (prefix or "generation-temp").strip("/ ") or "generation-temp"
    date_part = _dt.datetime.now(_dt.timezone.utc).strftime("%Y%m%d")
    safe_request = re.sub(r"[^0-9A-Za-z_-]", "_", request_id or "request")
    safe_name = re.sub(r"[^0-9A-Za-z._-]", "_", filename or "asset")
    return f"{prefix}/{date_part}/{safe_request}/{uuid.uuid4().hex[:12]}-{safe_name}"


class R2TempStorage:
    """Put / public-URL / delete / exists on the temporary bucket."""

    def __init__(self, config: StorageConfig, client: BaseClient | None = None) -> None:
        self.config = config
        self._client = client

    @property
    def client(self) -> BaseClient:
        if self._client is None:
            self._client = _build_client(self.config)
        return self._client

    @property
    def prefix(self) -> str:
        return self.config.temp_prefix

    def public_url_for(self, key: str) -> str | None:
        base = self.config.public_base
        if not base:
            return None
        return f"{base.rstrip('/')}/{key.lstrip('/')}"

    def presign_get_url(self, key: str, expires: int = 3600) -> str:
        try:
            return self.client.generate_presigned_url(
                ClientMethod="get_object",
                Params={"Bucket": self.config.bucket, "Key": key},
                ExpiresIn=max(int(expires), 60),
                HttpMethod="GET",
            )
        except (ClientError, BotoCoreError) as exc:
            raise StorageUnavailable("Failed to generate download URL") from exc

    def put_bytes(self, key: str, data: bytes, *, content_type: str) -> None:
        try:
            self.client.put_object(
                Bucket=self.config.bucket,
                Key=key,
                Body=data,
                ContentType=content_type,
            )
        except (ClientError, BotoCoreError) as exc:
            logger.warning(
                "R2 put failed: bucket=%s key=%s err=%s", self.config.bucket, key, exc
            )
            raise StorageUnavailable(f"Failed to store object {key}") from exc

    def durable_url(self, key: str) -> str:
        return self.public_url_for(key) or self.presign_get_url(key)

    def delete(self, key: str) -> None:
        try:
            self.client.delete_object(Bucket=self.config.bucket, Key=key)
        except (ClientError, BotoCoreError) as exc:
            raise StorageUnavailable(f"Failed to delete object {key}") from exc

    def exists(self, key: str) -> bool:
        try:
            self.client.head_object(Bucket=self.config.bucket, Key=key)
        except ClientError as exc:
            code = str(exc.response.get("Error", {}).get("Code", ""))
            if code in _NOT_FOUND_CODES:
                return False
            raise StorageUnavailable(f"Failed to inspect object {key}") from exc
        except BotoCoreError as exc:
            raise StorageUnavailable(f"Failed to inspect object {key}") from exc
        return True


@lru_cache(maxsize=1)
def get_temp_storage() -> R2TempStorage:
    """Return the process-wide temporary storage wrapper."""

    return R2TempStorage(get_settings().storage)


__all__ = ["R2TempStorage", "get_temp_storage", "make_key"]
