"""Supabase-backed collaborators: bearer auth, credit debit RPC, template catalogue."""
from __future__ import annotations

import logging
from functools import lru_cache
from typing import Any, Dict, List, Optional

from starlette.concurrency import run_in_threadpool
from supabase import Client, create_client

from poster_studio.config import SupabaseConfig, get_settings
from poster_studio.errors import AuthenticationRequired, StorageUnavailable
from poster_studio.services.template_selector import TemplateCandidate

logger = logging.getLogger(__name__)


def build_supabase_client(config: SupabaseConfig) -> Client:
    if not config.is_configured:
        raise StorageUnavailable("Supabase is not configured")
    return create_client(config.url, config.service_key)


@lru_cache(maxsize=1)
def get_supabase_client() -> Client:
    return build_supabase_client(get_settings().supabase)


def bearer_token(header: Optional[str]) -> Optional[str]:
    if not header:
        return None
    scheme, _, token = header.strip().partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        return None
    return token.strip()


async def authenticate(client: Client, authorization: Optional[str]) -> str:
    """Return the user id behind an ``Authorization: Bearer`` header."""

    token = bearer_token(authorization)
    if token is None:
        raise AuthenticationRequired("missing bearer token")
    try:
        response = await run_in_threadpool(client.auth.get_user, token)
    except Exception as exc:
        raise AuthenticationRequired("invalid or expired session") from exc

    user = getattr(response, "user", None)
    user_id = getattr(user, "id", None)
    if not user_id:
        raise AuthenticationRequired("invalid or expired session")
    return str(user_id)


class SupabaseCreditStore:
    def __init__(self, client: Client, rpc_name: str = "check_and_debit_credits") -> None:
        self.client = client
        self.rpc_name = rpc_name

    async def check_and_debit(
        self, user_id: str, resolution: str, image_id: Optional[str] = None
    ) -> Dict[str, Any]:
        params: Dict[str, Any] = {"p_user_id": user_id, "p_resolution": resolution}
        if image_id:
            params["p_image_id"] = image_id

        def _call() -> Any:
            return self.client.rpc(self.rpc_name, params).execute()

        try:
            response = await run_in_threadpool(_call)
        except Exception as exc:
            logger.error("credit debit rpc failed", extra={"rpc": self.rpc_name, "error": str(exc)})
            raise StorageUnavailable("credit store unavailable") from exc

        data = response.data
        if isinstance(data, list):
            data = data[0] if data else {}
        return dict(data or {})


class SupabaseTemplateRepository:
    def __init__(self, client: Client, table: str = "reference_templates") -> None:
        self.client = client
        self.table = table

    async def fetch_by_domain(self, domain: str, limit: int) -> List[TemplateCandidate]:
        def _query() -> Any:
            return (
                self.client.table(self.table)
                .select("image_url, domain, description, tags")
                .eq("domain", domain)
                .eq("is_active", True)
                .limit(limit)
                .execute()
            )

        try:
            response = await run_in_threadpool(_query)
        except Exception as exc:
            logger.error("template query failed", extra={"domain": domain, "error": str(exc)})
            raise StorageUnavailable("template catalogue unavailable") from exc

        candidates: List[TemplateCandidate] = []
        for row in response.data or []:
            path = (row.get("image_url") or "").strip()
            if not path:
                continue
            candidates.append(
                TemplateCandidate(
                    stored_path=path,
                    domain_tag=row.get("domain") or domain,
                    description_text=row.get("description") or "",
                    tags=tuple(row.get("tags") or ()),
                )
            )
        return candidates


__all__ = [
    "SupabaseCreditStore",
    "SupabaseTemplateRepository",
    "authenticate",
    "bearer_token",
    "build_supabase_client",
    "get_supabase_client",
]
