"""In-memory collaborators shared by the test modules."""
from __future__ import annotations

import base64
import json
from io import BytesIO
from typing import Any, Dict, List, Optional, Sequence, Tuple

import httpx
from botocore.exceptions import ClientError
from PIL import Image

from poster_studio.config import (
    GenerationLimits,
    PollingConfig,
    ProviderConfig,
    Settings,
    StorageConfig,
    SupabaseConfig,
)
from poster_studio.services.r2_client import R2TempStorage
from poster_studio.services.template_selector import TemplateCandidate

KIE_BASE = "https://kie.test/api/v1/jobs"
TEMP_PUBLIC_BASE = "https://temp.cdn.test"
TEMPLATES_BASE = "https://templates.test"


def image_bytes(fmt: str = "PNG", color: tuple[int, int, int] = (255, 0, 0)) -> bytes:
    image = Image.new("RGB", (32, 32), color)
    buffer = BytesIO()
    image.save(buffer, format=fmt)
    return buffer.getvalue()


def data_url(fmt: str = "PNG", subtype: Optional[str] = None) -> str:
    encoded = base64.b64encode(image_bytes(fmt)).decode()
    return f"data:image/{subtype or fmt.lower()};base64,{encoded}"


class InMemoryS3:
    """Just enough of the boto3 S3 client surface for :class:`R2TempStorage`."""

    def __init__(self) -> None:
        self.objects: Dict[Tuple[str, str], Tuple[bytes, str]] = {}
        self.deleted: List[str] = []
        self.fail_deletes = False

    def put_object(self, Bucket: str, Key: str, Body: bytes, ContentType: str) -> dict:
        self.objects[(Bucket, Key)] = (Body, ContentType)
        return {}

    def delete_object(self, Bucket: str, Key: str) -> dict:
        if self.fail_deletes:
            raise ClientError({"Error": {"Code": "500", "Message": "boom"}}, "DeleteObject")
        self.objects.pop((Bucket, Key), None)
        self.deleted.append(Key)
        return {}

    def head_object(self, Bucket: str, Key: str) -> dict:
        if (Bucket, Key) not in self.objects:
            raise ClientError({"Error": {"Code": "404", "Message": "Not Found"}}, "HeadObject")
        body, content_type = self.objects[(Bucket, Key)]
        return {"ContentType": content_type, "ContentLength": len(body)}

    def generate_presigned_url(self, ClientMethod: str, Params: dict, ExpiresIn: int, HttpMethod: str) -> str:
        return f"https://r2.test/{Params['Bucket']}/{Params['Key']}?X-Amz-Expires={ExpiresIn}"

    def keys(self) -> List[str]:
        return [key for _, key in self.objects]


def storage_config(**overrides: Any) -> StorageConfig:
    values: Dict[str, Any] = dict(
        endpoint="https://r2.test",
        access_key="access",
        secret_key="secret",
        bucket="temp-bucket",
        public_base=TEMP_PUBLIC_BASE,
        templates_public_base=TEMPLATES_BASE,
    )
    values.update(overrides)
    return StorageConfig(**values)


def make_storage(s3: Optional[InMemoryS3] = None, **overrides: Any) -> R2TempStorage:
    return R2TempStorage(storage_config(**overrides), client=s3 or InMemoryS3())


def make_settings(**overrides: Any) -> Settings:
    values: Dict[str, Any] = dict(
        environment="test",
        allowed_origins=["*"],
        log_level="INFO",
        storage=storage_config(),
        provider=ProviderConfig(api_key="test-key", api_base=KIE_BASE),
        supabase=SupabaseConfig(),
        limits=GenerationLimits(),
        polling=PollingConfig(),
    )
    values.update(overrides)
    return Settings(**values)


def waiting() -> dict:
    return {"state": "waiting"}


def succeeded(*urls: str) -> dict:
    return {
        "state": "success",
        "resultJson": json.dumps({"resultUrls": list(urls or ["https://cdn.kie.test/result.png"])}),
    }


def failed(message: str, code: Optional[str] = None) -> dict:
    return {"state": "fail", "failMsg": message, "failCode": code}


class FakeProviderApi:
    """Scripted Kie job API: every poll pops the next scripted answer.

    A scripted entry may be a ``data`` dict or an int, which is answered as
    that HTTP status with an error body.  The last entry repeats forever.
    """

    def __init__(self, script: Optional[Sequence[Any]] = None, task_id: str = "task-123") -> None:
        self.script = list(script or [succeeded()])
        self.task_id = task_id
        self.created: List[dict] = []
        self.polls = 0
        self.create_status = 200
        self.create_body: Optional[dict] = None

    def handle(self, request: httpx.Request) -> httpx.Response:
        if request.url.path.endswith("/createTask"):
            self.created.append(json.loads(request.content))
            if self.create_status != 200:
                return httpx.Response(self.create_status, json={"code": self.create_status, "msg": "rejected"})
            body = self.create_body or {"code": 200, "msg": "success", "data": {"taskId": self.task_id}}
            return httpx.Response(200, json=body)

        if request.url.path.endswith("/recordInfo"):
            self.polls += 1
            entry = self.script.pop(0) if len(self.script) > 1 else self.script[0]
            if isinstance(entry, int):
                return httpx.Response(entry, json={"code": entry, "msg": "error"})
            data = {"taskId": request.url.params.get("taskId"), **entry}
            return httpx.Response(200, json={"code": 200, "msg": "success", "data": data})

        return httpx.Response(404)


class MockNetwork:
    """Routes outbound HTTP to the fake provider or to registered asset bytes."""

    def __init__(self, provider: Optional[FakeProviderApi] = None) -> None:
        self.provider = provider or FakeProviderApi()
        self.assets: Dict[str, Tuple[int, bytes, str]] = {}
        self.requests: List[httpx.Request] = []

    def add_asset(self, url: str, body: bytes, content_type: str = "image/png", status: int = 200) -> None:
        self.assets[url] = (status, body, content_type)

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        url = str(request.url)
        if url.startswith(KIE_BASE):
            return self.provider.handle(request)
        if url in self.assets:
            status, body, content_type = self.assets[url]
            return httpx.Response(status, content=body, headers={"content-type": content_type})
        return httpx.Response(404, text="not found")

    def client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(transport=httpx.MockTransport(self.handler))


class FakeCreditStore:
    def __init__(self, reply: Optional[dict] = None) -> None:
        self.reply = reply if reply is not None else {"success": True, "remaining": 9, "needed": 1}
        self.calls: List[Tuple[str, str, Optional[str]]] = []

    async def check_and_debit(self, user_id: str, resolution: str, image_id: Optional[str] = None) -> dict:
        self.calls.append((user_id, resolution, image_id))
        return dict(self.reply)


class FakeTemplateRepository:
    def __init__(self, by_domain: Optional[Dict[str, List[TemplateCandidate]]] = None) -> None:
        self.by_domain = by_domain or {}
        self.queries: List[Tuple[str, int]] = []

    async def fetch_by_domain(self, domain: str, limit: int) -> List[TemplateCandidate]:
        self.queries.append((domain, limit))
        return list(self.by_domain.get(domain, []))[:limit]


def recording_sleep(recorded: List[float]):
    async def _sleep(seconds: float) -> None:
        recorded.append(seconds)

    return _sleep
