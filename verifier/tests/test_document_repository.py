import httpx
import pytest

from verifier.app.services.documents import (
    DocumentStoreError,
    HttpDocumentRepository,
    InMemoryDocumentRepository,
)

pytestmark = pytest.mark.anyio

BASE_URL = "http://documents.test"


def _handler(request: httpx.Request) -> httpx.Response:
    if request.url.path == "/documents/doc-1":
        return httpx.Response(200, json={"id": "doc-1", "status": "sealed"})
    if request.url.path == "/documents/broken":
        return httpx.Response(500, text="database unavailable")
    return httpx.Response(404, json={"message": "not found"})


async def test_http_repository_returns_document():
    async with httpx.AsyncClient(transport=httpx.MockTransport(_handler)) as http:
        repository = HttpDocumentRepository(http_client=http, base_url=BASE_URL)

        assert await repository.get("doc-1") == {"id": "doc-1", "status": "sealed"}


async def test_http_repository_maps_404_to_none():
    async with httpx.AsyncClient(transport=httpx.MockTransport(_handler)) as http:
        repository = HttpDocumentRepository(http_client=http, base_url=BASE_URL)

        assert await repository.get("missing") is None


async def test_http_repository_raises_on_server_error():
    async with httpx.AsyncClient(transport=httpx.MockTransport(_handler)) as http:
        repository = HttpDocumentRepository(http_client=http, base_url=BASE_URL)

        with pytest.raises(DocumentStoreError):
            await repository.get("broken")


async def test_http_repository_forwards_correlation_id():
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["trace"] = request.headers.get("X-Correlation-ID")
        return httpx.Response(200, json={"id": "doc-1"})

    async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as http:
        repository = HttpDocumentRepository(
            http_client=http,
            base_url=BASE_URL + "/",
            correlation_id="trace-7",
        )
        await repository.get("doc-1")

    assert seen["trace"] == "trace-7"


async def test_in_memory_repository_returns_copies():
    repository = InMemoryDocumentRepository({"doc-1": {"id": "doc-1"}})

    document = await repository.get("doc-1")
    document["id"] = "changed"

    assert await repository.get("doc-1") == {"id": "doc-1"}
    assert await repository.get("doc-2") is None


async def test_http_repository_escapes_document_id_in_path():
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["raw_path"] = request.url.raw_path
        seen["query"] = request.url.query
        return httpx.Response(200, json={"id": "a/b?c#d"})

    async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as http:
        repository = HttpDocumentRepository(http_client=http, base_url=BASE_URL)
        await repository.get("a/b?c#d")

    assert seen["raw_path"] == b"/documents/a%2Fb%3Fc%23d"
    assert seen["query"] == b""
