import json

import httpx
import pytest

from training_video.errors import ErrorKind, InvalidTransitionError, RecordNotFoundError, VideoGenerationError
from training_video.kv_storage import InMemoryStore, KVStore, get_store
from training_video.models import VideoStatus


class FakeKV:
    """Minimal Vercel KV REST endpoint: POST /get, /set, /del with JSON args."""

    def __init__(self):
        self.data = {}
        self.auth = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.auth.append(request.headers.get("Authorization"))
        command = request.url.path.strip("/")
        args = json.loads(request.content)
        if command == "get":
            return httpx.Response(200, json={"result": self.data.get(args[0])})
        if command == "set":
            self.data[args[0]] = args[1]
            return httpx.Response(200, json={"result": "OK"})
        if command == "del":
            return httpx.Response(200, json={"result": 1 if self.data.pop(args[0], None) is not None else 0})
        return httpx.Response(400, json={"error": "unknown command"})


@pytest.fixture
def kv():
    server = FakeKV()
    http = httpx.AsyncClient(transport=httpx.MockTransport(server))
    store = KVStore(url="https://kv.example.com", token="kv-token", http_client=http)
    return store, server


@pytest.mark.asyncio
async def test_create_and_list_scripts(store):
    first = await store.create_script("First", "first script body")
    second = await store.create_script("Second", "second script body")

    assert first.status == VideoStatus.PENDING
    assert (await store.get_script(first.id)).title == "First"
    assert [s.id for s in await store.list_scripts()] == [second.id, first.id]


@pytest.mark.asyncio
async def test_unknown_records(store):
    assert await store.get_script("missing") is None
    assert await store.get_video_job("missing") is None
    with pytest.raises(RecordNotFoundError, match="script not found: missing"):
        await store.create_video_job("missing")
    with pytest.raises(RecordNotFoundError):
        await store.update_video_job("missing", status=VideoStatus.PROCESSING)
    with pytest.raises(RecordNotFoundError):
        await store.update_script_status("missing", VideoStatus.PROCESSING)


@pytest.mark.asyncio
async def test_video_job_status_only_moves_forward(store):
    script = await store.create_script("Title", "content of the script")
    job = await store.create_video_job(script.id)

    job = await store.update_video_job(job.id, status=VideoStatus.PROCESSING)
    job = await store.update_video_job(job.id, status=VideoStatus.COMPLETED, video_url="https://cdn/v.mp4")
    assert job.status == VideoStatus.COMPLETED
    assert job.video_url == "https://cdn/v.mp4"

    with pytest.raises(InvalidTransitionError):
        await store.update_video_job(job.id, status=VideoStatus.FAILED)
    with pytest.raises(InvalidTransitionError):
        await store.update_video_job(job.id, status=VideoStatus.PROCESSING)


@pytest.mark.asyncio
async def test_pending_job_cannot_skip_processing(store):
    script = await store.create_script("Title", "content of the script")
    job = await store.create_video_job(script.id)
    with pytest.raises(InvalidTransitionError):
        await store.update_video_job(job.id, status=VideoStatus.COMPLETED)


@pytest.mark.asyncio
async def test_update_video_job_rejects_unknown_fields(store):
    script = await store.create_script("Title", "content of the script")
    job = await store.create_video_job(script.id)
    with pytest.raises(ValueError, match="unknown video job fields"):
        await store.update_video_job(job.id, script_id="other")


@pytest.mark.asyncio
async def test_finished_script_can_be_regenerated(store):
    script = await store.create_script("Title", "content of the script")
    await store.update_script_status(script.id, VideoStatus.PROCESSING)
    await store.update_script_status(script.id, VideoStatus.FAILED)
    script = await store.update_script_status(script.id, VideoStatus.PROCESSING)
    assert script.status == VideoStatus.PROCESSING

    await store.update_script_status(script.id, VideoStatus.COMPLETED)
    with pytest.raises(InvalidTransitionError):
        await store.update_script_status(script.id, VideoStatus.FAILED)
    script = await store.update_script_status(script.id, VideoStatus.PROCESSING)
    assert script.status == VideoStatus.PROCESSING


@pytest.mark.asyncio
async def test_delete_script_cascades_to_jobs(store):
    script = await store.create_script("Title", "content of the script")
    job = await store.create_video_job(script.id)

    await store.delete_script(script.id)

    assert await store.get_script(script.id) is None
    assert await store.get_video_job(job.id) is None
    assert await store.list_scripts() == []


@pytest.mark.asyncio
async def test_kv_store_round_trip(kv):
    store, server = kv
    script = await store.create_script("Title", "content of the script")
    job = await store.create_video_job(script.id)
    await store.update_video_job(job.id, status=VideoStatus.PROCESSING)

    assert (await store.get_video_job(job.id)).status == VideoStatus.PROCESSING
    assert [j.id for j in await store.list_video_jobs(script.id)] == [job.id]
    assert f"script:{script.id}" in server.data
    assert set(server.auth) == {"Bearer kv-token"}
    assert await store.ping()


@pytest.mark.asyncio
async def test_kv_store_http_failure_is_network_error():
    http = httpx.AsyncClient(transport=httpx.MockTransport(lambda r: httpx.Response(500, text="boom")))
    store = KVStore(url="https://kv.example.com", token="t", http_client=http)

    with pytest.raises(VideoGenerationError) as exc_info:
        await store.get_script("abc")
    assert exc_info.value.kind == ErrorKind.NETWORK_ERROR
    assert not await store.ping()


def test_kv_store_requires_configuration():
    with pytest.raises(ValueError):
        KVStore()


def test_get_store_selects_backend(monkeypatch):
    assert isinstance(get_store(), InMemoryStore)
    monkeypatch.setenv("KV_REST_API_URL", "https://kv.example.com")
    monkeypatch.setenv("KV_REST_API_TOKEN", "t")
    assert isinstance(get_store(), KVStore)
