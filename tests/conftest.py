import httpx
import pytest
from fastapi import FastAPI

from support import (
    API_BASE,
    OWNER,
    POLICY,
    FakeClock,
    FakeObjectStore,
    InMemoryRecordStore,
    RecordingProducer,
    RoutingTransport,
    token_for,
)
from upload_api.cores.errors import register_exception_handlers
from upload_api.cores.injectable import get_clock, get_producer, get_record_store, get_s3_client, get_upload_policy
from upload_api.router.router import api_router
from upload_client.api import UploadApiClient
from upload_client.config import UploadClientConfig
from upload_client.orchestrator import UploadOrchestrator
from upload_client.transport import StorageTransport


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def storage(clock):
    return FakeObjectStore(clock)


@pytest.fixture
def records():
    return InMemoryRecordStore()


@pytest.fixture
def producer():
    return RecordingProducer()


@pytest.fixture
def app(storage, records, clock, producer):
    app = FastAPI()
    register_exception_handlers(app)
    app.include_router(api_router, prefix="/api")
    app.dependency_overrides[get_s3_client] = lambda: storage
    app.dependency_overrides[get_record_store] = lambda: records
    app.dependency_overrides[get_clock] = lambda: clock
    app.dependency_overrides[get_upload_policy] = lambda: POLICY
    app.dependency_overrides[get_producer] = lambda: producer
    return app


@pytest.fixture
async def http(app, storage):
    async with httpx.AsyncClient(transport=RoutingTransport(app, storage), base_url=API_BASE) as client:
        yield client


@pytest.fixture
def sleeps():
    return []


@pytest.fixture
def make_orchestrator(http, clock, sleeps):
    async def _sleep(seconds: float) -> None:
        sleeps.append(seconds)

    def _make(credentials=None, **overrides) -> UploadOrchestrator:
        config = UploadClientConfig(api_base_url=API_BASE, chunk_size=1024, **overrides)
        return UploadOrchestrator(
            config,
            UploadApiClient(config, http),
            StorageTransport(config, http),
            credentials=credentials or (lambda: token_for(OWNER)),
            clock=clock,
            sleep=_sleep
        )
    return _make


@pytest.fixture
def orchestrator(make_orchestrator):
    return make_orchestrator()
