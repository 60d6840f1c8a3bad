import time

import pytest

from obspec_bench.handle import StoreHandle
from obspec_bench.random_stream import RandomStream

from .mocks import MockStore


def pytest_addoption(parser):
    parser.addoption(
        "--network",
        action="store_true",
        default=False,
        help="run tests that require network access",
    )


def pytest_collection_modifyitems(config, items):
    if config.getoption("--network"):
        # --network given: do not skip network tests
        return
    skip_network = pytest.mark.skip(reason="need --network option to run")
    for item in items:
        if "network" in item.keywords:
            item.add_marker(skip_network)


@pytest.fixture
def payload() -> bytes:
    """50,000 reproducible pseudo-random bytes."""
    return RandomStream(7, 50_000).read()


@pytest.fixture
def mock_store(payload):
    """A MockStore holding `payload` at `data/obj`.

    Fails the test if any response stream is left open.
    """
    store = MockStore({"data/obj": payload})
    yield store
    assert store.open_responses == 0, "response stream leaked"


@pytest.fixture
def handle(mock_store) -> StoreHandle:
    return StoreHandle.from_location("s3://bucket/data/", mock_store)


@pytest.fixture(scope="session")
def container():
    import docker

    client = docker.from_env()
    port = 9000
    minio_container = client.containers.run(
        "quay.io/minio/minio",
        "server /data",
        detach=True,
        ports={f"{port}/tcp": port},
        environment={
            "MINIO_ACCESS_KEY": "minioadmin",
            "MINIO_SECRET_KEY": "minioadmin",
        },
    )
    time.sleep(3)  # give it time to boot
    # enter
    yield {
        "port": port,
        "endpoint": f"http://localhost:{port}",
        "username": "minioadmin",
        "password": "minioadmin",
    }
    # exit
    minio_container.stop()
    minio_container.remove()


@pytest.fixture(scope="session")
def minio_bucket(container):
    from minio import Minio

    bucket = "obspec-bench"
    client = Minio(
        f"localhost:{container['port']}",
        access_key=container["username"],
        secret_key=container["password"],
        secure=False,
    )
    client.make_bucket(bucket)
    yield {
        "endpoint": container["endpoint"],
        "username": container["username"],
        "password": container["password"],
        "bucket": bucket,
        "client": client,
    }
