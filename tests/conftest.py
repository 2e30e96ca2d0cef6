from unittest import mock

import pytest
import respline
from respline.connection import Connection

from .mocks import MockSocket

default_redis_url = "redis://localhost:6379/9"


def pytest_addoption(parser):
    parser.addoption(
        "--redis-url",
        default=default_redis_url,
        action="store",
        help="Redis connection string, defaults to `%(default)s`",
    )


def pytest_configure(config):
    config.addinivalue_line(
        "markers", "live: test needs the Redis server given by --redis-url"
    )


@pytest.fixture()
def mock_socket():
    return MockSocket()


@pytest.fixture()
def client(mock_socket):
    """
    A client whose connection talks to ``mock_socket``. Feed the socket the
    server's replies before reading them.
    """
    with mock.patch.object(Connection, "_connect", return_value=mock_socket):
        client = respline.Redis(decode_responses=True)
        yield client
        client.connection._sock = None


@pytest.fixture()
def raw_client(mock_socket):
    "Like ``client`` but replies are left as bytes"
    with mock.patch.object(Connection, "_connect", return_value=mock_socket):
        client = respline.Redis()
        yield client
        client.connection._sock = None


def _get_client(request, **kwargs):
    """
    Helper for fixtures or tests that need a live server

    Uses the "--redis-url" command line argument for connection info.
    Keyword arguments override values specified in the URL. Skips the test
    when the server can't be reached.
    """
    redis_url = request.config.getoption("--redis-url")
    client = respline.Redis.from_url(redis_url, **kwargs)
    try:
        client.ping()
    except respline.ConnectionError:
        pytest.skip(f"Redis server not available at {redis_url}")

    def teardown():
        client.close()
        try:
            client.flushdb()
        finally:
            client.close()

    request.addfinalizer(teardown)
    return client


@pytest.fixture()
def r(request):
    return _get_client(request, decode_responses=True)


@pytest.fixture()
def raw_r(request):
    return _get_client(request)
