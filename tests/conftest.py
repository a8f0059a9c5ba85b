import anyio
import pytest
import sse_starlette
from packaging import version

from tests.helpers import FakeZendesk
from zendesk_mcp.settings import ZendeskSettings


@pytest.fixture
def anyio_backend():
    return "asyncio"


SSE_STARLETTE_VERSION = version.parse(sse_starlette.__version__)
NEEDS_RESET = SSE_STARLETTE_VERSION < version.parse("3.0.0")


@pytest.fixture(autouse=True)
def reset_sse_app_status():
    """Reset sse-starlette's global AppStatus singleton before each test.

    AppStatus.should_exit_event is a global asyncio.Event that gets bound to
    an event loop. Only necessary for sse-starlette < 3.0.0.
    """
    if not NEEDS_RESET:
        yield
        return

    from sse_starlette.sse import AppStatus

    AppStatus.should_exit_event = anyio.Event()  # type: ignore[attr-defined]
    yield
    AppStatus.should_exit_event = anyio.Event()  # type: ignore[attr-defined]


@pytest.fixture
def fake_zendesk() -> FakeZendesk:
    return FakeZendesk()


@pytest.fixture
def settings() -> ZendeskSettings:
    return ZendeskSettings(
        subdomain="acme",
        email="agent@example.com",
        api_token="secret-token",
        public_domain="https://help.acme.com/",
        _env_file=None,
    )


@pytest.fixture
def unconfigured_settings() -> ZendeskSettings:
    return ZendeskSettings(subdomain=None, email=None, api_token=None, _env_file=None)
