import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient

from terminality.game import starter_content
from terminality.main import create_app
from terminality.terminal.session import TerminalSession


@pytest.fixture
def terminal():
    """A terminal against the starter relay, quest and mail."""
    return TerminalSession(
        starter_content.default_systems(),
        starter_content.default_quests(),
        starter_content.default_mail(),
    )


@pytest_asyncio.fixture
async def client():
    app = create_app()
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac
