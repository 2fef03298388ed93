"""apps/gateway 测试配置 -- FastAPI app + httpx AsyncClient + 注册用户 helper"""

from collections.abc import AsyncGenerator, Iterator
from pathlib import Path
from types import SimpleNamespace

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from starlette.testclient import TestClient

TEST_JWT_SECRET = "zigtask-test-secret"


@pytest.fixture
def gateway_env(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    """测试环境变量，返回数据库路径"""
    db_path = tmp_path / "sqlite" / "test.db"
    monkeypatch.setenv("ZIGTASK_DB_PATH", str(db_path))
    monkeypatch.setenv("ZIGTASK_JWT_SECRET", TEST_JWT_SECRET)
    # 最低 cost，加快测试
    monkeypatch.setenv("ZIGTASK_BCRYPT_ROUNDS", "4")
    monkeypatch.setenv("ZIGTASK_BROADCAST_SCOPE", "owner")
    monkeypatch.setenv("LOGFIRE_SEND_TO_LOGFIRE", "false")
    return db_path


@pytest_asyncio.fixture
async def app(gateway_env: Path):
    """创建测试用 FastAPI app 实例（手动初始化，绕过 lifespan）"""
    from zigtask.gateway.main import create_app, init_app_state, shutdown_app_state

    application = create_app()
    await init_app_state(application, str(gateway_env))
    yield application
    await shutdown_app_state(application)


@pytest_asyncio.fixture
async def client(app) -> AsyncGenerator[AsyncClient, None]:
    """提供 httpx AsyncClient 用于测试"""
    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test",
    ) as ac:
        yield ac


@pytest.fixture
def signup(client: AsyncClient):
    """注册用户，返回 SimpleNamespace(user, token, headers)"""

    async def _signup(email: str = "ada@example.com", password: str = "secret123"):
        resp = await client.post(
            "/auth/signup",
            json={"email": email, "password": password, "firstName": "Ada"},
        )
        assert resp.status_code == 201, resp.text
        body = resp.json()
        return SimpleNamespace(
            user=body["user"],
            token=body["token"],
            headers={"Authorization": f"Bearer {body['token']}"},
        )

    return _signup


@pytest.fixture
def sync_client(gateway_env: Path) -> Iterator[TestClient]:
    """Starlette TestClient（完整 lifespan），用于 WebSocket 测试"""
    from zigtask.gateway.main import create_app

    with TestClient(create_app()) as tc:
        yield tc


@pytest.fixture
def sync_signup(sync_client: TestClient):
    """TestClient 版本的注册 helper"""

    def _signup(email: str = "ada@example.com", password: str = "secret123"):
        resp = sync_client.post("/auth/signup", json={"email": email, "password": password})
        assert resp.status_code == 201, resp.text
        body = resp.json()
        return SimpleNamespace(
            user=body["user"],
            token=body["token"],
            headers={"Authorization": f"Bearer {body['token']}"},
        )

    return _signup


@pytest.fixture
def jwt_secret() -> str:
    """测试 token 签名密钥"""
    return TEST_JWT_SECRET
