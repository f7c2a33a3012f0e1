"""
Tests for DriveGateway - wiring, account rotation, poller lifecycle.
"""

import io

import pytest

from drivegate.cache import MemoryCache
from drivegate.config import AccountConfig, GatewayConfig
from drivegate.drive.buffer import ChunkReader
from drivegate.drive.errors import QuotaExceededError
from drivegate.drive.gateway import DriveGateway
from drivegate.drive.objects import APIObject
from drivegate.drive.pool import AccountPool
from drivegate.drive.tokens import Token, store_tokens

from fakes import FakeSession, drive_error, make_configs, make_response, make_tokens, page, raw_file


@pytest.fixture
def pool():
    return AccountPool(make_configs(3), make_tokens(3))


@pytest.fixture
def sessions(pool, monkeypatch):
    """One FakeSession per account, picked by the pool's active index."""
    by_index = {i: FakeSession(name=f"account{i}") for i in (1, 2, 3)}
    monkeypatch.setattr(pool, "session", lambda: by_index[pool.active_index])
    return by_index


def make_gateway(pool, **kwargs):
    kwargs.setdefault("start_polling", False)
    return DriveGateway([], "unused.json", pool=pool, **kwargs)


class TestOperations:

    def test_get_object(self, pool, sessions):
        sessions[1].responses.append(make_response(200, raw_file("a", size="5")))
        gateway = make_gateway(pool)
        assert gateway.get_object("a").size == 5
        assert sessions[1].closed

    def test_get_objects_by_parent(self, pool, sessions):
        sessions[1].responses += [page([raw_file("a")], "t"), page([raw_file("b")])]
        gateway = make_gateway(pool)
        assert [o.id for o in gateway.get_objects_by_parent("p")] == ["a", "b"]

    def test_get_file_by_name_and_parent(self, pool, sessions):
        sessions[1].responses.append(page([raw_file("a", name="x")]))
        assert make_gateway(pool).get_file_by_name_and_parent("x", "p")["id"] == "a"

    def test_file_size(self, pool, sessions):
        sessions[1].responses.append(make_response(200, headers={"Content-Length": "9"}, body=b""))
        assert make_gateway(pool).file_size("a") == 9

    def test_open_returns_chunk_reader(self, pool, sessions):
        obj = APIObject(id="a", name="a", size=100, download_url="https://example.com/a")
        reader = make_gateway(pool).open(obj, 10)
        assert isinstance(reader, ChunkReader)
        assert reader.session is sessions[1]
        assert reader.chunk_size == 10

    def test_open_reader_closes_its_session(self, pool, sessions):
        sessions[1].responses.append(make_response(206, body=b"abcd"))
        obj = APIObject(id="a", name="a", size=4, download_url="https://example.com/a")
        with make_gateway(pool).open(obj, 4) as reader:
            assert reader.read(0, 4) == b"abcd"
        assert sessions[1].closed

    def test_open_defaults_to_configured_chunk_size(self, pool, sessions):
        obj = APIObject(id="a", name="a", size=100)
        reader = make_gateway(pool, chunk_size=32, timeout=7).open(obj)
        assert reader.chunk_size == 32
        assert reader.timeout == 7

    def test_open_uses_buffer_factory(self, pool, sessions, temp_dir):
        calls = []
        gateway = make_gateway(pool, chunk_dir=temp_dir, buffer_factory=lambda *a: calls.append(a) or "buf")
        obj = APIObject(id="a", name="a")
        assert gateway.open(obj, 64) == "buf"
        assert calls == [(sessions[1], obj, 64, temp_dir)]


class TestRotation:

    def test_rotation_switches_account_for_new_calls(self, pool, sessions):
        sessions[1].responses.append(drive_error(403, "userRateLimitExceeded"))
        sessions[2].responses.append(make_response(200, raw_file("a")))
        gateway = make_gateway(pool)

        with pytest.raises(QuotaExceededError):
            gateway.get_object("a")
        assert pool.active_index == 1  # no automatic rotation

        assert gateway.rotate_accounts() == 2
        assert gateway.get_object("a").id == "a"
        assert len(sessions[1].requests) == 1
        assert len(sessions[2].requests) == 1

    def test_rotation_wraps(self, pool, sessions):
        gateway = make_gateway(pool)
        assert [gateway.rotate_accounts() for _ in range(4)] == [2, 3, 1, 2]

    def test_poller_uses_active_account(self, pool, sessions):
        sessions[2].responses.append(page([raw_file("a")]))
        gateway = make_gateway(pool)
        gateway.rotate_accounts()

        result = gateway.poller.poll_once()

        assert result.stored == 1
        assert gateway.cache.get("a") is not None
        assert sessions[1].requests == []


class TestConstruction:

    def test_default_cache(self, pool):
        gateway = make_gateway(pool)
        assert isinstance(gateway.cache, MemoryCache)

    def test_authorizes_from_token_file(self, temp_dir):
        token_path = temp_dir / "token.json"
        accounts = [AccountConfig("c1", "s1"), AccountConfig("c2", "s2")]
        store_tokens(token_path, [Token("a1", account_id="c1"), Token("a2", account_id="c2")])

        gateway = DriveGateway(
            accounts,
            token_path,
            input_stream=io.StringIO(""),
            output_stream=io.StringIO(),
            start_polling=False,
        )

        assert len(gateway.pool) == 2
        assert gateway.pool.active().credentials.token == "a1"

    def test_from_config(self, temp_dir):
        token_path = temp_dir / "token.json"
        store_tokens(token_path, [Token("a1", account_id="c1")])
        config = GatewayConfig(
            accounts=[AccountConfig("c1", "s1")],
            token_path=token_path,
            chunk_dir=temp_dir / "chunks",
            poll_interval=30,
            chunk_size=2048,
            timeout=7,
        )

        gateway = DriveGateway.from_config(config, start_polling=False)

        assert gateway.poller.interval == 30
        assert gateway.timeout == 7
        assert gateway.chunk_size == 2048
        assert gateway.chunk_dir == temp_dir / "chunks"

    @pytest.mark.threads
    def test_poller_started_and_closed(self, pool):
        with make_gateway(pool, start_polling=True, poll_interval=60) as gateway:
            assert gateway.poller.running
        assert not gateway.poller.running
