"""
Tests for the MCP server wiring: tool registration, client construction
and the thin tools forwarding to the provider.
"""

import pytest

from babbar_intelligence import server
from babbar_intelligence.core.cache import MemoryCache
from babbar_intelligence.core.models import InducedStrengthPair
from babbar_intelligence.persistent_cache import SqliteResponseCache


@pytest.fixture
def fake_client(monkeypatch, make_fake_client):
    client = make_fake_client({
        "/host/overview/main": {"host": "me.com"},
        "/keyword": {"entries": []},
        "/host/duplicate": {"buckets": []},
        "/domain/overview/main": {"domain": "example.com"},
        "/url/fi": {"fi": 12},
    })
    monkeypatch.setattr(server, "_client", client)
    return client


# =============================================================================
# CONFIGURATION
# =============================================================================

class TestConfiguration:

    def test_main_exits_without_api_key(self, monkeypatch):
        monkeypatch.delenv("BABBAR_API_KEY", raising=False)

        with pytest.raises(SystemExit) as exc_info:
            server.main()
        assert exc_info.value.code == 1

    def test_missing_api_key_raises(self, monkeypatch):
        monkeypatch.delenv("BABBAR_API_KEY", raising=False)

        with pytest.raises(ValueError, match="BABBAR_API_KEY"):
            server._get_api_key()

    @pytest.mark.asyncio
    async def test_client_is_shared(self, monkeypatch):
        monkeypatch.setenv("BABBAR_API_KEY", "k")
        monkeypatch.setenv("BABBAR_RATE_LIMIT_RETRIES", "7")
        monkeypatch.delenv("BABBAR_CACHE_BACKEND", raising=False)
        monkeypatch.setattr(server, "_client", None)

        client = server._get_client()
        try:
            assert server._get_client() is client
            assert isinstance(client.cache, MemoryCache)
            assert client.max_rate_limit_retries == 7
        finally:
            await client.close()

    @pytest.mark.asyncio
    async def test_sqlite_backend_selected(self, monkeypatch):
        monkeypatch.setenv("BABBAR_API_KEY", "k")
        monkeypatch.setenv("BABBAR_CACHE_BACKEND", " SQLite ")
        monkeypatch.setattr(server, "_client", None)

        client = server._get_client()
        try:
            assert isinstance(client.cache, SqliteResponseCache)
        finally:
            await client.close()


# =============================================================================
# TOOLS
# =============================================================================

class TestTools:

    @pytest.mark.asyncio
    async def test_composite_tools_registered(self):
        names = {tool.name for tool in await server.mcp.list_tools()}

        assert {
            "babbar_host_overview",
            "babbar_keyword_serp",
            "babbar_batch_overview",
            "babbar_competitive_analysis",
            "babbar_content_gap",
            "babbar_backlink_opportunities_spotfinder",
            "babbar_onsite_quickwins",
            "babbar_duplicate_map",
        } <= names

    @pytest.mark.asyncio
    async def test_tools_are_read_only(self):
        for tool in await server.mcp.list_tools():
            assert tool.annotations.readOnlyHint is True

    @pytest.mark.asyncio
    async def test_thin_tool_forwards(self, fake_client):
        result = await server.babbar_host_overview("me.com")

        assert result["data"] == {"host": "me.com"}
        assert fake_client.calls == [("/host/overview/main", {"host": "me.com"})]

    @pytest.mark.asyncio
    async def test_serp_defaults(self, fake_client, monkeypatch):
        monkeypatch.setattr(server, "today", lambda: "2024-05-01")

        await server.babbar_keyword_serp("blue widgets")

        assert fake_client.calls_to("/keyword") == [{
            "keyword": "blue widgets", "lang": "fr", "country": "FR", "date": "2024-05-01",
            "feature": "ORGANIC", "offset": 0, "n": 100, "min": 1, "max": 100,
        }]

    @pytest.mark.asyncio
    async def test_host_duplicate_is_triaged(self, fake_client):
        result = await server.babbar_host_duplicate("me.com")

        assert result["buckets"] == []
        assert "notes" in result

    @pytest.mark.asyncio
    async def test_batch_overview_by_type(self, fake_client):
        result = await server.babbar_batch_overview(["example.com"], "domain")

        assert result["results"][0]["success"] is True
        assert fake_client.calls_to("/domain/overview/main") == [{"domain": "example.com"}]

    @pytest.mark.asyncio
    async def test_induced_strength_pairs_schema(self):
        tools = {tool.name: tool for tool in await server.mcp.list_tools()}
        schema = tools["babbar_induced_strength_batch"].inputSchema

        assert "pairs" in schema["required"]
        assert "InducedStrengthPair" in str(schema)

    @pytest.mark.asyncio
    async def test_induced_strength_batch_accepts_models(self, fake_client):
        result = await server.babbar_induced_strength_batch([
            InducedStrengthPair(source="https://a.com/1", target="https://b.com/1"),
        ])

        assert result["results"][0]["induced_strength"] == {"fi": 12}
        assert fake_client.calls_to("/url/fi") == [{"source": "https://a.com/1", "target": "https://b.com/1"}]
