"""
Tests for generated-query parsing and the analysis tools.
"""

from unittest.mock import AsyncMock, MagicMock

import pytest

from universal_mcp.llm import TextGenerator
from universal_mcp.store import DocumentStore
from universal_mcp.tools import load_tools
from universal_mcp.tools.analysis_tools import (
    SMART_QUERY_LIMIT,
    parse_generated_query,
    parse_shell_json,
)


class TestParseShellJson:
    def test_strict_json(self):
        assert parse_shell_json('{"a": 1}') == {"a": 1}

    def test_bare_keys_and_single_quotes(self):
        assert parse_shell_json("{age: {$gt: 30}, name: 'ada'}") == {"age": {"$gt": 30}, "name": "ada"}

    def test_empty(self):
        assert parse_shell_json("  ") == {}


class TestParseGeneratedQuery:
    def test_find_with_chained_limit(self):
        parsed = parse_generated_query("db.users.find({age: {$gt: 30}}).limit(5)")
        assert parsed == {"operation": "find", "argument": {"age": {"$gt": 30}}}

    def test_find_ignores_projection(self):
        parsed = parse_generated_query('db.users.find({"city": "Paris"}, {"name": 1})')
        assert parsed["argument"] == {"city": "Paris"}

    def test_empty_find(self):
        assert parse_generated_query("db.users.find()") == {"operation": "find", "argument": {}}

    def test_count(self):
        parsed = parse_generated_query("db.users.countDocuments({active: true});")
        assert parsed == {"operation": "count", "argument": {"active": True}}

    def test_aggregate(self):
        parsed = parse_generated_query('db.orders.aggregate([{"$group": {"_id": "$city"}}])')
        assert parsed == {"operation": "aggregate", "argument": [{"$group": {"_id": "$city"}}]}

    def test_unrecognized(self):
        assert parse_generated_query("db.users.drop()") is None

    def test_unparseable_argument(self):
        with pytest.raises(ValueError):
            parse_generated_query("db.users.find({age: })")


@pytest.fixture
def store():
    fake = MagicMock(spec=DocumentStore)
    fake.connected = True
    fake.describe_schema.return_value = {"collection": "users", "sampleCount": 2, "fields": []}
    return fake


@pytest.fixture
def llm():
    fake = MagicMock(spec=TextGenerator)
    fake.available = True
    fake.default_provider = "openai"
    return fake


@pytest.fixture
def analysis_ctx(ctx, store, llm):
    ctx.store = store
    ctx.llm = llm
    load_tools(ctx, modules=["universal_mcp.tools.analysis_tools"], disabled=())
    return ctx


class TestSmartQuery:
    @pytest.mark.asyncio
    async def test_does_not_execute_by_default(self, analysis_ctx, store, llm):
        llm.generate_query = AsyncMock(return_value="db.users.find({})")
        result = await analysis_ctx.dispatcher.invoke("smart_query", {"request": "all", "collection": "users"})

        assert result["executed"] is False
        assert result["verified"] is False
        assert result["results"] is None
        store.find.assert_not_called()

    @pytest.mark.asyncio
    async def test_executes_find_with_cap(self, analysis_ctx, store, llm):
        llm.generate_query = AsyncMock(return_value="db.users.find({active: true})")
        store.find.return_value = [{"_id": "1"}, {"_id": "2"}]
        result = await analysis_ctx.dispatcher.invoke(
            "smart_query", {"request": "active users", "collection": "users", "execute": True},
        )

        store.find.assert_awaited_once_with("users", {"active": True}, limit=SMART_QUERY_LIMIT)
        assert result["executed"] is True
        assert result["resultCount"] == 2

    @pytest.mark.asyncio
    async def test_executes_count(self, analysis_ctx, store, llm):
        llm.generate_query = AsyncMock(return_value="db.users.countDocuments({})")
        store.count_documents.return_value = 9
        result = await analysis_ctx.dispatcher.invoke(
            "smart_query", {"request": "how many", "collection": "users", "execute": True},
        )
        assert result["results"] == 9
        assert result["resultCount"] == 1

    @pytest.mark.asyncio
    async def test_unparseable_code_reports_error(self, analysis_ctx, store, llm):
        llm.generate_query = AsyncMock(return_value="I cannot help with that")
        result = await analysis_ctx.dispatcher.invoke(
            "smart_query", {"request": "x", "collection": "users", "execute": True},
        )
        assert result["executed"] is False
        assert "not a find" in result["error"]


class TestAnalyzeData:
    @pytest.mark.asyncio
    async def test_empty_collection(self, analysis_ctx, store, llm):
        store.find.return_value = []
        result = await analysis_ctx.dispatcher.invoke("analyze_data", {"collection": "users", "question": "?"})
        assert result["analysis"] == "No data found to analyze."
        assert result["dataCount"] == 0
        llm.analyze_data.assert_not_called()

    @pytest.mark.asyncio
    async def test_analysis(self, analysis_ctx, store, llm):
        store.find.return_value = [{"age": 30}, {"age": 40}]
        llm.analyze_data = AsyncMock(return_value="Average age is 35")
        result = await analysis_ctx.dispatcher.invoke(
            "analyze_data", {"collection": "users", "question": "average age?", "limit": 10},
        )
        store.find.assert_awaited_once_with("users", {}, limit=10)
        assert result["analysis"] == "Average age is 35"
        assert result["dataCount"] == 2


class TestDataInsights:
    @pytest.mark.asyncio
    async def test_insights_prompt(self, analysis_ctx, store, llm):
        store.find.return_value = [{"age": 30}]
        store.count_documents.return_value = 120
        llm.generate = AsyncMock(return_value="Mostly adults")
        result = await analysis_ctx.dispatcher.invoke("data_insights", {"collection": "users"})

        prompt = llm.generate.await_args.args[0]
        assert "TOTAL DOCUMENTS: 120" in prompt
        assert result["insights"] == "Mostly adults"
        assert result["totalDocuments"] == 120

    @pytest.mark.asyncio
    async def test_sample_size_lower_bound(self, analysis_ctx):
        from universal_mcp.errors import InvalidArguments

        with pytest.raises(InvalidArguments):
            await analysis_ctx.dispatcher.invoke("data_insights", {"collection": "users", "sampleSize": 5})
