import json
import asyncio
from unittest.mock import Mock, AsyncMock

import pytest
from langchain_core.messages import AIMessage, HumanMessage
from langchain_core.language_models.fake_chat_models import FakeMessagesListChatModel

from support_bot.chains.agent import (
    SupportAgent, make_vector_query_tool, retrieve_context, extract_retrieved_context, VECTOR_QUERY_TOOL_NAME
)
from support_bot.core.history import HistoryStore
from support_bot.core import ingestion


class ToolCallingFakeModel(FakeMessagesListChatModel):
    """Replays scripted messages, tool calls included."""

    def bind_tools(self, tools, **kwargs):
        return self


@pytest.fixture
def history_store():
    return HistoryStore(use_redis=False)


@pytest.fixture
def indexed_db(issues_dir, vector_db):
    ingestion.index_issues_for_agent(issues_dir, vector_db)
    return vector_db


def tool_step(tool_name, result):
    return (Mock(tool=tool_name), result)


class TestTools:

    def test_vector_query_tool(self, indexed_db):
        search = make_vector_query_tool(indexed_db)
        result = json.loads(search.invoke({"queryText": "Samsung", "topK": 2}))

        assert len(result["sources"]) == 2
        assert result["relevantContext"] == [s["metadata"] for s in result["sources"]]
        source = result["sources"][0]
        assert set(source) == {"id", "metadata", "score", "document"}
        assert source["metadata"]["issue_ref"].startswith("#")

    def test_retrieve_context(self):
        sources = [{"metadata": {"issue_ref": "#1-x"}, "score": 0.9, "document": "text"}]
        assert retrieve_context.invoke({"sources": sources}) == {"success": True, "logged_count": 1}


class TestExtractRetrievedContext:

    def test_from_json_string(self):
        results = [
            {"tool_name": "retrieve_context", "result": {"success": True}},
            {"tool_name": VECTOR_QUERY_TOOL_NAME, "result": json.dumps({"relevantContext": [{"title": "a"}]})},
        ]
        assert extract_retrieved_context(results) == [{"title": "a"}]

    def test_from_dict(self):
        results = [{"tool_name": VECTOR_QUERY_TOOL_NAME, "result": {"relevantContext": [{"title": "b"}]}}]
        assert extract_retrieved_context(results) == [{"title": "b"}]

    def test_no_vector_query(self):
        assert extract_retrieved_context([{"tool_name": "retrieve_context", "result": {}}]) == []
        assert extract_retrieved_context([]) == []

    def test_unparseable_result(self):
        results = [{"tool_name": VECTOR_QUERY_TOOL_NAME, "result": "not json"}]
        assert extract_retrieved_context(results) == []

    def test_missing_relevant_context(self):
        results = [{"tool_name": VECTOR_QUERY_TOOL_NAME, "result": "{}"}]
        assert extract_retrieved_context(results) == []


class TestSupportAgent:

    @pytest.fixture
    def executor(self):
        executor = Mock()
        executor.invoke.return_value = {
            "output": "Try Kalam mode.",
            "intermediate_steps": [tool_step(VECTOR_QUERY_TOOL_NAME, '{"relevantContext": []}')],
        }
        executor.ainvoke = AsyncMock(return_value={"output": "Async answer.", "intermediate_steps": []})
        return executor

    @pytest.fixture
    def agent(self, vector_db, history_store, executor):
        return SupportAgent(vector_db, history_store=history_store, last_messages=2, executor=executor)

    def test_generate(self, agent):
        result = agent.generate("Phone not detected", thread_id="t1", resource_id="r1")

        assert result == {
            "text": "Try Kalam mode.",
            "tool_results": [{"tool_name": VECTOR_QUERY_TOOL_NAME, "result": '{"relevantContext": []}'}],
        }

    def test_history_is_kept_per_thread(self, agent):
        agent.generate("first", thread_id="t1", resource_id="r1")
        agent.generate("other thread", thread_id="t2", resource_id="r1")

        assert agent.get_history("t1", "r1") == [
            {"role": "user", "content": "first"},
            {"role": "assistant", "content": "Try Kalam mode."},
        ]
        assert len(agent.get_history("t2", "r1")) == 2
        assert agent.get_history("t3", "r1") == []

    def test_only_last_messages_are_sent(self, agent, executor):
        agent.generate("one", thread_id="t1", resource_id="r1")
        agent.generate("two", thread_id="t1", resource_id="r1")

        inputs = executor.invoke.call_args.args[0]
        assert inputs["input"] == "two"
        assert inputs["chat_history"] == [HumanMessage(content="one"), AIMessage(content="Try Kalam mode.")]

        agent.generate("three", thread_id="t1", resource_id="r1")
        inputs = executor.invoke.call_args.args[0]
        assert [m.content for m in inputs["chat_history"]] == ["two", "Try Kalam mode."]

    def test_agenerate(self, agent, executor):
        result = asyncio.run(agent.agenerate("Async?", thread_id="t1", resource_id="r1"))

        assert result == {"text": "Async answer.", "tool_results": []}
        executor.ainvoke.assert_awaited_once()
        assert agent.get_history("t1", "r1")[-1] == {"role": "assistant", "content": "Async answer."}

    def test_memory_key(self):
        assert SupportAgent.memory_key("thread", "user") == "user:thread"


class TestAgentLoop:

    def test_tool_calls_are_reported(self, indexed_db, history_store):
        model = ToolCallingFakeModel(responses=[
            AIMessage(content="", tool_calls=[
                {"name": VECTOR_QUERY_TOOL_NAME, "args": {"queryText": "Samsung", "topK": 2}, "id": "call_1"}
            ]),
            AIMessage(content="Uninstall Samsung SmartSwitch (#101)."),
        ])
        agent = SupportAgent(indexed_db, llm_chat=model, history_store=history_store)

        result = agent.generate("Samsung not detected", thread_id="t1", resource_id="r1")

        assert result["text"] == "Uninstall Samsung SmartSwitch (#101)."
        assert [r["tool_name"] for r in result["tool_results"]] == [VECTOR_QUERY_TOOL_NAME]
        assert len(extract_retrieved_context(result["tool_results"])) == 2
