""" Tool-calling support agent over the agent collection (`openmtp_embeddings`).
- `vector_query_tool` searches the issues, `retrieve_context` logs what was found.
- Conversations are remembered per `resource_id:thread_id`, keeping the last few messages.
"""

import json
from typing import Any, List, Optional

from langchain.agents import AgentExecutor, create_tool_calling_agent
from langchain_core.messages import AIMessage, HumanMessage
from langchain_core.tools import BaseTool, tool

from support_bot import config
from support_bot.core.llm import get_llm
from support_bot.core.history import HistoryStore
from .prompts import template_agent as agent_prompt

# For type hinting
from langchain_core.language_models.chat_models import BaseChatModel
from support_bot.core.database import VectorDB

from logger import get_logger
log = get_logger(name="chains_agent")

VECTOR_QUERY_TOOL_NAME = "vector_query_tool"


def make_vector_query_tool(vector_db: VectorDB, default_top_k: int = config.RETRIEVER_TOP_K) -> BaseTool:
    """Build the search tool bound to one vector collection."""

    @tool(VECTOR_QUERY_TOOL_NAME)
    def vector_query_tool(queryText: str, topK: int = default_top_k) -> str:
        """Search the OpenMTP GitHub issues knowledge base.
        Returns JSON with `relevantContext` (metadata of the matching chunks) and `sources` (scored matches)."""

        results = vector_db.similarity_search_with_score(queryText, k=topK)
        sources = [
            {
                "id": doc.id or f"doc-{index}",
                "metadata": doc.metadata,
                "score": float(score),
                "document": doc.page_content,
            }
            for index, (doc, score) in enumerate(results, start=1)
        ]
        log.info(f"[VECTOR QUERY] Found {len(sources)} documents for: '{queryText[:80]}'")
        return json.dumps({"relevantContext": [s["metadata"] for s in sources], "sources": sources})

    return vector_query_tool


@tool
def retrieve_context(sources: List[dict], relevantContext: Any = None) -> dict:
    """Log retrieved documents from vector_query_tool results."""

    log.info(f"[RETRIEVED DOCUMENTS] Found {len(sources)} documents")
    for index, doc in enumerate(sources, start=1):
        metadata = doc.get("metadata") or {}
        preview = (doc.get("document") or metadata.get("text") or "")[:100]
        log.info(f"  {index}. {metadata.get('issue_ref')} (Score: {doc.get('score')}) {preview}")

    return {"success": True, "logged_count": len(sources)}


def extract_retrieved_context(tool_results: List[dict[str, Any]]) -> list:
    """Pull `relevantContext` out of the `vector_query_tool` result, `[]` when there is none."""

    vector_result = next((r for r in tool_results if r.get("tool_name") == VECTOR_QUERY_TOOL_NAME), None)
    if not vector_result or not vector_result.get("result"):
        return []

    result = vector_result["result"]
    try:
        context_data = json.loads(result) if isinstance(result, str) else dict(result)
        return context_data.get("relevantContext") or []
    except (TypeError, ValueError) as e:
        log.warning(f"Could not parse tool result: {e}")
        return []


class SupportAgent:
    """The OpenMTP support agent.

    Args:
        vector_db (VectorDB): Store bound to the agent collection.
        llm_chat (BaseChatModel, optional): Tool-calling chat model. Built from config when omitted.
        history_store (HistoryStore, optional): Conversation memory.
        last_messages (int): Number of earlier messages given to the model.
        executor (AgentExecutor, optional): Pre-built executor, skips building one from the model.
    """

    name = "OpenMTP Agent"

    def __init__(self, vector_db: VectorDB, llm_chat: Optional[BaseChatModel] = None,
                 history_store: Optional[HistoryStore] = None,
                 last_messages: int = config.AGENT_LAST_MESSAGES,
                 executor: Optional[AgentExecutor] = None):
        self.tools = [make_vector_query_tool(vector_db), retrieve_context]
        self.history_store = history_store if history_store is not None else HistoryStore()
        self.last_messages = last_messages

        if executor is None:
            if llm_chat is None:
                llm_chat = get_llm(
                    model_name=config.LLM_CHAT_MODEL_NAME,
                    temperature=config.LLM_CHAT_TEMPERATURE,
                    verify_connection=config.VERIFY_LLM_CONNECTION,
                )
            agent = create_tool_calling_agent(llm_chat, self.tools, agent_prompt)
            executor = AgentExecutor(
                agent=agent,
                tools=self.tools,
                return_intermediate_steps=True,
                max_iterations=config.AGENT_MAX_ITERATIONS,
            )
        self.executor = executor
        log.info(f"Initialized {self.name} with tools {[t.name for t in self.tools]}")

    @staticmethod
    def memory_key(thread_id: str, resource_id: str) -> str:
        return f"{resource_id}:{thread_id}"

    def _prepare(self, question: str, thread_id: str, resource_id: str) -> tuple[dict, dict]:
        session = self.memory_key(thread_id, resource_id)
        inputs = {
            "input": question,
            "chat_history": self.history_store.get_recent_messages(session, self.last_messages),
        }
        run_config = {
            "run_name": "openmtp-agent",
            "tags": ["agent", "openmtp"],
            "metadata": {"thread_id": thread_id, "resource_id": resource_id},
        }
        return inputs, run_config

    def _finish(self, question: str, thread_id: str, resource_id: str, result: dict) -> dict[str, Any]:
        text = result.get("output", "")
        history = self.history_store.get_session_history(self.memory_key(thread_id, resource_id))
        history.add_messages([HumanMessage(content=question), AIMessage(content=text)])

        tool_results = [
            {"tool_name": action.tool, "result": observation}
            for action, observation in result.get("intermediate_steps", [])
        ]
        log.info(f"Agent answered with {len(tool_results)} tool calls for '{resource_id}:{thread_id}'")
        return {"text": text, "tool_results": tool_results}

    def generate(self, question: str, thread_id: str = config.DEFAULT_THREAD_ID,
                 resource_id: str = config.DEFAULT_USER_ID) -> dict[str, Any]:
        """Answer a question in a conversation.

        Returns:
            dict: `{"text": str, "tool_results": [{"tool_name": str, "result": Any}]}`
        """
        inputs, run_config = self._prepare(question, thread_id, resource_id)
        result = self.executor.invoke(inputs, config=run_config)
        return self._finish(question, thread_id, resource_id, result)

    async def agenerate(self, question: str, thread_id: str = config.DEFAULT_THREAD_ID,
                        resource_id: str = config.DEFAULT_USER_ID) -> dict[str, Any]:
        inputs, run_config = self._prepare(question, thread_id, resource_id)
        result = await self.executor.ainvoke(inputs, config=run_config)
        return self._finish(question, thread_id, resource_id, result)

    def get_history(self, thread_id: str, resource_id: str) -> List[dict[str, str]]:
        """All stored messages of a conversation as `{role, content}` items."""
        history = self.history_store.get_session_history(self.memory_key(thread_id, resource_id))
        return [
            {"role": "user" if msg.type == "human" else "assistant", "content": msg.content}
            for msg in history.messages
        ]
