import json
from unittest.mock import Mock, patch

import redis
from langchain_core.messages import AIMessage, HumanMessage

from support_bot.core.history import HistoryStore, RedisChatHistory, connect_redis, history_key


def redis_client(stored=None):
    client = Mock()
    client.lrange.return_value = [json.dumps(m) for m in (stored or [])]
    return client


class TestRedisChatHistory:

    def test_loads_stored_messages(self):
        client = redis_client([
            {"role": "human", "content": "hi"},
            {"role": "assistant", "content": "hello"},
            {"role": "system", "content": "ignored"},
        ])
        history = RedisChatHistory("r1:t1", client=client)

        client.lrange.assert_called_once_with("chat_history:r1:t1", 0, -1)
        assert history.messages == [HumanMessage(content="hi"), AIMessage(content="hello")]

    def test_skips_corrupt_entries(self):
        client = redis_client()
        client.lrange.return_value = ["{broken", json.dumps({"role": "human", "content": "ok"})]

        assert RedisChatHistory("s", client=client).messages == [HumanMessage(content="ok")]

    def test_add_message_is_persisted(self):
        client = redis_client()
        history = RedisChatHistory("s", client=client)

        history.add_message(AIMessage(content="answer"))

        client.rpush.assert_called_once_with(
            history_key("s"), json.dumps({"role": "assistant", "content": "answer"})
        )
        assert history.messages == [AIMessage(content="answer")]

    def test_redis_errors_keep_memory_copy(self):
        client = redis_client()
        client.rpush.side_effect = redis.ConnectionError("down")
        history = RedisChatHistory("s", client=client)

        history.add_message(HumanMessage(content="still here"))
        assert history.messages == [HumanMessage(content="still here")]

    def test_clear(self):
        client = redis_client([{"role": "human", "content": "hi"}])
        history = RedisChatHistory("s", client=client)

        history.clear()

        assert history.messages == []
        client.delete.assert_called_once_with("chat_history:s")


class TestHistoryStore:

    def test_same_history_per_session(self):
        store = HistoryStore(use_redis=False)
        assert store.get_session_history("a") is store.get_session_history("a")
        assert store.get_session_history("a") is not store.get_session_history("b")

    def test_least_recently_used_session_is_evicted(self):
        store = HistoryStore(use_redis=False, max_sessions=2)
        first = store.get_session_history("a")
        store.get_session_history("b")
        store.get_session_history("a")
        store.get_session_history("c")

        assert list(store.histories) == ["a", "c"]
        assert store.get_session_history("a") is first

    def test_evicted_redis_session_is_reloaded(self):
        client = redis_client([{"role": "human", "content": "hi"}])
        store = HistoryStore(client=client, max_sessions=1)
        store.get_session_history("a")
        store.get_session_history("b")

        assert store.get_session_history("a").messages == [HumanMessage(content="hi")]
        assert client.lrange.call_count == 3

    def test_recent_messages(self):
        store = HistoryStore(use_redis=False)
        history = store.get_session_history("a")
        for text in ["1", "2", "3"]:
            history.add_message(HumanMessage(content=text))

        assert [m.content for m in store.get_recent_messages("a", 2)] == ["2", "3"]
        assert len(store.get_recent_messages("a", 10)) == 3
        assert store.get_recent_messages("a", 0) == []

    def test_clear_known_session(self):
        store = HistoryStore(use_redis=False)
        store.get_session_history("a").add_message(HumanMessage(content="x"))

        assert store.clear_session_history("a") is True
        assert store.get_session_history("a").messages == []

    def test_clear_unknown_session(self):
        assert HistoryStore(use_redis=False).clear_session_history("nobody") is False

    def test_clear_uncached_session_in_redis(self):
        client = redis_client()
        store = HistoryStore(client=client)

        assert store.clear_session_history("old") is True
        client.delete.assert_called_once_with("chat_history:old")


class TestConnectRedis:

    def test_unreachable_server(self):
        with patch("support_bot.core.history.redis.Redis") as mock_redis:
            mock_redis.return_value.ping.side_effect = redis.ConnectionError("refused")
            assert connect_redis() is None

    def test_store_falls_back_to_memory(self):
        with patch("support_bot.core.history.connect_redis", return_value=None):
            store = HistoryStore()
        assert store.client is None
