""" Chat memory for the support agent and the CLI.
- Messages live in Redis lists under `chat_history:{session_id}` as JSON `{role, content}`.
- When Redis can't be reached, histories stay in memory only.
- At most `HISTORY_CACHE_SIZE` sessions are cached, the least recently used one is dropped first.
"""

import os
import json
from collections import OrderedDict
from typing import Optional

import redis
from langchain_core.chat_history import BaseChatMessageHistory
from langchain_core.messages import BaseMessage, HumanMessage, AIMessage

from logger import get_logger

log = get_logger(name="core_history")

REDIS_HOST = os.getenv('REDIS_HOST', 'localhost')
REDIS_PORT = int(os.getenv('REDIS_PORT', 6379))
REDIS_DB = int(os.getenv('REDIS_DB', 0))
HISTORY_CACHE_SIZE = int(os.getenv("HISTORY_CACHE_SIZE", 256))


def connect_redis() -> Optional[redis.Redis]:
    """Return a connected Redis client, or None when the server is unreachable."""

    try:
        client = redis.Redis(
            host=REDIS_HOST,
            port=REDIS_PORT,
            db=REDIS_DB,
            decode_responses=True,
            socket_connect_timeout=5
        )
        client.ping()
        log.info(f"Connected to Redis at {REDIS_HOST}:{REDIS_PORT}")
        return client
    except redis.RedisError as e:
        log.warning(f"Redis unavailable at {REDIS_HOST}:{REDIS_PORT}, using in-memory history: {e}")
        return None


def history_key(session_id: str) -> str:
    return f"chat_history:{session_id}"


class RedisChatHistory(BaseChatMessageHistory):
    """Chat history of one session, mirrored to Redis when a client is given.

    Attributes:
        session_id (str): Conversation key, `resource_id:thread_id` for the agent.
        messages (list): In-memory copy of the session's messages.
    """

    def __init__(self, session_id: str, client: Optional[redis.Redis] = None):
        self.session_id = session_id
        self.redis_key = history_key(session_id)
        self.client = client
        self.messages = []
        self._load_from_redis()
        log.info(f"Initialized RedisChatHistory for session '{session_id}' with {len(self.messages)} messages")

    def _load_from_redis(self):
        if self.client is None:
            return

        try:
            messages_json = self.client.lrange(self.redis_key, 0, -1)
        except redis.RedisError as e:
            log.error(f"Error loading messages from Redis for session '{self.session_id}': {e}")
            return

        for msg_json in messages_json:
            try:
                msg_data = json.loads(msg_json)
            except json.JSONDecodeError as e:
                log.warning(f"Failed to parse message from Redis: {e}")
                continue

            if msg_data.get('role') == 'human':
                self.messages.append(HumanMessage(content=msg_data.get('content', '')))
            elif msg_data.get('role') == 'assistant':
                self.messages.append(AIMessage(content=msg_data.get('content', '')))

        log.info(f"Loaded {len(self.messages)} messages from Redis for session '{self.session_id}'")

    def add_message(self, message: BaseMessage) -> None:
        self.messages.append(message)

        if self.client is None:
            return

        role = 'human' if isinstance(message, HumanMessage) else 'assistant'
        try:
            self.client.rpush(self.redis_key, json.dumps({'role': role, 'content': message.content}))
        except redis.RedisError as e:
            log.error(f"Failed to persist message to Redis for session '{self.session_id}': {e}")

    def clear(self) -> None:
        self.messages = []

        if self.client is None:
            return

        try:
            self.client.delete(self.redis_key)
            log.info(f"Cleared chat history from Redis for session '{self.session_id}'")
        except redis.RedisError as e:
            log.error(f"Failed to clear chat history from Redis for session '{self.session_id}': {e}")


class HistoryStore:
    """Keeps one `RedisChatHistory` per session.

    Args:
        client (redis.Redis, optional): Redis client to use. Connects with the `REDIS_*` env vars when omitted.
        use_redis (bool): Set to False to keep every history in memory only.
        max_sessions (int): Number of cached sessions. Evicted in-memory histories are lost,
            Redis ones are reloaded on the next use.

    Functions:
        + `get_session_history(session_id)`: Retrieves or creates the history of a session.
        + `clear_session_history(session_id)`: Clears the history of a session.
        + `get_recent_messages(session_id, n)`: The last `n` messages of a session.
    """

    def __init__(self, client: Optional[redis.Redis] = None, use_redis: bool = True,
                 max_sessions: int = HISTORY_CACHE_SIZE):
        if client is None and use_redis:
            client = connect_redis()
        self.client = client
        self.max_sessions = max(1, max_sessions)
        self.histories: OrderedDict[str, RedisChatHistory] = OrderedDict()
        backend = "Redis" if self.client is not None else "in-memory"
        log.info(f"Initialized HistoryStore with {backend} backend.")

    def get_session_history(self, session_id: str) -> RedisChatHistory:
        if session_id in self.histories:
            self.histories.move_to_end(session_id)
            return self.histories[session_id]

        self.histories[session_id] = RedisChatHistory(session_id, client=self.client)
        log.info(f"Created/loaded history for session: `{session_id}`")

        while len(self.histories) > self.max_sessions:
            evicted, _ = self.histories.popitem(last=False)
            log.info(f"Evicted cached history of session: `{evicted}`")

        return self.histories[session_id]

    def get_recent_messages(self, session_id: str, n: int) -> list[BaseMessage]:
        """Return at most the last `n` messages of the session, oldest first."""
        if n <= 0:
            return []
        return list(self.get_session_history(session_id).messages[-n:])

    def clear_session_history(self, session_id: str) -> bool:
        """Clears the chat history for a given session ID.

        Returns:
            bool: True if the history was cleared, False if nothing was known about the session.
        """
        if session_id in self.histories:
            self.histories.pop(session_id).clear()
            log.info(f"Cleared history for session: `{session_id}`")
            return True

        if self.client is not None:
            try:
                self.client.delete(history_key(session_id))
                log.info(f"Cleared Redis history for session: `{session_id}` (not in cache)")
                return True
            except redis.RedisError as e:
                log.error(f"Failed to clear Redis history for session: `{session_id}`: {e}")

        log.warning(f"No history found for session: `{session_id}` to clear.")
        return False
