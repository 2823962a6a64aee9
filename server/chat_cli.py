"""
Interactive terminal chat with the OpenMTP support agent.
- `quit` exits, `new` starts a new conversation thread, `history` prints the current thread.

## Usage:
- Run this file from `server` folder as:
- `python chat_cli.py --user alice`
"""

import sys
import uuid
import argparse
from typing import Callable, List, Optional

from support_bot import config
from support_bot.chains.agent import SupportAgent
from support_bot.core.database import VectorDB

from logger import get_logger

log = get_logger(name="chat_cli")


class Conversation:
    """One user's conversation with the agent, split in threads."""

    def __init__(self, agent: SupportAgent, user_id: Optional[str] = None):
        self.agent = agent
        self.thread_id = str(uuid.uuid4())
        self.resource_id = user_id or f"user_{uuid.uuid4()}"

    def ask_question(self, question: str) -> str:
        log.info(f"User [{self.resource_id}] asked: {question}")
        result = self.agent.generate(question, thread_id=self.thread_id, resource_id=self.resource_id)
        return result["text"]

    def get_conversation_history(self) -> List[dict[str, str]]:
        return self.agent.get_history(thread_id=self.thread_id, resource_id=self.resource_id)

    def start_new_thread(self) -> str:
        self.thread_id = str(uuid.uuid4())
        log.info(f"Started new conversation thread: {self.thread_id}")
        return self.thread_id

    def get_ids(self) -> dict[str, str]:
        return {"threadId": self.thread_id, "resourceId": self.resource_id}


def chat_loop(conversation: Conversation, read: Callable[[str], str] = input,
              write: Callable[[str], None] = print):
    """Read questions until `quit` (or end of input) and answer them."""

    write("OpenMTP AI Assistant Started")
    write("Ask me anything about OpenMTP issues!")
    write('Type "quit" to exit, "new" for new conversation, "history" to see chat history\n')
    ids = conversation.get_ids()
    write(f"Thread: {ids['threadId'][:8]}... | User: {ids['resourceId'][:8]}...\n")

    while True:
        try:
            user_input = read("You: ")
        except EOFError:
            break

        command = user_input.strip().lower()
        if command == "quit":
            write("Goodbye!")
            break

        if command == "new":
            write(f"Started new conversation thread: {conversation.start_new_thread()}")
            continue

        if command == "history":
            write("\nConversation History:")
            for index, message in enumerate(conversation.get_conversation_history(), start=1):
                write(f"{index}. [{message['role']}]: {message['content']}")
            write("")
            continue

        if user_input.strip():
            try:
                write(f"OpenMTP Agent: {conversation.ask_question(user_input)}\n")
            except Exception as e:
                log.exception(f"Error answering question: {e}")
                write(f"Error: {e}")


def main(argv: Optional[List[str]] = None) -> int:
    parser = argparse.ArgumentParser(description="Chat with the OpenMTP support agent.")
    parser.add_argument("--user", default=None, help="User id, a random one is generated when omitted.")
    args = parser.parse_args(argv)

    agent = SupportAgent(VectorDB(collection_name=config.AGENT_COLLECTION_NAME))
    chat_loop(Conversation(agent, user_id=args.user))
    return 0


if __name__ == "__main__":
    sys.exit(main())
