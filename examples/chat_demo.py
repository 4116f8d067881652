"""Terminal chat against a running Sora server.

Start the server first (``python -m sora_core``), then::

    python examples/chat_demo.py [en|ja]

Commands: /ja, /en switch language, /clear wipes the history, /quit exits.
"""

import asyncio
import sys

from sora_core.client.conversation_store import ConversationStore
from sora_core.client.http import SoraClient
from sora_core.client.session import ChatSessionController
from sora_core.infrastructure.storage.json_store import JsonFileKeyValueStore


class Printer:
    """Echo the streaming assistant message as it grows."""

    def __init__(self):
        self._shown = {}

    def __call__(self, ctl: ChatSessionController) -> None:
        if not ctl.messages or ctl.messages[-1].role != "assistant":
            return
        message = ctl.messages[-1]
        shown = self._shown.get(message.id, 0)
        if len(message.content) > shown:
            print(message.content[shown:], end="", flush=True)
            self._shown[message.id] = len(message.content)


async def main(locale) -> None:
    ctl = ChatSessionController(
        SoraClient(),
        ConversationStore(JsonFileKeyValueStore()),
        locale=locale,
        on_change=Printer(),
    )
    for message in ctl.messages:
        print(f"{message.role}: {message.content}")
    while True:
        text = await asyncio.to_thread(input, f"[{ctl.locale}] you: ")
        command = text.strip()
        if command == "/quit":
            break
        if command in ("/en", "/ja"):
            ctl.switch_locale(command[1:])
            continue
        if command == "/clear":
            ctl.clear_chat()
            continue
        print("sora: ", end="", flush=True)
        await ctl.submit(text)
        print()
        if ctl.last_error:
            print(f"(!) {ctl.last_error}")
        elif ctl.messages[-1].web_search_results:
            for result in ctl.messages[-1].web_search_results:
                print(f"  - {result.title} <{result.url}>")
    ctl.close()


if __name__ == "__main__":
    asyncio.run(main(sys.argv[1] if len(sys.argv) > 1 else None))
