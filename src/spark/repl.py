from __future__ import annotations

import getpass
import logging
from datetime import datetime
from pathlib import Path

from common.events import FragmentEvent, TurnFinalizedEvent, TurnStartEvent
from spark.config import ChatConfig
from spark.conversation import Conversation
from spark.errors import AuthenticationError, SparkError
from spark.executor import TurnExecutor
from spark.media import load_attachment, save_media
from spark.models import ChatMessage, InlineData
from spark.sessions.store import SessionStore

logger = logging.getLogger(__name__)


def format_timestamp(millis: int) -> str:
    return datetime.fromtimestamp(millis / 1000).strftime("%Y-%m-%d %H:%M")


def render_message(message: ChatMessage, media_dir: str | Path | None = None) -> list[str]:
    lines: list[str] = []
    for part in message.parts:
        if part.text is not None:
            lines.append(part.text)
        elif part.inline_data is not None:
            if media_dir is None:
                lines.append(f"[{part.inline_data.mime_type}]")
                continue
            path = save_media(part.inline_data, media_dir)
            lines.append(f"[{part.inline_data.mime_type} saved to {path}]")
    return lines


class ReplCommands:
    def __init__(self, repl: "ChatREPL"):
        self.repl = repl
        self._handlers = {
            "quit": self.cmd_quit,
            "exit": self.cmd_quit,
            "help": self.cmd_help,
            "new": self.cmd_new,
            "attach": self.cmd_attach,
            "detach": self.cmd_detach,
            "sessions": self.cmd_sessions,
            "load": self.cmd_load,
            "delete": self.cmd_delete,
            "stream": self.cmd_stream,
            "key": self.cmd_key,
        }

    def list_commands(self) -> list[str]:
        return sorted(self._handlers.keys())

    def has_command(self, name: str) -> bool:
        return name in self._handlers

    def handle(self, name: str, args: str) -> bool:
        handler = self._handlers.get(name)
        if not handler:
            return True
        return handler(args)

    def cmd_quit(self, args: str) -> bool:
        print("👋 Goodbye!")
        return False

    def cmd_help(self, args: str) -> bool:
        print("Commands:")
        print("  /new                 Start a new chat")
        print("  /attach <path>       Attach a file to the next message")
        print("  /detach              Drop the pending attachment")
        print("  /sessions            List saved chats for this model")
        print("  /load <id>           Resume a saved chat")
        print("  /delete <id>         Delete a saved chat")
        print("  /stream [on|off]     Toggle streaming responses")
        print("  /key                 Enter a new API key")
        print("  /quit                Exit")
        print("Prompts:")
        print("  /generate <prompt>   Generate an image")
        print("  generate image of …  Generate an image")
        return True

    def cmd_new(self, args: str) -> bool:
        self.repl.new_conversation()
        print("✅ Started a new chat")
        return True

    def cmd_attach(self, args: str) -> bool:
        if not args:
            print("Usage: /attach <path>")
            return True
        try:
            self.repl.attachment = load_attachment(args)
        except SparkError as e:
            print(f"❌ {e}")
            return True
        print(f"📎 Attached {args} ({self.repl.attachment.mime_type})")
        return True

    def cmd_detach(self, args: str) -> bool:
        if self.repl.attachment is None:
            print("No attachment")
        else:
            self.repl.attachment = None
            print("✅ Attachment removed")
        return True

    def cmd_sessions(self, args: str) -> bool:
        sessions = self.repl.store.list_by_model(self.repl.config.model)
        if not sessions:
            print("No saved chats")
            return True
        current = self.repl.conversation.session_id
        for session in sessions:
            marker = "*" if session.id == current else " "
            print(f"{marker} {session.id}  {format_timestamp(session.timestamp)}  {session.title}")
        return True

    def cmd_load(self, args: str) -> bool:
        if not args:
            print("Usage: /load <id>")
            return True
        if not self.repl.load_session(args.strip()):
            print(f"❌ No saved chat {args.strip()} for {self.repl.config.model}")
        return True

    def cmd_delete(self, args: str) -> bool:
        if not args:
            print("Usage: /delete <id>")
            return True
        session_id = args.strip()
        self.repl.store.delete(session_id)
        if self.repl.conversation.session_id == session_id:
            self.repl.new_conversation()
        print(f"✅ Deleted {session_id}")
        return True

    def cmd_stream(self, args: str) -> bool:
        value = args.strip().lower()
        if value in ("on", "off"):
            self.repl.config.stream = value == "on"
        elif not value:
            self.repl.config.stream = not self.repl.config.stream
        else:
            print("Usage: /stream [on|off]")
            return True
        print(f"Streaming {'on' if self.repl.config.stream else 'off'}")
        return True

    def cmd_key(self, args: str) -> bool:
        key = args.strip() or getpass.getpass("API key: ").strip()
        if not key:
            print("❌ No key entered")
            return True
        self.repl.config.api_key = key
        self.repl.conversation.api_key = key
        print("✅ API key updated")
        return True


class ChatREPL:
    def __init__(self, config: ChatConfig, executor: TurnExecutor, store: SessionStore):
        self.config = config
        self.executor = executor
        self.store = store
        self.commands = ReplCommands(self)
        self.attachment: InlineData | None = None
        self._streaming_turn = False
        self.conversation = self._fresh_conversation()

    def _fresh_conversation(self) -> Conversation:
        return Conversation(
            self.config.model,
            system_instruction=self.config.system_instruction,
            api_key=self.config.api_key,
        )

    def new_conversation(self) -> None:
        self.conversation = self._fresh_conversation()
        self.attachment = None

    def load_session(self, session_id: str) -> bool:
        session = self.store.get(session_id)
        if session is None or session.model != self.config.model:
            return False
        self.conversation = Conversation.from_session(
            session,
            system_instruction=self.config.system_instruction,
            api_key=self.config.api_key,
        )
        print(f"📂 {session.title} ({len(session.messages)} messages)")
        for message in session.messages:
            for line in render_message(message):
                print(f"{message.author.value}: {line}")
        return True

    def on_event(self, event) -> None:
        if isinstance(event, TurnStartEvent):
            self._streaming_turn = event.streaming
            if event.streaming:
                print("\n🤖 Spark:", end=" ", flush=True)
            return
        if isinstance(event, FragmentEvent):
            print(event.text, end="", flush=True)
            return
        if isinstance(event, TurnFinalizedEvent):
            if self._streaming_turn:
                print()
                if event.cancelled:
                    print("⚠️  Stopped early")
                return
            lines = render_message(event.message, self.config.media_dir)
            print("\n🤖 Spark: " + "\n".join(lines))

    def send(self, text: str) -> None:
        attachment, self.attachment = self.attachment, None
        try:
            self.executor.send(
                self.conversation,
                text,
                attachment=attachment,
                streaming_enabled=self.config.stream,
            )
        except AuthenticationError as e:
            print(f"\n❌ {e}")
            print("Use /key to enter a new API key, then resend your message.")
        except SparkError as e:
            logger.debug("Turn failed", exc_info=True)
            print(f"\n❌ {e}")

    def run(self, initial_message: str | None = None) -> None:
        mode = "streaming" if self.config.stream else "buffered"
        print(f"✨ Spark chat started (model: {self.config.model}, {mode})")
        print("Commands: /help for all commands")

        if initial_message:
            self.send(initial_message)

        while True:
            try:
                user_input = input("\n> ").strip()
                if not user_input:
                    continue

                if user_input.startswith("/"):
                    parts = user_input.split(maxsplit=1)
                    name = parts[0].lstrip("/")
                    if self.commands.has_command(name):
                        if not self.commands.handle(name, parts[1] if len(parts) > 1 else ""):
                            break
                        continue

                self.send(user_input)

            except KeyboardInterrupt:
                print("\n\n⚠️  Interrupted")
                break
            except EOFError:
                break
