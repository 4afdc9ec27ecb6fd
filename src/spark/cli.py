from __future__ import annotations

import argparse
import json
import logging
import sys
from datetime import datetime, timezone

from dotenv import load_dotenv

from common.events import EventEmitter
from spark.config import ChatConfig, resolve_model_alias
from spark.errors import AuthenticationError, SparkError
from spark.executor import TurnExecutor
from spark.gateway import LiteLLMGateway
from spark.media import load_attachment, save_media
from spark.profiles import DEFAULT_PROFILE, get_profile, list_profiles
from spark.repl import ChatREPL, format_timestamp, render_message
from spark.sessions import JsonFileBackend, SessionStore

logger = logging.getLogger(__name__)

COMMANDS = ("chat", "sessions", "show", "delete", "image", "edit")


def main() -> int:
    load_dotenv()
    return _main(sys.argv[1:])


class JsonFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        ts = datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat()
        payload = {
            "ts": ts,
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        if record.exc_info:
            payload["exc_info"] = self.formatException(record.exc_info)
        return json.dumps(payload, default=str)


def setup_logging(verbose: bool = False, quiet: bool = False, log_format: str = "text") -> None:
    if quiet:
        level = logging.ERROR
    elif verbose:
        level = logging.DEBUG
    else:
        level = logging.WARNING

    if log_format == "json":
        handler = logging.StreamHandler()
        handler.setFormatter(JsonFormatter())
        logging.basicConfig(level=level, handlers=[handler])
    else:
        logging.basicConfig(
            level=level,
            format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S",
        )

    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)
    logging.getLogger("LiteLLM").setLevel(logging.WARNING)


def _add_common_args(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("--history", default=None, help="Chat history file (default: $SPARK_HISTORY_PATH)")
    parser.add_argument("-v", "--verbose", action="store_true")
    parser.add_argument("-q", "--quiet", action="store_true")
    parser.add_argument("--log-format", default="text", choices=["text", "json"])


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="spark", description="Spark - chat with generative models")
    subparsers = parser.add_subparsers(dest="command", required=False)

    chat = subparsers.add_parser("chat", help="Start an interactive chat")
    chat.add_argument("--profile", default=DEFAULT_PROFILE, choices=list_profiles())
    chat.add_argument("--model", default=None, help="Override the profile model (aliases: flash, lite, pro)")
    stream = chat.add_mutually_exclusive_group()
    stream.add_argument("--stream", dest="stream", action="store_true", default=None)
    stream.add_argument("--no-stream", dest="stream", action="store_false")
    chat.add_argument("--system", default=None, help="Override the system instruction")
    chat.add_argument("--session", default=None, help="Resume a saved chat by id")
    chat.add_argument("--attach", default=None, help="Attach a file to the first message")
    chat.add_argument("--message", "-m", help="Single prompt (non-interactive)")
    _add_common_args(chat)

    sessions = subparsers.add_parser("sessions", help="List saved chats")
    sessions.add_argument("--model", default=None, help="Only chats bound to this model")
    _add_common_args(sessions)

    show = subparsers.add_parser("show", help="Print a saved chat")
    show.add_argument("session_id")
    _add_common_args(show)

    delete = subparsers.add_parser("delete", help="Delete a saved chat")
    delete.add_argument("session_id")
    _add_common_args(delete)

    image = subparsers.add_parser("image", help="Generate an image")
    image.add_argument("prompt")
    image.add_argument("--model", default=None, help="Image model (default: $SPARK_IMAGE_MODEL)")
    image.add_argument("--out", default=None, help="Output directory (default: $SPARK_MEDIA_DIR)")
    _add_common_args(image)

    edit = subparsers.add_parser("edit", help="Edit an image with a prompt")
    edit.add_argument("image")
    edit.add_argument("prompt")
    edit.add_argument("--model", default=None, help="Image editing model")
    edit.add_argument("--out", default=None, help="Output directory (default: $SPARK_MEDIA_DIR)")
    _add_common_args(edit)

    return parser


def _main(argv: list[str]) -> int:
    if not argv or argv[0] not in COMMANDS + ("-h", "--help"):
        argv = ["chat", *argv]
    args = _build_parser().parse_args(argv)

    setup_logging(args.verbose, args.quiet, args.log_format)

    handlers = {
        "chat": _cmd_chat,
        "sessions": _cmd_sessions,
        "show": _cmd_show,
        "delete": _cmd_delete,
        "image": _cmd_image,
        "edit": _cmd_edit,
    }
    try:
        return handlers[args.command](args)
    except AuthenticationError as e:
        print(f"Error: {e} Set GEMINI_API_KEY or use /key in the chat.", file=sys.stderr)
        return 1
    except SparkError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1


def _base_config(args) -> ChatConfig:
    config = ChatConfig()
    if args.history:
        config.history_path = args.history
    return config


def _store(config: ChatConfig) -> SessionStore:
    return SessionStore(JsonFileBackend(config.history_path))


def _gateway(config: ChatConfig) -> LiteLLMGateway:
    return LiteLLMGateway(
        config.image_model,
        temperature=config.temperature,
        max_tokens=config.max_tokens,
    )


def _cmd_chat(args) -> int:
    config = get_profile(args.profile).apply(_base_config(args))
    if args.model:
        config.model = resolve_model_alias(args.model)
    if args.stream is not None:
        config.stream = bool(args.stream)
    if args.system is not None:
        config.system_instruction = args.system or None
    config.validate()

    store = _store(config)
    executor = TurnExecutor(_gateway(config), store=store)
    repl = ChatREPL(config, executor, store)
    executor.emitter = EventEmitter(repl.on_event)

    if args.session:
        session = store.get(args.session)
        if session is None:
            print(f"Error: Session {args.session} not found", file=sys.stderr)
            return 1
        # A stored chat stays bound to the model it was created with.
        config.model = session.model
        repl.new_conversation()
        repl.load_session(session.id)

    if args.attach:
        repl.attachment = load_attachment(args.attach)

    if args.message:
        repl.send(args.message)
        return 0

    repl.run()
    return 0


def _cmd_sessions(args) -> int:
    store = _store(_base_config(args))
    model = resolve_model_alias(args.model) if args.model else None
    sessions = store.list_by_model(model) if model else store.list_all()
    if not sessions:
        print("No saved chats")
        return 0
    for session in sessions:
        print(
            f"{session.id}  {format_timestamp(session.timestamp)}  "
            f"{session.model}  {session.title} ({len(session.messages)} messages)"
        )
    return 0


def _cmd_show(args) -> int:
    store = _store(_base_config(args))
    session = store.get(args.session_id)
    if session is None:
        print(f"Error: Session {args.session_id} not found", file=sys.stderr)
        return 1
    print(f"# {session.title}  ({session.model}, {format_timestamp(session.timestamp)})")
    for message in session.messages:
        for line in render_message(message):
            print(f"{message.author.value}: {line}")
    return 0


def _cmd_delete(args) -> int:
    store = _store(_base_config(args))
    store.delete(args.session_id)
    print(f"Deleted {args.session_id}")
    return 0


def _cmd_image(args) -> int:
    config = _base_config(args)
    if args.model:
        config.image_model = resolve_model_alias(args.model)
    config.validate()
    parts = _gateway(config).generate_image(args.prompt, api_key=config.api_key)
    media = [p.inline_data for p in parts if p.inline_data is not None]
    if not media:
        print("Error: No image data returned from API.", file=sys.stderr)
        return 1
    print(save_media(media[0], args.out or config.media_dir))
    return 0


def _cmd_edit(args) -> int:
    config = _base_config(args)
    gateway = _gateway(config)
    if args.model:
        gateway.edit_model = resolve_model_alias(args.model)
    source = load_attachment(args.image)
    if not source.is_image:
        print(f"Error: {args.image} is not an image", file=sys.stderr)
        return 2
    part = gateway.edit_image(source, args.prompt, api_key=config.api_key)
    print(save_media(part.inline_data, args.out or config.media_dir, stem="edited-image"))
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
