"""Application entrypoint - console front end for the popup chat core."""

import logging
import sys
import time
from logging.handlers import RotatingFileHandler
from pathlib import Path

import structlog

from popup_gpt.chat.client import ChatClient
from popup_gpt.config import Settings, get_settings
from popup_gpt.ui.view import ResponseView

FRAME_INTERVAL = 1 / 60


def _log_handlers(
    level: int,
    log_file: str,
    max_bytes: int,
    backup_count: int,
) -> list[logging.Handler]:
    """Stderr handler first, then a rotating file handler if a path is given."""
    handlers: list[logging.Handler] = [logging.StreamHandler(sys.stderr)]
    if log_file:
        Path(log_file).parent.mkdir(parents=True, exist_ok=True)
        handlers.append(
            RotatingFileHandler(
                log_file,
                maxBytes=max_bytes,
                backupCount=backup_count,
                encoding="utf-8",
            )
        )

    # structlog renders the whole line; stdlib only passes it through
    passthrough = logging.Formatter("%(message)s")
    for handler in handlers:
        handler.setLevel(level)
        handler.setFormatter(passthrough)
    return handlers


def _log_processors(json_lines: bool) -> list:
    renderer = structlog.processors.JSONRenderer() if json_lines else structlog.dev.ConsoleRenderer()
    return [
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.format_exc_info,
        renderer,
    ]


def configure_logging(
    log_level: str = "INFO",
    log_file: str = "",
    log_file_max_bytes: int = 10_485_760,
    log_file_backup_count: int = 5,
) -> None:
    """Route structlog through the root logger.

    Console output always goes to stderr so it stays apart from the
    answer text on stdout. With ``log_file`` set, records are also
    written as JSON lines to a size-rotated file. An unrecognized
    ``log_level`` falls back to INFO.
    """
    level = logging.getLevelName(log_level.upper())
    if not isinstance(level, int):
        level = logging.INFO

    root = logging.getLogger()
    root.handlers.clear()
    root.setLevel(level)
    for handler in _log_handlers(level, log_file, log_file_max_bytes, log_file_backup_count):
        root.addHandler(handler)

    structlog.configure(
        processors=_log_processors(json_lines=bool(log_file)),
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )


logger = structlog.get_logger()


def create_client(settings: Settings) -> ChatClient:
    """Create the chat client from settings."""
    client = ChatClient(settings)
    logger.info("chat_client_initialized", endpoint=settings.endpoint, model=settings.model_name)
    return client


def render_answer(view: ResponseView, out=None) -> None:
    """Drive the view frame by frame until the answer is fully shown."""
    out = out or sys.stdout
    shown = 0
    while True:
        view.poll()
        more = view.advance_render()

        text = view.visible_text
        if len(text) > shown:
            out.write(text[shown:])
            out.flush()
            shown = len(text)

        if not view.in_flight and not more:
            break
        time.sleep(FRAME_INTERVAL)

    out.write("\n")
    if view.error:
        out.write(f"[error] {view.error}\n")
    out.flush()


def run_console(client: ChatClient) -> None:
    """Read prompts from stdin and stream answers to stdout.

    ``/clear`` starts a new conversation, ``/quit`` or EOF exits.
    """
    view = ResponseView(client)

    while True:
        try:
            prompt = input("> ").strip()
        except (EOFError, KeyboardInterrupt):
            break

        if not prompt:
            continue
        if prompt == "/quit":
            break
        if prompt == "/clear":
            view.reset()
            logger.info("conversation_reset")
            continue

        if not view.submit(prompt):
            print("[busy] previous answer is still streaming", file=sys.stderr)
            continue
        render_answer(view)


def main() -> None:
    """Run the console chat."""
    settings = get_settings()
    configure_logging(
        log_level=settings.log_level,
        log_file=settings.log_file,
        log_file_max_bytes=settings.log_file_max_bytes,
        log_file_backup_count=settings.log_file_backup_count,
    )

    logger.info("starting_popup_gpt", model=settings.model_name, log_level=settings.log_level)

    with create_client(settings) as client:
        run_console(client)


if __name__ == "__main__":
    main()
