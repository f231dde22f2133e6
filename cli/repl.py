"""REPL with prompt_toolkit for user interaction."""

import os
import sys
from prompt_toolkit import PromptSession
from prompt_toolkit.completion import WordCompleter
from prompt_toolkit.history import InMemoryHistory
from prompt_toolkit.patch_stdout import patch_stdout

from cli.commands import (
    configure,
    get_service,
    handle_cancel,
    handle_checkpoints,
    handle_resume,
    handle_status,
    handle_token,
    handle_upload,
    shutdown,
)
from cli.config import Config
from cli.constants import (
    COMMANDS,
    HELP_TEXT,
    LOGO,
    PROMPT_TEXT,
    STYLE,
    WELCOME_HELP,
    WELCOME_TITLE,
)
from cli.models import (
    CancelCommand,
    CheckpointsCommand,
    ResumeCommand,
    StatusCommand,
    TokenCommand,
    UploadCommand,
)
from cli.parser import ParseError, parse_command

_HANDLERS = {
    UploadCommand: handle_upload,
    ResumeCommand: handle_resume,
    CancelCommand: handle_cancel,
    StatusCommand: handle_status,
    CheckpointsCommand: handle_checkpoints,
    TokenCommand: handle_token,
}


def clear_screen() -> None:
    """Clear the terminal screen (cross-platform)."""
    os.system("cls" if sys.platform == "win32" else "clear")


def show_welcome(signer_url: str = None, resumable: int = 0) -> None:
    """Display Reelup logo, target signer and resumable upload count."""
    print(LOGO)
    print(WELCOME_TITLE)
    if signer_url:
        print(f"Signer: {signer_url}")
    if resumable:
        print(f"{resumable} interrupted upload(s) can be resumed, see 'checkpoints'")
    print(WELCOME_HELP)


async def dispatch_command(cmd_obj) -> str:
    """Dispatch parsed command to appropriate handler."""
    handler = _HANDLERS.get(type(cmd_obj))
    if handler is None:
        return f"Unknown command type: {type(cmd_obj)}"
    return await handler(cmd_obj)


async def repl_loop(config: Config = None) -> None:
    """
    Start interactive REPL.

    Uploads run as background tasks, so the prompt stays responsive while
    they transfer. Leaving the loop interrupts them; their checkpoints stay
    on disk for the next session.
    """
    if config is not None:
        configure(config)
    service = get_service()

    session: PromptSession = PromptSession(
        completer=WordCompleter(COMMANDS, ignore_case=True),
        history=InMemoryHistory(),
        style=STYLE,
    )

    def redraw() -> None:
        clear_screen()
        show_welcome(
            str(service.client.base_url).rstrip("/"),
            len(service.resume_manager.pending()),
        )

    redraw()

    try:
        with patch_stdout():
            while True:
                try:
                    user_input = (await session.prompt_async([("class:prompt", PROMPT_TEXT)])).strip()
                except KeyboardInterrupt:
                    continue
                except EOFError:
                    print("\nGoodbye!")
                    break

                if not user_input:
                    continue
                if user_input == "exit":
                    print("Goodbye!")
                    break
                if user_input == "help":
                    print(HELP_TEXT)
                    continue
                if user_input == "clear":
                    redraw()
                    continue

                try:
                    print(await dispatch_command(parse_command(user_input)))
                except ParseError as e:
                    print(f"Error: {e}")
    finally:
        await shutdown()
