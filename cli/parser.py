"""Command parser for CLI input."""

import shlex

from cli.models import (
    CancelCommand,
    CheckpointsCommand,
    CommandRequest,
    ResumeCommand,
    StatusCommand,
    TokenCommand,
    UploadCommand,
)


class ParseError(Exception):
    """Raised when command parsing fails."""

    pass


def parse_command(input_line: str) -> CommandRequest:
    """Parse user input into a CommandRequest object.

    Args:
        input_line: Raw user input from REPL

    Returns:
        CommandRequest object (one of Upload/Resume/Cancel/Status/Checkpoints/Token)

    Raises:
        ParseError: If command syntax is invalid
    """
    if not input_line.strip():
        raise ParseError("Empty command")

    try:
        tokens = shlex.split(input_line)
    except ValueError as e:
        raise ParseError(f"Invalid syntax: {e}")

    if not tokens:
        raise ParseError("Empty command")

    command_name = tokens[0]

    if command_name == "upload":
        return _parse_upload(tokens[1:])
    elif command_name == "resume":
        return _parse_resume(tokens[1:])
    elif command_name == "cancel":
        return _parse_cancel(tokens[1:])
    elif command_name == "status":
        return _parse_status(tokens[1:])
    elif command_name == "checkpoints":
        if tokens[1:]:
            raise ParseError("checkpoints takes no arguments")
        return CheckpointsCommand()
    elif command_name == "token":
        if len(tokens) != 2:
            raise ParseError("token requires exactly 1 argument: <token>")
        return TokenCommand(token=tokens[1])
    else:
        raise ParseError(f"Unknown command: {command_name}")


def _parse_upload(args: list[str]) -> UploadCommand:
    """Parse 'upload <path> [--type mime] [--id id]' command."""
    path = None
    options: dict[str, str] = {}

    index = 0
    while index < len(args):
        arg = args[index]
        if arg in ("--type", "--id"):
            if index + 1 >= len(args):
                raise ParseError(f"{arg} requires a value")
            options[arg] = args[index + 1]
            index += 2
            continue
        if arg.startswith("--"):
            raise ParseError(f"Unknown option: {arg}")
        if path is not None:
            raise ParseError("upload accepts exactly one file path")
        path = arg
        index += 1

    if path is None:
        raise ParseError("upload requires a file path: upload <path> [--type mime] [--id id]")

    return UploadCommand(
        path=path,
        content_type=options.get("--type"),
        upload_id=options.get("--id"),
    )


def _parse_resume(args: list[str]) -> ResumeCommand:
    """Parse 'resume <upload_id> <path>' command."""
    if len(args) != 2:
        raise ParseError("resume requires exactly 2 arguments: <upload_id> <path>")

    upload_id, path = args
    return ResumeCommand(upload_id=upload_id, path=path)


def _parse_cancel(args: list[str]) -> CancelCommand:
    """Parse 'cancel <upload_id>' command."""
    if len(args) != 1:
        raise ParseError("cancel requires exactly 1 argument: <upload_id>")

    return CancelCommand(upload_id=args[0])


def _parse_status(args: list[str]) -> StatusCommand:
    """Parse 'status [upload_id]' command."""
    if len(args) > 1:
        raise ParseError("status accepts at most 1 argument: [upload_id]")

    return StatusCommand(upload_id=args[0] if args else None)
