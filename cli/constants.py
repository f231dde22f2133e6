"""CLI constants and configuration."""

from prompt_toolkit.styles import Style

COMMANDS = ["upload", "resume", "cancel", "status", "checkpoints", "token", "clear", "exit", "help"]

STYLE = Style.from_dict(
    {
        "prompt": "#E8A33D bold",
        "command": "#0088ff bold",
    }
)

AMBER = "\033[38;2;232;163;61m"
GREEN = "\033[32m"
YELLOW = "\033[33m"
RED = "\033[31m"
RESET = "\033[0m"

LOGO = f"""{AMBER}
 ██████╗ ███████╗███████╗██╗     ██╗   ██╗██████╗
 ██╔══██╗██╔════╝██╔════╝██║     ██║   ██║██╔══██╗
 ██████╔╝█████╗  █████╗  ██║     ██║   ██║██████╔╝
 ██╔══██╗██╔══╝  ██╔══╝  ██║     ██║   ██║██╔═══╝
 ██║  ██║███████╗███████╗███████╗╚██████╔╝██║
 ╚═╝  ╚═╝╚══════╝╚══════╝╚══════╝ ╚═════╝ ╚═╝
{RESET}"""

WELCOME_TITLE = "Reelup CLI - Resumable Video Uploads"
WELCOME_HELP = "Type 'help' for commands or 'exit' to quit.\n"

PROMPT_TEXT = "reelup> "

HELP_TEXT = """Available commands:
  upload <path> [--type mime] [--id id]   Upload a video file in the background
  resume <upload_id> <path>               Resume an interrupted upload from its checkpoint
  cancel <upload_id>                      Cancel an upload in progress
  status [upload_id]                      Show progress of one or all uploads
  checkpoints                             List uploads that can be resumed
  token <token>                           Save the bearer token sent to the signer
  clear                                   Clear screen and redisplay welcome message
  help                                    Show this help
  exit                                    Exit REPL (running uploads are interrupted)

Allowed types: mp4, webm, mov, avi, mkv (max 10 GiB per file).
Examples:
  upload videos/holiday.mp4
  upload raw/clip.bin --type video/webm --id clip-001
  status
  cancel clip-001
  resume clip-001 raw/clip.bin"""

CONTENT_TYPES_BY_EXTENSION = {
    ".mp4": "video/mp4",
    ".webm": "video/webm",
    ".mov": "video/quicktime",
    ".avi": "video/avi",
    ".mkv": "video/mkv",
}
