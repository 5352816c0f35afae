# chatfs: Console entrypoint. Parses argv by hand, loads settings and limits for the chosen root,
# wires a ResponsesClient into an Orchestrator and runs a small REPL on top of it.

import pathlib
import sys

from .client import ResponsesClient
from .config import limits_from_env
from .context import Context
from .orchestrator import Orchestrator
from .prompts import get_prompt
from .settings import apply_limit_overrides, load_settings

USAGE = "Usage: chatfs [root]"


def run_repl(session: Orchestrator, ctx: Context) -> None:
    """
    Read lines until EOF or :quit.

    Lines starting with ':' drive the session (:confirm, :discard, :help, :quit); anything
    else, including slash commands, is passed to the session as chat text.
    """
    ctx.send_to_user("Type :help for commands.")
    while True:
        try:
            text = input("> ").strip()
        except (EOFError, KeyboardInterrupt):
            ctx.send_to_user("\nGoodbye.")
            break
        if not text:
            continue
        if text.startswith(":"):
            if not handle_repl_command(session, ctx, text):
                break
            continue
        session.handle_message(text)
    session.close()


def handle_repl_command(session: Orchestrator, ctx: Context, text: str) -> bool:
    """Run one ':' command; returns False when the REPL should stop."""
    parts = text.split()
    cmd, args = parts[0].lower(), parts[1:]
    if cmd in (":quit", ":exit", ":q"):
        ctx.send_to_user("Goodbye.")
        return False
    if cmd == ":help":
        ctx.send_to_user(get_prompt("help.txt"))
        ctx.send_to_user("Session commands:\n:confirm <id>  :discard <id>  :help  :quit")
        return True
    if cmd in (":confirm", ":discard"):
        if len(args) != 1:
            ctx.error_message(f"usage: {cmd} <id>")
            return True
        if cmd == ":confirm":
            session.confirm(args[0])
        else:
            session.discard(args[0])
        return True
    ctx.error_message(f"unknown command: {cmd}")
    return True


def main() -> None:
    """
    chatfs CLI entrypoint.

    Usage:
        chatfs [root]

    Notes:
        - OPENAI_API_KEY and AI_MODEL (or the AZURE_OPENAI_* variables) configure the model.
        - Optional <root>/.chatfs/settings.yaml may override api and limits settings.
        - If root is not supplied, the current directory is used.
    """
    args = sys.argv[1:]

    # Help handling (recognized anywhere in argv)
    if any(a in ("-h", "--help") for a in args):
        print(USAGE)
        print("Environment:")
        print("  OPENAI_API_KEY, AI_MODEL, CHATFS_MAX_CONTEXT_BYTES, CHATFS_MAX_READ_BYTES,")
        print("  CHATFS_MAX_WRITE_BYTES, CHATFS_HISTORY_TURNS, CHATFS_MAX_COMPLETION_TOKENS")
        return

    root_arg = None
    for a in args:
        if a.startswith("-"):
            print(f"error: unknown option: {a}")
            return
        if root_arg is not None:
            print(USAGE)
            return
        root_arg = a

    root = pathlib.Path(root_arg).resolve() if root_arg else pathlib.Path(".").resolve()
    if not root.is_dir():
        print(f"error: not a directory: {root}")
        return

    settings = load_settings(root)
    ctx = Context(str(root), settings=settings)
    limits = apply_limit_overrides(limits_from_env(), settings)
    client = ResponsesClient(settings=settings, ctx=ctx)
    if client.configuration_error:
        ctx.error_message(client.configuration_error)

    ctx.send_to_user(f"chatfs: workspace {root} (model: {client.model})")
    session = Orchestrator(str(root), client, ctx=ctx, limits=limits)
    run_repl(session, ctx)


if __name__ == "__main__":
    main()
