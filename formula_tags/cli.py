"""
Interactive formula REPL.

Each line typed at the prompt is fed to one editor session as a buffer
change. Operators, parentheses and a pending minus become tags right away;
numbers and ``a^b`` powers are committed as if the accept key had been
pressed; anything else is used as a search term and the matching
suggestions are listed for ``:pick``.
"""

import argparse
import asyncio
import logging
from typing import List, Optional

from prompt_toolkit import PromptSession
from prompt_toolkit.completion import WordCompleter
from prompt_toolkit.history import FileHistory

from .config import Settings, configure_logging
from .editor import FormulaEditor
from .errors import ConfigurationError
from .overlay import MULTIPLIERS
from .suggestions import Suggestion, SuggestionCache, SuggestionService
from .tags import Tag, format_number

logger = logging.getLogger(__name__)

HELP_TEXT = (
    "Formula REPL help:\n"
    "Type numbers, operators (+ - * /) and parentheses one per line to build a formula.\n"
    "All operators have equal strength and are applied left to right: 2 + 3 * 4 -> 20.\n"
    "Examples:\n"
    "  -        then 5      -> -5\n"
    "  2^10                 -> 1024\n"
    "  pi                   -> search suggestions, then :pick 1\n"
    "Commands:\n"
    "  :pick <n>              add suggestion n\n"
    "  :x <n> <m>             multiply tag n by m (" + ", ".join(f"x{m}" for m in MULTIPLIERS) + ")\n"
    "  :rm <n>                remove tag n\n"
    "  :del                   delete backward (removes the last tag if the buffer is empty)\n"
    "  :clear                 remove all tags\n"
    "  :tags                  show the formula\n"
    "  :help                  show help\n"
    "  :exit                  exit\n"
)


def _describe(tag: Tag) -> str:
    if tag.value is None:
        return tag.text
    return f"{tag.text}({format_number(tag.value)})"


class REPL:
    """Read-Eval-Print Loop around one formula editor session."""

    def __init__(self, settings: Settings, editor: Optional[FormulaEditor] = None):
        self.settings = settings
        self.service: Optional[SuggestionService] = None
        if editor is None:
            self.service = SuggestionService.from_settings(settings)
            editor = FormulaEditor(SuggestionCache(self.service, ttl=settings.cache_ttl))
        self.editor = editor
        self.offered: List[Suggestion] = []

    def render(self) -> str:
        """Numbered tags followed by the running result."""
        tags = self.editor.tags
        if tags:
            line = " ".join(f"[{i}] {_describe(tag)}" for i, tag in enumerate(tags, 1))
        else:
            line = "(empty formula)"
        return f"{line}\nResult: {format_number(self.editor.result)}"

    def _tag_at(self, arg: str) -> Tag:
        index = int(arg)
        tags = self.editor.tags
        if not 1 <= index <= len(tags):
            raise IndexError(f"No tag {index}")
        return tags[index - 1]

    def _run_command(self, cmd: str, args: List[str]) -> str:
        """Execute a colon command. Raises EOFError for exit/quit."""
        cmd_lower = cmd.lower()
        if cmd_lower in {'exit', 'quit'}:
            raise EOFError()
        if cmd_lower == 'help':
            return HELP_TEXT
        if cmd_lower == 'tags':
            return self.render()
        if cmd_lower == 'clear':
            self.editor.clear()
            return self.render()
        if cmd_lower == 'del':
            self.editor.handle_delete_backward()
            return self.render()
        if cmd_lower == 'rm':
            if len(args) != 1:
                return "Usage: :rm <n>"
            self.editor.remove_tag(self._tag_at(args[0]).id)
            return self.render()
        if cmd_lower == 'x':
            if len(args) != 2:
                return "Usage: :x <n> <multiplier>"
            tag = self._tag_at(args[0])
            if tag.value is None:
                return f"Tag {args[0]} has no value to multiply"
            multiplier = int(args[1])
            if multiplier not in MULTIPLIERS:
                return f"Multiplier must be one of {', '.join(str(m) for m in MULTIPLIERS)}"
            self.editor.apply_multiplier(tag.id, multiplier)
            return self.render()
        if cmd_lower == 'pick':
            if len(args) != 1:
                return "Usage: :pick <n>"
            index = int(args[0])
            if not 1 <= index <= len(self.offered):
                return f"No suggestion {index}"
            self.editor.pick_suggestion(self.offered[index - 1])
            self.offered = []
            return self.render()
        return f"Unknown command: {cmd}"

    def _process_command(self, line: str) -> str:
        body = line[1:].strip()
        if body == '':
            return "No command specified. Use :help for available commands."
        parts = body.split()
        try:
            return self._run_command(parts[0], parts[1:])
        except (ValueError, IndexError) as e:
            return f"Command error: {e}"

    def _list_suggestions(self) -> str:
        if not self.offered:
            return f"No suggestions for {self.editor.buffer!r}"
        lines = [
            f"  {i}. [{s.category}] {s.name}" + (f" = {s.value}" if s.value not in (None, "") else "")
            for i, s in enumerate(self.offered, 1)
        ]
        return "Suggestions (use :pick <n>):\n" + "\n".join(lines)

    async def evaluate_line(self, line: str) -> str:
        """Handle one line of input and return the text to print."""
        text = line.strip()
        if text.startswith(':'):
            return self._process_command(text)

        # Each line is a complete new buffer; drop text left pending by the previous one.
        self.editor.discard_buffer()
        self.editor.handle_input(text)
        if self.editor.buffer:
            self.editor.handle_accept()
        if not self.editor.buffer:
            self.offered = []
            return self.render()

        try:
            await self.editor.refresh_suggestions()
        except ConfigurationError as e:
            logger.error(f"Suggestion lookup unavailable: {e}")
            self.offered = self.editor.offered_suggestions
            return f"Error: {e}\n{self.render()}"
        self.offered = self.editor.offered_suggestions
        return f"{self._list_suggestions()}\n{self.render()}"

    async def repl_loop(self) -> None:
        """Interactive loop with file-backed history and suggestion-name completion."""
        print("Formula REPL. Type :help for help. Ctrl-D or :exit to quit.")
        session = PromptSession(history=FileHistory(self.settings.history_file))
        while True:
            try:
                completer = WordCompleter([s.name for s in self.offered], ignore_case=True)
                line = await session.prompt_async('> ', completer=completer)
            except KeyboardInterrupt:
                print("^C")
                continue
            except EOFError:
                print("Exiting.")
                break
            if not line.strip():
                continue
            try:
                print(await self.evaluate_line(line))
            except EOFError:
                print("Exiting.")
                break

    async def close(self) -> None:
        if self.service is not None:
            await self.service.close()


async def _run(repl: REPL) -> None:
    try:
        await repl.repl_loop()
    finally:
        await repl.close()


def main(argv: Optional[List[str]] = None) -> int:
    parser = argparse.ArgumentParser(description="Build arithmetic formulas tag by tag.")
    parser.add_argument("--env-file", default=None, help="Path to a .env file with settings")
    args = parser.parse_args(argv)

    settings = Settings.from_env(args.env_file)
    configure_logging(settings)
    asyncio.run(_run(REPL(settings)))
    return 0


if __name__ == '__main__':
    raise SystemExit(main())
