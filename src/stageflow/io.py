"""User-input providers.

An input provider turns a prompt (and an optional list of choices) into the
user's answer. `None` means the user cancelled. No timeout is applied here;
callers that need one wrap the call themselves.
"""

from __future__ import annotations

import asyncio
import logging
import sys
from collections.abc import Iterable, Sequence
from typing import Protocol, TextIO

logger = logging.getLogger(__name__)


class InputProvider(Protocol):
    async def request_input(
        self, prompt: str, options: Sequence[str] | None = None
    ) -> str | None: ...


class ScriptedInputProvider:
    """Replays canned answers in order.

    Used for non-interactive runs and tests. Every prompt is recorded in
    `prompts` so callers can assert on what was asked.
    """

    def __init__(self, answers: Iterable[str | None]) -> None:
        self._answers = list(answers)
        self.prompts: list[tuple[str, list[str] | None]] = []

    @property
    def remaining(self) -> int:
        return len(self._answers)

    async def request_input(
        self, prompt: str, options: Sequence[str] | None = None
    ) -> str | None:
        self.prompts.append((prompt, list(options) if options is not None else None))
        if not self._answers:
            raise LookupError(f"No scripted answer left for prompt: {prompt!r}")
        return self._answers.pop(0)


class ConsoleInputProvider:
    """Interactive provider reading from a terminal.

    Options are rendered as a numbered list; answering with a number picks the
    matching option. End of input counts as cancellation.
    """

    def __init__(self, stdin: TextIO | None = None, stdout: TextIO | None = None) -> None:
        self._stdin = stdin or sys.stdin
        self._stdout = stdout or sys.stdout

    async def request_input(
        self, prompt: str, options: Sequence[str] | None = None
    ) -> str | None:
        self._stdout.write(f"\n{prompt}\n")
        if options:
            for number, option in enumerate(options, start=1):
                self._stdout.write(f"  {number}. {option}\n")
        self._stdout.write("> ")
        self._stdout.flush()

        # Reading a line blocks; keep it off the event loop.
        line = await asyncio.to_thread(self._stdin.readline)
        if not line:
            logger.info("Input stream closed, treating prompt as cancelled")
            return None

        answer = line.strip()
        if options and answer.isdigit():
            index = int(answer) - 1
            if 0 <= index < len(options):
                return options[index]
        return answer
