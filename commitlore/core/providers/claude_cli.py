"""Client that shells out to a locally installed ``claude`` executable."""

from __future__ import annotations

import asyncio
import os
import time
from typing import Callable, List, Optional
import shutil

from commitlore.core.availability import availability_hint, resolve_executable
from commitlore.core.config import ProviderDescriptor
from commitlore.core.errors import ProviderUnavailableError
from commitlore.core.providers.base import TextGenerator
from commitlore.core.providers.errors import ProviderEmptyResponseError, ProviderProcessError
from commitlore.utils.log import get_logger

logger = get_logger()


def build_cli_prompt(system_prompt: str, prompt: str) -> str:
    """The CLI has no system flag, so the instruction is folded into the prompt."""
    if system_prompt:
        return f"System: {system_prompt}\n\nUser: {prompt}"
    return prompt


class ClaudeCLIClient(TextGenerator):
    """Runs ``<exe> --print --output-format text <prompt>`` per request."""

    def __init__(self, exec_path: str, *, provider_id: str = "claude-cli") -> None:
        self.exec_path = exec_path
        self.provider_id = provider_id

    @classmethod
    def from_descriptor(
        cls,
        descriptor: ProviderDescriptor,
        which: Callable[[str], Optional[str]] = shutil.which,
    ) -> "ClaudeCLIClient":
        exec_path = resolve_executable(descriptor, which)
        if not exec_path:
            raise ProviderUnavailableError(descriptor.id, availability_hint(descriptor))
        logger.info(
            "[claude_cli] Resolved executable",
            extra={"provider_id": descriptor.id, "exec_path": exec_path},
        )
        return cls(exec_path, provider_id=descriptor.id)

    def build_argv(self, system_prompt: str, prompt: str) -> List[str]:
        return [
            self.exec_path,
            "--print",
            "--output-format",
            "text",
            build_cli_prompt(system_prompt, prompt),
        ]

    async def generate_with_system(self, system_prompt: str, prompt: str) -> str:
        start_time = time.time()
        argv = self.build_argv(system_prompt, prompt)
        logger.info(
            "[claude_cli] Running CLI",
            extra={
                "exec_path": self.exec_path,
                "system_prompt_length": len(system_prompt),
                "user_prompt_length": len(prompt),
            },
        )
        try:
            process = await asyncio.create_subprocess_exec(
                *argv,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
                stdin=asyncio.subprocess.DEVNULL,
                env=os.environ.copy(),
            )
        except OSError as exc:
            raise ProviderProcessError(f"Failed to start {self.exec_path}: {exc}") from exc

        try:
            stdout_bytes, stderr_bytes = await process.communicate()
        except asyncio.CancelledError:
            # Deadline fired; do not leave the child running.
            if process.returncode is None:
                try:
                    process.kill()
                except ProcessLookupError:
                    pass
                await process.wait()
            raise

        stdout = stdout_bytes.decode("utf-8", errors="replace")
        stderr = stderr_bytes.decode("utf-8", errors="replace")
        duration_ms = round((time.time() - start_time) * 1000, 2)

        if process.returncode != 0:
            logger.error(
                "[claude_cli] CLI exited with an error",
                extra={
                    "returncode": process.returncode,
                    "stderr": stderr[:500],
                    "duration_ms": duration_ms,
                },
            )
            raise ProviderProcessError(
                f"claude CLI execution failed with exit code {process.returncode} "
                f"(stderr: {stderr.strip()})",
                returncode=process.returncode,
                stderr=stderr,
            )

        response = stdout.strip()
        if not response:
            raise ProviderEmptyResponseError(
                f"claude CLI returned empty response (stderr: {stderr.strip()})"
            )

        logger.info(
            "[claude_cli] Generated content",
            extra={"response_length": len(response), "duration_ms": duration_ms},
        )
        return response
