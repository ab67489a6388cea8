"""RPX compression and decompression via wiiurpxtool."""

from __future__ import annotations

import logging
import subprocess
from pathlib import Path
from typing import Protocol

from rpxpatch.errors import ExternalToolError, PatchIOError

logger = logging.getLogger(__name__)


class ImageCodec(Protocol):
    """Converts between the compressed RPX and a plain ELF image."""

    def decompress(self, input_path: Path, output_path: Path) -> None: ...

    def compress(self, input_path: Path, output_path: Path) -> None: ...


class WiiuRpxTool:
    """Runs the wiiurpxtool executable.

    The tool reports errors on stderr without a reliable exit code, so any
    stderr output counts as failure.
    """

    def __init__(self, tool_path: Path, timeout: float | None = None):
        self.tool_path = tool_path
        self.timeout = timeout

    def _run(self, flag: str, input_path: Path, output_path: Path) -> None:
        cmd = [str(self.tool_path), flag, str(input_path), str(output_path)]
        logger.debug("Running %s", " ".join(cmd))
        try:
            result = subprocess.run(
                cmd,
                capture_output=True,
                text=True,
                timeout=self.timeout,
            )
        except (OSError, subprocess.TimeoutExpired) as e:
            raise PatchIOError(f"Failed to run {self.tool_path.name}: {e}") from e

        if result.stderr:
            raise ExternalToolError(self.tool_path.name, result.stderr)

    def decompress(self, input_path: Path, output_path: Path) -> None:
        self._run("-d", input_path, output_path)

    def compress(self, input_path: Path, output_path: Path) -> None:
        self._run("-c", input_path, output_path)
