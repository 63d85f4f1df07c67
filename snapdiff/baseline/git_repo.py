"""Git access for reading baseline files and ignore rules."""

from __future__ import annotations

import asyncio
import logging
from pathlib import Path

from snapdiff.errors import TransportError

logger = logging.getLogger(__name__)


class GitRepo:
    """Thin async wrapper around the `git` executable."""

    def __init__(self, cwd: str | Path | None = None):
        self.cwd = str(cwd) if cwd else None

    async def _run(self, *args: str, input: bytes | None = None) -> tuple[int, bytes, bytes]:
        logger.debug("Running: git %s", " ".join(args))
        try:
            process = await asyncio.create_subprocess_exec(
                "git", *args,
                cwd=self.cwd,
                stdin=asyncio.subprocess.PIPE if input is not None else None,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except FileNotFoundError as e:
            raise TransportError("git executable not found", {"args": " ".join(args)}) from e
        stdout, stderr = await process.communicate(input)
        return process.returncode, stdout, stderr

    async def revision_exists(self, revision: str) -> bool:
        returncode, _, _ = await self._run("rev-parse", "--verify", "--quiet", f"{revision}^{{commit}}")
        return returncode == 0

    async def read_file_at_revision(self, path: str, revision: str) -> bytes:
        returncode, stdout, stderr = await self._run("show", f"{revision}:{path}")
        if returncode != 0:
            raise TransportError(
                f"Unable to read file from git: {stderr.decode(errors='replace').strip()}",
                {"path": path, "revision": revision},
            )
        return stdout

    async def get_ignored_paths(self, paths: list[str]) -> set[str]:
        """Subset of `paths` matched by the repository's ignore rules.

        Paths outside any git work tree have no ignore rules and yield an empty set.
        """
        if not paths:
            return set()
        returncode, stdout, stderr = await self._run(
            "check-ignore", "--stdin", input="\n".join(paths).encode() + b"\n",
        )
        # 0: some paths ignored, 1: none ignored
        if returncode in (0, 1):
            return {line for line in stdout.decode().splitlines() if line}

        message = stderr.decode(errors="replace").strip()
        if "not a git repository" in message:
            logger.debug("No git repository; nothing is ignored")
            return set()
        raise TransportError(f"Unable to check git ignore rules: {message}", {"paths": len(paths)})
