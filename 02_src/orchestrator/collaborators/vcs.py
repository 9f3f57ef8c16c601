"""Version control collaborator: interface plus a git CLI implementation."""

import asyncio
from dataclasses import dataclass, field
from pathlib import Path
from typing import Protocol

from ..logging_config import get_logger

logger = get_logger(__name__)


class VersionControlError(RuntimeError):
    pass


@dataclass
class RepoStatus:
    branch: str
    changed_files: list[str] = field(default_factory=list)

    @property
    def clean(self) -> bool:
        return not self.changed_files


class IVersionControl(Protocol):
    """Branch inspection and creation."""

    async def status(self) -> RepoStatus:
        """Current branch and uncommitted changes."""
        ...

    async def current_branch(self) -> str:
        """Name of the checked-out branch."""
        ...

    async def create_branch(self, name: str, base: str | None = None) -> None:
        """Create and check out `name`, from `base` if given."""
        ...


class GitVersionControl:
    """Runs the `git` executable in a working tree."""

    def __init__(self, repo_path: str | Path):
        self._repo_path = Path(repo_path)

    async def status(self) -> RepoStatus:
        output = await self._git("status", "--porcelain")
        changed = [line[3:] for line in output.splitlines() if line.strip()]
        return RepoStatus(branch=await self.current_branch(), changed_files=changed)

    async def current_branch(self) -> str:
        return (await self._git("rev-parse", "--abbrev-ref", "HEAD")).strip()

    async def create_branch(self, name: str, base: str | None = None) -> None:
        args = ["checkout", "-b", name]
        if base:
            args.append(base)
        await self._git(*args)
        logger.info("Created branch %s", name)

    async def _git(self, *args: str) -> str:
        process = await asyncio.create_subprocess_exec(
            "git",
            *args,
            cwd=self._repo_path,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
        )
        stdout, stderr = await process.communicate()
        if process.returncode != 0:
            raise VersionControlError(
                f"git {' '.join(args)} failed: {stderr.decode().strip()}"
            )
        return stdout.decode()
