"""
Git transport for repositories.

Cloning and updating shell out to the `git` executable. Failures are
reported as `TransportError` and never retried here; callers decide whether
to try again.
"""

import logging
import shutil
import subprocess
from pathlib import Path
from typing import List, Optional, Union

from .errors import TransportError

logger = logging.getLogger(__name__)


def _git() -> str:
    git = shutil.which("git")
    if git is None:
        raise TransportError("git executable not found on PATH")
    return git


def _run(args: List[str], timeout: Optional[float], cwd: Optional[Path] = None) -> str:
    logger.debug("Running %s", " ".join(args))
    try:
        proc = subprocess.run(
            args,
            cwd=cwd,
            capture_output=True,
            text=True,
            timeout=timeout,
            check=False,
        )
    except subprocess.TimeoutExpired as e:
        raise TransportError(f"git timed out after {e.timeout}s") from e
    except OSError as e:
        raise TransportError(f"Could not run git: {e}") from e
    if proc.returncode != 0:
        message = (proc.stderr or proc.stdout).strip()
        raise TransportError(f"git exited with {proc.returncode}: {message}")
    return proc.stdout


def clone(
    remote_url: str,
    local_path: Union[str, Path],
    timeout: Optional[float] = None,
    branch: Optional[str] = None,
) -> Path:
    """Shallow-clone `remote_url` into `local_path`."""
    local_path = Path(local_path)
    if local_path.exists() and any(local_path.iterdir()):
        raise TransportError(f"{local_path} exists and is not empty")
    args = [_git(), "clone", "--depth", "1"]
    if branch:
        args += ["--branch", branch]
    args += [remote_url, str(local_path)]
    _run(args, timeout)
    logger.info("Cloned %s into %s", remote_url, local_path)
    return local_path


def fetch(local_path: Union[str, Path], timeout: Optional[float] = None) -> str:
    """Fast-forward an existing clone. Returns git's output."""
    local_path = Path(local_path)
    if not (local_path / ".git").exists():
        raise TransportError(f"{local_path} is not a git checkout")
    return _run([_git(), "pull", "--ff-only"], timeout, cwd=local_path)
