from __future__ import annotations

import logging
import subprocess
from collections.abc import Callable
from datetime import date, datetime, time, timedelta, timezone, tzinfo
from pathlib import Path

from worklog_digest.errors import ErrorKind, WorklogError
from worklog_digest.models import Commit

logger = logging.getLogger(__name__)

FIELD_SEP = "\x1f"
RECORD_SEP = "\x1e"
LOG_FORMAT = f"%H{FIELD_SEP}%an{FIELD_SEP}%ae{FIELD_SEP}%aI{FIELD_SEP}%s{RECORD_SEP}"


def _run_git(repo_path: Path, args: list[str]) -> str:
    cmd = ["git", "-C", str(repo_path), *args]
    proc = subprocess.run(cmd, check=False, capture_output=True, text=True)
    if proc.returncode != 0:
        raise WorklogError(
            ErrorKind.REPOSITORY,
            f"git command failed: {proc.stderr.strip()}",
            context={"location": str(repo_path), "command": args[0] if args else ""},
        )
    return proc.stdout


def resolve_repository(location: str | Path) -> Path:
    """Return the absolute work-tree root for ``location`` or raise ``REPOSITORY``."""
    candidate = Path(location).expanduser()
    if not candidate.is_dir():
        raise WorklogError(
            ErrorKind.REPOSITORY,
            "Repository location is not a directory",
            context={"location": str(candidate)},
        )
    try:
        inside = _run_git(candidate, ["rev-parse", "--is-inside-work-tree"]).strip()
    except WorklogError as exc:
        raise WorklogError(
            ErrorKind.REPOSITORY,
            "Directory is not a git repository",
            context={"location": str(candidate)},
        ) from exc
    if inside != "true":
        raise WorklogError(
            ErrorKind.REPOSITORY,
            "Directory is not a git work tree",
            context={"location": str(candidate)},
        )
    return Path(_run_git(candidate, ["rev-parse", "--show-toplevel"]).strip()).resolve()


def repository_identifier(location: str | Path) -> str:
    """Stable identifier stored with each summary (``file://`` URL of the work tree)."""
    return resolve_repository(location).as_uri()


def parse_log(output: str) -> list[Commit]:
    commits: list[Commit] = []
    for record in output.split(RECORD_SEP):
        record = record.strip("\n")
        if not record.strip():
            continue
        commit_hash, author, email, ts, subject = record.split(FIELD_SEP, maxsplit=4)
        commits.append(
            Commit(
                hash=commit_hash,
                author_name=author,
                author_email=email,
                timestamp=datetime.fromisoformat(ts.replace("Z", "+00:00")),
                message=subject,
            )
        )
    return commits


class GitSourceProvider:
    """Read an author's non-merge commits from a local git repository."""

    def __init__(
        self,
        max_lookback_days: int = 31,
        tz: tzinfo = timezone.utc,
        today: Callable[[], date] | None = None,
    ):
        self.max_lookback_days = max_lookback_days
        self.tz = tz
        self._today = today or (lambda: datetime.now(self.tz).date())

    def get_commits(self, author: str, since: date, location: str) -> list[Commit]:
        repo_path = resolve_repository(location)
        earliest = self._today() - timedelta(days=self.max_lookback_days)
        effective_since = max(since, earliest)

        args = [
            "log",
            "--all",
            "--no-merges",
            "--regexp-ignore-case",
            f"--author={author.strip()}",
            f"--since={datetime.combine(effective_since, time.min, tzinfo=self.tz).isoformat()}",
            f"--pretty=format:{LOG_FORMAT}",
        ]
        commits = parse_log(_run_git(repo_path, args))
        logger.info(
            "[git] found %d commit(s) author=%s since=%s repo=%s",
            len(commits),
            author,
            effective_since,
            repo_path.name,
        )
        return commits
