import json
import os
import shutil
import subprocess
import sys
import tempfile
import unittest
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from codewalk.git import (  # noqa: E402
    GitCommandError,
    get_branch_commits,
    get_commit_file_diffs,
    get_current_branch,
    parse_commit_log,
    read_file_lines,
    run_git,
)
from codewalk.loader import BranchLoader, groups_payload  # noqa: E402

GIT_ENV = {
    "GIT_AUTHOR_NAME": "Test",
    "GIT_AUTHOR_EMAIL": "test@example.com",
    "GIT_COMMITTER_NAME": "Test",
    "GIT_COMMITTER_EMAIL": "test@example.com",
}


def git(repo: Path, *args: str) -> str:
    process = subprocess.run(
        ["git", "-C", str(repo), *args],
        capture_output=True,
        text=True,
        check=True,
        env={**os.environ, **GIT_ENV},
    )
    return process.stdout.strip()


def init_repo(repo: Path) -> None:
    git(repo, "init", "-q")
    git(repo, "symbolic-ref", "HEAD", "refs/heads/main")
    git(repo, "config", "commit.gpgsign", "false")


def commit_all(repo: Path, message: str) -> str:
    git(repo, "add", "-A")
    git(repo, "commit", "-q", "-m", message)
    return git(repo, "rev-parse", "HEAD")


def write_lines(path: Path, lines: list[str]) -> None:
    path.write_text("\n".join(lines) + "\n", encoding="utf-8")


def build_history(repo: Path) -> tuple[str, str]:
    """base commit, then c1 edits a.txt twice far apart, then c2 adds b.txt."""
    init_repo(repo)
    original = [f"line{number}" for number in range(1, 21)]
    write_lines(repo / "a.txt", original)
    commit_all(repo, "base")
    edited = list(original)
    edited[0] = "LINE1"
    edited[14] = "LINE15"
    write_lines(repo / "a.txt", edited)
    first = commit_all(repo, "edit a")
    write_lines(repo / "b.txt", ["hello", "world"])
    second = commit_all(repo, "add b")
    return first, second


@unittest.skipUnless(shutil.which("git"), "git is not installed")
class TestGitHelpers(unittest.TestCase):
    def setUp(self):
        self._tmp = tempfile.TemporaryDirectory()
        self.repo = Path(self._tmp.name)

    def tearDown(self):
        self._tmp.cleanup()

    def test_empty_repository(self):
        init_repo(self.repo)
        self.assertEqual(get_current_branch(self.repo), "main")
        self.assertEqual(get_branch_commits(self.repo), [])

    def test_commits_and_diffs(self):
        first, second = build_history(self.repo)
        commits = get_branch_commits(self.repo)
        self.assertEqual([commit.sha for commit in commits], [second, first, commits[2].sha])
        self.assertEqual(commits[0].message, "add b")
        self.assertEqual(commits[0].short_sha, second[: len(commits[0].short_sha)])
        self.assertEqual(len(get_branch_commits(self.repo, max_count=1)), 1)
        self.assertEqual([commit.sha for commit in get_branch_commits(self.repo, base=first)], [second])

        diffs = get_commit_file_diffs(self.repo, first)
        self.assertEqual([file_diff.path for file_diff in diffs], ["a.txt"])
        hunks = diffs[0].hunks
        self.assertEqual([hunk.index for hunk in hunks], [1, 2])
        self.assertEqual((hunks[0].old_start, hunks[0].old_lines), (1, 4))
        self.assertEqual((hunks[1].old_start, hunks[1].old_lines), (12, 7))

        added = get_commit_file_diffs(self.repo, second)[0]
        self.assertEqual(added.path, "b.txt")
        self.assertEqual((added.hunks[0].old_start, added.hunks[0].new_lines), (0, 2))

    def test_read_file_lines(self):
        first, _ = build_history(self.repo)
        self.assertEqual(read_file_lines(self.repo, f"{first}^", "a.txt", 5, 7), ["line5", "line6", "line7"])
        with self.assertRaises(ValueError):
            read_file_lines(self.repo, first, "a.txt", 3, 2)

    def test_run_git_failure(self):
        init_repo(self.repo)
        with self.assertRaises(GitCommandError):
            run_git(self.repo, ["show", "does-not-exist"])

    def test_parse_commit_log_skips_malformed_lines(self):
        output = "abc\x1fa\x1fDev\x1fsubject with \x1f inside\nbroken line\n\n"
        commits = parse_commit_log(output)
        self.assertEqual(len(commits), 1)
        self.assertEqual(commits[0].message, "subject with \x1f inside")


@unittest.skipUnless(shutil.which("git"), "git is not installed")
class TestBranchLoader(unittest.TestCase):
    def setUp(self):
        self._tmp = tempfile.TemporaryDirectory()
        root = Path(self._tmp.name)
        self.repo = root / "repo"
        self.repo.mkdir()
        self.tracking_dir = root / "tracking"
        self.tracking_dir.mkdir()

    def tearDown(self):
        self._tmp.cleanup()

    def write_tracking(self, name: str, changes: list[dict]) -> None:
        (self.tracking_dir / f"{name}.json").write_text(
            json.dumps({"version": 1, "commit": name, "author": "Test", "changes": changes}),
            encoding="utf-8",
        )

    def test_load_groups_tracked_hunks_across_commits(self):
        first, second = build_history(self.repo)
        short_first = git(self.repo, "rev-parse", "--short", first)
        self.write_tracking(short_first, [{"reasoning": "fix typo", "files": [{"path": "a.txt", "hunks": [1, 2]}]}])
        self.write_tracking(
            second,
            [
                {"reasoning": "fix typo", "files": [{"path": "b.txt", "hunks": [1]}]},
                {"reasoning": "stale", "files": [{"path": "b.txt", "hunks": [5]}]},
            ],
        )

        data = BranchLoader(self.repo, self.tracking_dir).load()
        self.assertEqual(data.branch, "main")
        self.assertEqual([item.commit.sha for item in data.tracked_commits], [second, first])
        self.assertEqual(data.warnings, [])
        self.assertEqual([group.reasoning for group in data.reasoning_groups], ["fix typo"])
        files = data.reasoning_groups[0].files
        self.assertEqual(sorted(files), ["a.txt", "b.txt"])
        self.assertEqual(files["a.txt"].hunk_numbers, [1, 2])
        self.assertEqual(files["b.txt"].commits, [second])

        payload = groups_payload(data.reasoning_groups)
        self.assertEqual(payload[0]["reasoning"], "fix typo")
        a_entry = next(entry for entry in payload[0]["files"] if entry["path"] == "a.txt")
        self.assertEqual(a_entry["hunks"][0]["oldStart"], 1)
        self.assertEqual(a_entry["hunks"][0]["lines"][0]["kind"], "removed")

    def test_no_tracking_files(self):
        build_history(self.repo)
        data = BranchLoader(self.repo, self.tracking_dir).load()
        self.assertEqual(data.branch, "main")
        self.assertEqual(data.tracked_commits, [])
        self.assertEqual(data.reasoning_groups, [])

    def test_empty_repository(self):
        init_repo(self.repo)
        data = BranchLoader(self.repo, self.tracking_dir).load()
        self.assertEqual((data.branch, data.reasoning_groups), ("main", []))

    def test_signature_tracks_new_files_and_head(self):
        first, _ = build_history(self.repo)
        loader = BranchLoader(self.repo, self.tracking_dir)
        before = loader.signature()
        self.assertEqual(loader.signature(), before)
        self.write_tracking(first, [])
        after_tracking = loader.signature()
        self.assertNotEqual(after_tracking, before)
        git(self.repo, "checkout", "-q", "-b", "other")
        self.assertNotEqual(loader.signature(), after_tracking)


if __name__ == "__main__":
    unittest.main()
