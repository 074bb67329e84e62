import io
import json
import os
import shutil
import subprocess
import sys
import tempfile
import unittest
from contextlib import redirect_stderr, redirect_stdout
from pathlib import Path
from unittest import mock

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from codewalk import cli  # noqa: E402
from codewalk.templates import CLAUDE_MD_MARKER, STOP_HOOK_PROMPT  # noqa: E402

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


def run_main(argv: list[str]) -> tuple[int, str, str]:
    stdout = io.StringIO()
    stderr = io.StringIO()
    with redirect_stdout(stdout), redirect_stderr(stderr):
        code = cli.main(argv)
    return code, stdout.getvalue(), stderr.getvalue()


class TestParseArgs(unittest.TestCase):
    def test_visualize_defaults(self):
        args = cli.parse_args(["visualize"])
        self.assertEqual(args.command, "visualize")
        self.assertEqual(args.repo, ".")
        self.assertIsNone(args.tracking_dir)
        self.assertEqual(args.poll_interval, 2.0)
        self.assertFalse(args.once)
        self.assertFalse(args.as_json)
        self.assertEqual(args.max_lines, 80)

    def test_gaps_args(self):
        args = cli.parse_args(["gaps", "abc123", "src/a.py", "--show-lines", "-vv"])
        self.assertEqual((args.commit, args.path), ("abc123", "src/a.py"))
        self.assertTrue(args.show_lines)
        self.assertEqual(args.verbose, 2)

    def test_init_args(self):
        args = cli.parse_args(["init", "--repo", "proj"])
        self.assertEqual((args.command, args.repo), ("init", "proj"))

    def test_command_is_required(self):
        with redirect_stderr(io.StringIO()):
            with self.assertRaises(SystemExit):
                cli.parse_args([])


class TestUsageErrors(unittest.TestCase):
    def test_invalid_limits(self):
        code, _, stderr = run_main(["visualize", "--max-commits", "0"])
        self.assertEqual(code, 2)
        self.assertIn("--max-commits", stderr)
        code, _, _ = run_main(["visualize", "--max-lines", "0"])
        self.assertEqual(code, 2)

    def test_not_a_repository(self):
        with tempfile.TemporaryDirectory() as tmp:
            with mock.patch.object(cli, "is_git_repo", return_value=False):
                code, _, stderr = run_main(["visualize", "--repo", tmp, "--json"])
        self.assertEqual(code, 1)
        self.assertIn("Not a git repository", stderr)


class TestInit(unittest.TestCase):
    def setUp(self):
        self._tmp = tempfile.TemporaryDirectory()
        self.repo = Path(self._tmp.name)
        self.settings_path = self.repo / ".claude" / "settings.local.json"

    def tearDown(self):
        self._tmp.cleanup()

    def test_creates_project_files(self):
        code, stdout, _ = run_main(["init", "--repo", str(self.repo)])
        self.assertEqual(code, 0)
        self.assertIn("✓", stdout)
        self.assertTrue((self.repo / ".claude" / "skills" / "codewalk.md").is_file())
        self.assertTrue((self.repo / ".codewalk").is_dir())
        self.assertIn(CLAUDE_MD_MARKER, (self.repo / "CLAUDE.md").read_text(encoding="utf-8"))
        settings = json.loads(self.settings_path.read_text(encoding="utf-8"))
        hook = settings["hooks"]["Stop"][0]["hooks"][0]
        self.assertEqual((hook["type"], hook["prompt"]), ("prompt", STOP_HOOK_PROMPT))

    def test_second_run_changes_nothing(self):
        run_main(["init", "--repo", str(self.repo)])
        claude_md = (self.repo / "CLAUDE.md").read_text(encoding="utf-8")
        settings = self.settings_path.read_text(encoding="utf-8")

        code, stdout, _ = run_main(["init", "--repo", str(self.repo)])
        self.assertEqual(code, 0)
        self.assertNotIn("✓", stdout)
        self.assertEqual(stdout.count("○"), 4)
        self.assertEqual((self.repo / "CLAUDE.md").read_text(encoding="utf-8"), claude_md)
        self.assertEqual(claude_md.count(CLAUDE_MD_MARKER), 1)
        self.assertEqual(self.settings_path.read_text(encoding="utf-8"), settings)

    def test_existing_claude_md_and_settings_are_kept(self):
        (self.repo / "CLAUDE.md").write_text("# House rules\n\nUse tabs.\n", encoding="utf-8")
        self.settings_path.parent.mkdir(parents=True)
        self.settings_path.write_text(
            json.dumps({"permissions": {"allow": ["Bash(ls)"]}, "hooks": {"PreToolUse": []}}), encoding="utf-8"
        )

        code, _, _ = run_main(["init", "--repo", str(self.repo)])
        self.assertEqual(code, 0)
        claude_md = (self.repo / "CLAUDE.md").read_text(encoding="utf-8")
        self.assertTrue(claude_md.startswith("# House rules\n\nUse tabs.\n\n"))
        self.assertIn(CLAUDE_MD_MARKER, claude_md)
        settings = json.loads(self.settings_path.read_text(encoding="utf-8"))
        self.assertEqual(settings["permissions"], {"allow": ["Bash(ls)"]})
        self.assertEqual(sorted(settings["hooks"]), ["PreToolUse", "Stop"])

    def test_existing_stop_hook_is_not_replaced(self):
        self.settings_path.parent.mkdir(parents=True)
        original = json.dumps({"hooks": {"Stop": [{"hooks": [{"type": "command", "command": "true"}]}]}})
        self.settings_path.write_text(original, encoding="utf-8")

        code, stdout, _ = run_main(["init", "--repo", str(self.repo)])
        self.assertEqual(code, 0)
        self.assertIn("Stop hook already configured", stdout)
        self.assertEqual(self.settings_path.read_text(encoding="utf-8"), original)

    def test_invalid_settings_json_is_left_alone(self):
        self.settings_path.parent.mkdir(parents=True)
        self.settings_path.write_text("{not json", encoding="utf-8")

        with self.assertLogs("codewalk.init_project", level="WARNING"):
            code, stdout, _ = run_main(["init", "--repo", str(self.repo)])
        self.assertEqual(code, 0)
        self.assertIn("not valid JSON", stdout)
        self.assertEqual(self.settings_path.read_text(encoding="utf-8"), "{not json")
        self.assertTrue((self.repo / ".codewalk").is_dir())

    def test_missing_directory(self):
        code, _, stderr = run_main(["init", "--repo", str(self.repo / "absent")])
        self.assertEqual(code, 1)
        self.assertIn("Not a directory", stderr)


@unittest.skipUnless(shutil.which("git"), "git is not installed")
class TestCommandsOnRepository(unittest.TestCase):
    def setUp(self):
        self._tmp = tempfile.TemporaryDirectory()
        root = Path(self._tmp.name)
        self.repo = root / "repo"
        self.repo.mkdir()
        self.tracking_dir = root / "tracking"
        self.tracking_dir.mkdir()

        git(self.repo, "init", "-q")
        git(self.repo, "symbolic-ref", "HEAD", "refs/heads/main")
        git(self.repo, "config", "commit.gpgsign", "false")
        lines = [f"line{number}" for number in range(1, 21)]
        (self.repo / "a.txt").write_text("\n".join(lines) + "\n", encoding="utf-8")
        git(self.repo, "add", "-A")
        git(self.repo, "commit", "-q", "-m", "base")
        lines[0] = "LINE1"
        lines[14] = "LINE15"
        (self.repo / "a.txt").write_text("\n".join(lines) + "\n", encoding="utf-8")
        git(self.repo, "commit", "-q", "-am", "edit a")
        self.commit = git(self.repo, "rev-parse", "HEAD")
        (self.tracking_dir / f"{self.commit}.json").write_text(
            json.dumps({"changes": [{"reasoning": "fix typo", "files": [{"path": "a.txt", "hunks": [1, 2]}]}]}),
            encoding="utf-8",
        )

    def tearDown(self):
        self._tmp.cleanup()

    def test_visualize_json(self):
        code, stdout, _ = run_main(
            ["visualize", "--repo", str(self.repo), "--tracking-dir", str(self.tracking_dir), "--json"]
        )
        self.assertEqual(code, 0)
        payload = json.loads(stdout)
        self.assertEqual(payload["branch"], "main")
        self.assertEqual(payload["warnings"], [])
        self.assertEqual(len(payload["groups"]), 1)
        self.assertEqual(payload["groups"][0]["files"][0]["hunkNumbers"], [1, 2])

    def test_visualize_once_expand(self):
        code, stdout, _ = run_main(
            ["visualize", "--repo", str(self.repo), "--tracking-dir", str(self.tracking_dir), "--once", "--expand"]
        )
        self.assertEqual(code, 0)
        self.assertIn("fix typo", stdout)
        self.assertIn("LINE15", stdout)

    def test_visualize_once_without_tracking(self):
        empty_dir = self.tracking_dir / "empty"
        code, stdout, _ = run_main(
            ["visualize", "--repo", str(self.repo), "--tracking-dir", str(empty_dir), "--once"]
        )
        self.assertEqual(code, 0)
        self.assertIn("No tracked changes", stdout)

    def test_gaps_json_with_lines(self):
        code, stdout, _ = run_main(["gaps", "--repo", str(self.repo), self.commit, "a.txt", "--show-lines", "--json"])
        self.assertEqual(code, 0)
        payload = json.loads(stdout)
        self.assertEqual(len(payload), 1)
        gap = payload[0]
        self.assertEqual((gap["afterHunkIndex"], gap["oldStartLine"], gap["oldEndLine"]), (0, 5, 11))
        self.assertEqual(gap["lineCount"], 7)
        self.assertEqual(gap["lines"][0], {"lineNumber": 5, "content": "line5"})
        self.assertEqual(len(gap["lines"]), 7)

    def test_gaps_lines_of_renamed_file_come_from_old_path(self):
        git(self.repo, "mv", "a.txt", "moved.txt")
        lines = (self.repo / "moved.txt").read_text(encoding="utf-8").splitlines()
        lines[1] = "LINE2"
        lines[15] = "LINE16"
        (self.repo / "moved.txt").write_text("\n".join(lines) + "\n", encoding="utf-8")
        git(self.repo, "commit", "-q", "-am", "move a")
        renamed = git(self.repo, "rev-parse", "HEAD")

        code, stdout, stderr = run_main(
            ["gaps", "--repo", str(self.repo), renamed, "moved.txt", "--show-lines", "--json"]
        )
        self.assertEqual(code, 0, stderr)
        gap = json.loads(stdout)[0]
        self.assertEqual((gap["oldStartLine"], gap["oldEndLine"]), (6, 12))
        self.assertEqual([line["content"] for line in gap["lines"]], [f"line{number}" for number in range(6, 13)])

    def test_gaps_table(self):
        code, stdout, _ = run_main(["gaps", "--repo", str(self.repo), self.commit, "a.txt"])
        self.assertEqual(code, 0)
        self.assertIn("5-11", stdout)

    def test_gaps_unknown_file(self):
        code, _, stderr = run_main(["gaps", "--repo", str(self.repo), self.commit, "missing.txt"])
        self.assertEqual(code, 2)
        self.assertIn("missing.txt", stderr)


if __name__ == "__main__":
    unittest.main()
