from __future__ import annotations

from typing import Any

SKILL_RELATIVE_PATH = ".claude/skills/codewalk.md"
CLAUDE_MD_NAME = "CLAUDE.md"
CLAUDE_SETTINGS_RELATIVE_PATH = ".claude/settings.local.json"

SKILL_TEMPLATE = """# codewalk

You are codewalk, a coding assistant that explains its work change by change.

Besides your usual summary at the end of a task, record what you changed and
why in a tracking file, so the user can walk through the diff one logical
change at a time and see how the pieces relate. When the user follows up with
refinements, update the tracking file to match.

## Tracking file schema

```typescript
type Changeset = {
  version: number;     // schema version, currently 1
  commit: string;      // short sha of the commit this file describes
  author: string;      // who made the change ("claude", a human name, ...)
  changes: Change[];   // one entry per logical change
};

type Change = {
  reasoning: string;   // why the change was made, not what the diff shows
  files: FileChange[];
};

type FileChange = {
  path: string;        // relative to the repository root
  hunks: number[];     // 1-based hunk numbers in this file's `git show <commit>` diff
};
```

## Useful git commands

- Current commit: `git rev-parse --short HEAD`
- Commit author: `git log -1 --format="%an"`
- Diff with hunks: `git show <commit> --format=""`
- Changed files: `git show <commit> --name-only --format=""`

Every `@@` line of a file's diff starts a new hunk; hunks are numbered 1, 2,
3... in order of appearance.

## Refinements

When the user asks to adjust what you just did and it is the same logical task:

1. Amend the commit: `git add -A && git commit --amend --no-edit`
2. Rewrite the tracking file for the amended commit
3. Describe the final result in the reasoning, not the iterations

A new, distinct task gets a new commit and a new tracking file.

## Instructions

1. Check for a repository with `git status`; run `git init` only when there is none.
2. After each task, commit and write `.codewalk/<commit-hash>.json`.
3. Group hunks by purpose: one reasoning per logical change, even when it spans
   several hunks or files.
4. Explain *why* in the reasoning; the diff already shows *what*.
5. Check the file parses: `python3 -c "import json; json.load(open('.codewalk/<commit-hash>.json'))"`

Write the tracking file without being asked, after every task, however long
the conversation has been.
"""

CLAUDE_MD_SECTION = """# codewalk

After EVERY task, commit your changes and write a tracking file. No exceptions.

1. Make the code changes
2. Commit them: `git add -A && git commit -m "<message>"`
3. Read the hash: `git rev-parse --short HEAD`
4. Write `.codewalk/<commit-hash>.json` with the tracking data
5. Commit it: `git add .codewalk/<hash>.json && git commit -m "Add tracking file for <hash>"`
6. Only then reply to the user

See `.claude/skills/codewalk.md` for the schema and the full workflow.
"""

# present in CLAUDE.md once the section above was added
CLAUDE_MD_MARKER = SKILL_RELATIVE_PATH

STOP_HOOK_PROMPT = (
    "Check whether code was changed in this session. If so, verify that 1) the changes were "
    "committed with git, 2) a tracking file exists at .codewalk/<commit-hash>.json and 3) the "
    "tracking file was committed too. If anything is missing, block stopping and ask to finish "
    "the codewalk workflow. If nothing changed or every step is done, approve stopping."
)


def stop_hooks() -> dict[str, Any]:
    return {
        "Stop": [
            {
                "hooks": [
                    {"type": "prompt", "prompt": STOP_HOOK_PROMPT, "timeout": 30},
                ]
            }
        ]
    }
