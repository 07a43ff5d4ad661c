from __future__ import annotations

from worklog_digest.models import Commit


def build_system_prompt() -> str:
    return """You are a technical writer creating daily work summaries from Git commits.

**Role**

- Transform technical Git commits into a coherent work narrative
- Group related changes into logical work items
- Explain technical work in business-friendly terms
- Stay accurate to the original commit content

**Guidelines**

1. Be concise but informative.
2. Focus on what was accomplished, not how.
3. Group related commits together.
4. Use clear, professional language.
5. Keep the date header exactly as provided.

**Output Format**

The first line is the date header. Every following line is one work item starting with "- ".
Return plain text only, no Markdown fences and no preamble."""


def build_user_prompt(commits: list[Commit], date_label: str) -> str:
    author = commits[0].author_name if commits else "Unknown"
    commit_lines = [f"- {commit.message} ({commit.hash[:7]})" for commit in commits]

    return (
        "Transform these Git commits into a coherent daily work summary.\n\n"
        f"Date: {date_label}\n"
        f"Author: {author}\n\n"
        "Commits:\n"
        + "\n".join(commit_lines)
        + "\n\n"
        "Requirements:\n"
        "1) Group related commits into logical work items.\n"
        "2) Explain technical changes in business terms.\n"
        "3) Do not invent work that is not in the commit list.\n"
        "4) Keep the summary short.\n\n"
        "Output format:\n"
        f"{date_label}\n"
        "- [Work item 1 description]\n"
        "- [Work item 2 description]\n"
    )
