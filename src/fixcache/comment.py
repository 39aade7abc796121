from __future__ import annotations

from typing import List, Tuple

MARKER = "<!-- fixcache:v1 -->"


def render_hits_comment(hits: List[Tuple[str, int]]) -> str:
    """One comment listing every fix-cache file the pull request touches."""
    lines = [
        MARKER,
        "Following files updated in the PR are present in the fix-cache:",
        "",
    ]
    for path, count in hits:
        noun = "hit" if count == 1 else "hits"
        lines.append(f"- `{path}` : *{count}* {noun}")
    return "\n".join(lines)
