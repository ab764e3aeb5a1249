"""Pretty formatting of stack reports for PR comments and the terminal."""

import shutil
import sys
from typing import IO, Iterable, List, Optional, Sequence, Union

from ..github.types import Change
from ..stack.models import (ChildRef, MergeResult, MergeStatus, RestackResult, SingleMergeReport,
                            StackMergeReport, StackNode)

GUIDE_MARKER = "<!-- stack-guide -->"

STATUS_LABELS = {
    'restacked': 'Restacked',
    'merged': 'Merged',
    'conflict': 'Conflict',
    'missing': 'Branch not found',
    'merge_failed': 'Merge failed',
}

COMMAND_ROWS = [
    ('`stack merge` (`st merge`)', 'Merge this PR, restack children'),
    ('`stack merge-all` (`st merge-all`)', 'Merge entire stack (requires all approved)'),
    ('`stack merge-all --force` (`st merge-all --force`)', 'Merge entire stack (skip approval check)'),
    ('`stack restack` (`st restack`)', 'Restack children without merging'),
    ('`stack discover` (`st discover`)', 'Auto-discover stack tree from base branches'),
]


def get_term_width() -> int:
    """Get terminal width, default to 80 if can't detect."""
    try:
        return shutil.get_terminal_size().columns
    except OSError:
        return 80


def header(text: str) -> str:
    """Boxed header for terminal output."""
    width = max(get_term_width(), len(text) + 4)
    h_line = "─" * (width - 2)
    return "\n".join([
        f"┌{h_line}┐",
        f"│ {text}{' ' * (width - len(text) - 3)}│",
        f"└{h_line}┘",
    ])


def print_report(title: str, body: str, file: Optional[IO[str]] = None) -> None:
    """Print a report to file (default stdout)."""
    if file is None:
        file = sys.stdout
    print(header(title), file=file)
    print(body, file=file)


def status_label(status: str, error: Optional[str] = None) -> str:
    label = STATUS_LABELS.get(status, status)
    if status == 'merge_failed' and error:
        return f"{label}: {error}"
    return label


def stack_line(change: Change, children: Sequence[ChildRef]) -> str:
    """`#1 (`a`) → #2 (`b`) → ...` for a pull request and its direct children."""
    return " → ".join([f"#{change.number} (`{change.head_ref}`)"] +
                      [f"#{c.pr} (`{c.branch}`)" for c in children])


def status_table(rows: Iterable[Sequence[str]]) -> List[str]:
    lines = ['| Branch | PR | Status |', '|--------|-----|--------|']
    lines.extend(f"| `{branch}` | #{pr} | {status} |" for branch, pr, status in rows)
    return lines


def manual_commands(failed: Sequence[Union[RestackResult, MergeResult]], remote: str) -> List[str]:
    """Collapsible block of git commands that finish a restack by hand."""
    failed = [r for r in failed if r.old_tip and r.onto and r.skip]
    if not failed:
        return []
    cmds = [f'git fetch {remote}', '']
    for r in failed:
        cmds.append(f"# {r.branch} (PR #{r.pr})")
        cmds.append(f"git rebase --onto {r.onto} {r.skip[:8]} {r.branch}")
        cmds.append('# resolve conflicts if any, then:')
        cmds.append(f"git push --force-with-lease {remote} {r.branch}")
        cmds.append('')
    return [
        '',
        '<details><summary>Manual restack commands</summary>',
        '',
        '```bash',
        *cmds,
        '```',
        '</details>',
    ]


def restack_results(results: Sequence[RestackResult], remote: str) -> str:
    """Status table of a restack with recovery commands for the failures."""
    lines = status_table((r.branch, str(r.pr), status_label(r.status.value)) for r in results)
    lines.extend(manual_commands([r for r in results if not r.ok], remote))
    return "\n".join(lines)


def restack_report(results: Sequence[RestackResult], remote: str) -> str:
    ok = all(r.ok for r in results)
    return "\n".join([
        '### Restack: Complete' if ok else '### Restack: Action Needed',
        '',
        restack_results(results, remote),
    ])


def single_merge_report(report: SingleMergeReport, remote: str) -> str:
    """Report of `merge`."""
    if not report.merge.ok:
        return f"Merge failed: {report.merge.error}"
    if not report.restacks:
        return f"Merged into `{report.base}`."
    return "\n".join([
        '### Merged + Restacked' if report.ok else '### Merged (restack needs attention)',
        '',
        f"#{report.pr} merged into `{report.base}`.",
        '',
        restack_results(report.restacks, remote),
    ])


def child_notice(parent: SingleMergeReport, result: RestackResult) -> str:
    """Comment left on a child after its parent merged."""
    status = ('Your branch was automatically restacked.' if result.ok
              else f"Restack status: **{result.status.value}**")
    return f"#{parent.pr} (`{parent.branch}`) was merged. {status}"


def approval_blocked(unapproved: Sequence[int]) -> str:
    return "\n".join([
        '### Cannot merge-all',
        '',
        f"Not approved: {', '.join(f'#{n}' for n in unapproved)}",
        '',
        'Use `stack merge-all --force` to skip approval check.',
    ])


def stack_merge_report(report: StackMergeReport, remote: str) -> str:
    """Report of `merge-all`."""
    if report.unapproved:
        return approval_blocked(report.unapproved)
    if report.error is not None:
        return f"Merge failed for #{report.root}: {report.error}"
    if len(report.results) == 1:
        return f"Merged into `{report.base}`. (no children)"

    merged = len(report.merged)
    total = len(report.results)
    lines = [
        f"### Stack Merged ({merged}/{total})" if report.ok
        else f"### Stack Merge: Stopped ({merged}/{total} merged)",
        '',
    ]
    lines.extend(status_table((r.branch, str(r.pr), status_label(r.status.value, r.error))
                              for r in report.results))
    if not report.ok:
        lines.extend(manual_commands([r for r in report.failed if r.status is MergeStatus.CONFLICT], remote))
        lines.extend(['', 'Fix the issue and run `stack merge` on the failed PR.'])
    return "\n".join(lines)


def discovery_report(nodes: Sequence[StackNode]) -> str:
    """Indented tree of a discovery run, flagging stale children."""
    lines = []
    for node in nodes:
        indent = '  ' * node.depth
        child_info = ''
        if node.children:
            child_info = ' → ' + ', '.join(f"#{c.pr}{' ⚠️' if c.needs_restack else ''}"
                                           for c in node.children)
        lines.append(f"{indent}- #{node.pr} (`{node.branch}`){child_info}")

    out = [
        '### Stack Discovered',
        '',
        f"Found **{len(nodes)}** PR(s) in the stack:",
        '',
        *lines,
        '',
        'All PR metadata has been updated.' if len(nodes) > 1 else 'No children found.',
    ]
    if any(node.stale for node in nodes):
        out.extend([
            '',
            '> ⚠️ Some PRs are out of date with their parent branch.',
            '> Run `st restack` on the parent PR to rebase.',
        ])
    return "\n".join(out)


def command_table() -> List[str]:
    lines = ['| Command | Description |', '|---------|-------------|']
    lines.extend(f"| {cmd} | {desc} |" for cmd, desc in COMMAND_ROWS)
    return lines


def help_text(change: Change, children: Sequence[ChildRef]) -> str:
    stack = stack_line(change, children) if children else '_No stack metadata found._'
    return "\n".join(['### Staqd Commands', '', *command_table(), '', f"**Stack:** {stack}"])


def guide_body(change: Change, children: Sequence[ChildRef]) -> str:
    """Body of the guide comment; starts with GUIDE_MARKER so it can be found again."""
    return "\n".join([GUIDE_MARKER, '### Staqd', '', *command_table(), '',
                      f"**Stack:** {stack_line(change, children)}"])
