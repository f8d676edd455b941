"""
Unified diff -> HTML.

Styling is expressed as annotations (character ranges over the original text
plus the markup to wrap them with) and applied in one rendering pass, so the
source text is never rewritten in place.

Line level: each contiguous run of deletion lines is wrapped as "removed" and
the insertion run that follows it as "added". Hunk headers get their own wrap.
Intra-line: the lines of a deletion run and the insertion run paired with it
are matched with difflib, then each replaced line pair is compared character
by character after stripping the leading -/+ markers, and the differing
sub-spans are wrapped again inside the line-level wrap.
"""
import difflib
import html
from typing import NamedTuple

# Feed readers routinely drop class-based CSS, so colours travel inline.
REMOVED_OPEN = '<span class="removed" style="background-color:#ffeef0;color:#b31d28">'
ADDED_OPEN = '<span class="added" style="background-color:#e6ffed;color:#22863a">'
HUNK_OPEN = '<span class="hunk" style="color:#6f42c1">'
REMOVED_INLINE_OPEN = '<span class="removed-inline" style="background-color:#fdb8c0">'
ADDED_INLINE_OPEN = '<span class="added-inline" style="background-color:#acf2bd">'
CLOSE = "</span>"

# Character diffs run only inside line pairs, and only until the document's
# budget of compared characters is spent; the rest gets line styling only.
INLINE_LINE_MAX_CHARS = 1_000
INLINE_BUDGET_CHARS = 200_000


class Annotation(NamedTuple):
    start: int
    end: int
    open_tag: str
    close_tag: str
    depth: int = 0


def _diff_lines(text: str) -> list[str]:
    # A diff line ends at "\n" only; splitlines() also breaks on \x0c and \u2028
    pieces = text.split("\n")
    tail = pieces.pop()
    lines = [piece + "\n" for piece in pieces]
    if tail:
        lines.append(tail)
    return lines


def split_lines(text: str) -> tuple[list[str], list[int]]:
    """
    Split text keeping line endings. offsets[i] is where lines[i] starts;
    offsets carries one extra trailing entry equal to len(text).
    """
    lines = _diff_lines(text)
    offsets = []
    pos = 0
    for line in lines:
        offsets.append(pos)
        pos += len(line)
    offsets.append(pos)
    return lines, offsets


def _kind(line: str) -> str:
    if line.startswith("+"):
        return "ins"
    if line.startswith("-"):
        return "del"
    return "ctx"


def _content(line: str) -> str:
    """Line without its diff marker and line ending."""
    return line[1:].rstrip("\n")


class _Budget:
    def __init__(self, chars: int) -> None:
        self.remaining = chars

    def spend(self, chars: int) -> bool:
        if chars > self.remaining:
            return False
        self.remaining -= chars
        return True


def _line_pair_annotations(old: str, old_base: int, new: str, new_base: int) -> list[Annotation]:
    result = []
    matcher = difflib.SequenceMatcher(None, old, new, autojunk=False)
    for tag, i1, i2, j1, j2 in matcher.get_opcodes():
        if tag in ("replace", "delete"):
            result.append(Annotation(old_base + i1, old_base + i2, REMOVED_INLINE_OPEN, CLOSE, 1))
        if tag in ("replace", "insert"):
            result.append(Annotation(new_base + j1, new_base + j2, ADDED_INLINE_OPEN, CLOSE, 1))
    return result


def inline_annotations(
    lines: list[str],
    offsets: list[int],
    del_range: tuple[int, int],
    ins_range: tuple[int, int],
    budget: _Budget | None = None,
) -> list[Annotation]:
    """
    Pair deleted lines with inserted lines (line-level difflib first), then
    highlight the differing characters inside each pair.
    """
    if budget is None:
        budget = _Budget(INLINE_BUDGET_CHARS)
    old_idx = list(range(*del_range))
    new_idx = list(range(*ins_range))
    old_lines = [_content(lines[i]) for i in old_idx]
    new_lines = [_content(lines[i]) for i in new_idx]

    result = []
    line_matcher = difflib.SequenceMatcher(None, old_lines, new_lines, autojunk=False)
    for tag, i1, i2, j1, j2 in line_matcher.get_opcodes():
        if tag != "replace":
            continue
        for a, b in zip(range(i1, i2), range(j1, j2)):
            old, new = old_lines[a], new_lines[b]
            size = len(old) + len(new)
            if size > INLINE_LINE_MAX_CHARS:
                continue
            if not budget.spend(size):
                return result
            result.extend(
                _line_pair_annotations(
                    old, offsets[old_idx[a]] + 1, new, offsets[new_idx[b]] + 1
                )
            )
    return result


def diff_annotations(text: str, inline: bool = True) -> list[Annotation]:
    lines, offsets = split_lines(text)
    annotations: list[Annotation] = []
    last_del: int | None = None
    last_ins: int | None = None
    budget = _Budget(INLINE_BUDGET_CHARS)

    def close_runs(boundary: int, highlight: bool) -> None:
        del_first = last_del if last_del is not None else (last_ins if last_ins is not None else boundary)
        del_last = last_ins if last_ins is not None else boundary
        ins_first = last_ins if last_ins is not None else boundary

        if del_first < del_last:
            annotations.append(
                Annotation(offsets[del_first], offsets[del_last], REMOVED_OPEN, CLOSE)
            )
        if ins_first < boundary:
            annotations.append(
                Annotation(offsets[ins_first], offsets[boundary], ADDED_OPEN, CLOSE)
            )
        if highlight and del_first < del_last and ins_first < boundary:
            annotations.extend(
                inline_annotations(
                    lines, offsets, (del_first, del_last), (ins_first, boundary), budget
                )
            )

    # len(lines) acts as the implicit context line at end of input
    for idx in range(len(lines) + 1):
        line = lines[idx] if idx < len(lines) else ""
        kind = _kind(line) if idx < len(lines) else "ctx"

        if kind == "del":
            if last_ins is not None:
                # -/+/- without context in between: close the pair first
                close_runs(idx, inline)
                last_del = last_ins = None
            if last_del is None:
                last_del = idx
        elif kind == "ins":
            if last_ins is None:
                last_ins = idx
        else:
            is_header = line.startswith("@")
            if last_del is not None or last_ins is not None:
                close_runs(idx, inline and not is_header)
                last_del = last_ins = None
            if is_header:
                annotations.append(Annotation(offsets[idx], offsets[idx + 1], HUNK_OPEN, CLOSE))

    return annotations


def render(text: str, annotations: list[Annotation]) -> str:
    """
    Escape text and insert each annotation's markup at its offsets.
    Annotations must nest; outer ones sort first on equal start.
    """
    ordered = sorted(
        (a for a in annotations if a.start < a.end),
        key=lambda a: (a.start, -a.end, a.depth),
    )
    out: list[str] = []
    stack: list[Annotation] = []
    pos = 0

    def close_until(limit: int) -> None:
        nonlocal pos
        while stack and stack[-1].end <= limit:
            top = stack.pop()
            out.append(html.escape(text[pos : top.end]))
            out.append(top.close_tag)
            pos = top.end

    for ann in ordered:
        close_until(ann.start)
        out.append(html.escape(text[pos : ann.start]))
        out.append(ann.open_tag)
        pos = ann.start
        stack.append(ann)

    close_until(len(text))
    out.append(html.escape(text[pos:]))
    return "".join(out)


def annotate(text: str, inline: bool = True) -> str:
    return render(text, diff_annotations(text, inline=inline))


def annotate_lines(text: str) -> str:
    """Line styling only, one line at a time; no intra-line highlighting."""
    out = []
    for line in _diff_lines(text):
        kind = _kind(line)
        if kind == "del":
            out.append(REMOVED_OPEN + html.escape(line) + CLOSE)
        elif kind == "ins":
            out.append(ADDED_OPEN + html.escape(line) + CLOSE)
        elif line.startswith("@"):
            out.append(HUNK_OPEN + html.escape(line) + CLOSE)
        else:
            out.append(html.escape(line))
    return "".join(out)
