"""Link lines in gemtext bodies.

A link line looks like ``=> <href> [<display name>]``. Malformed link lines
(a marker with nothing after it) are not links: they are skipped by
`extract_links` and left untouched by `annotate_links`, so the ``(i)``
markers in an annotated body always match the indices of `extract_links`.
"""
from dataclasses import dataclass
from typing import Iterable, List, Optional

LINK_MARKER = "=>"


@dataclass(frozen=True)
class Link:
    href: str
    name: Optional[str] = None


def parse_link_line(line: str) -> Optional[Link]:
    """Return the Link on *line*, or None if it is not a valid link line."""
    stripped = line.lstrip()
    if not stripped.startswith(LINK_MARKER):
        return None
    rest = stripped[len(LINK_MARKER):].strip()
    if not rest:
        return None
    parts = rest.split(None, 1)
    href = parts[0]
    name = parts[1] if len(parts) > 1 else None
    return Link(href=href, name=name)


def extract_links(lines: Iterable[str]) -> List[Link]:
    links = []
    for line in lines:
        link = parse_link_line(line)
        if link is not None:
            links.append(link)
    return links


def annotate_links(lines: Iterable[str]) -> List[str]:
    """Prefix each valid link line with its link index, e.g. ``(0) => /a``."""
    out = []
    count = 0
    for line in lines:
        if parse_link_line(line) is None:
            out.append(line)
            continue
        out.append(f"({count}) {line.lstrip()}")
        count += 1
    return out
