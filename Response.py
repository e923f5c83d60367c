from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional, Tuple

import structlog

from errors import (
    EmptyResponse,
    InvalidStatusCode,
    MissingMetaDescription,
    MissingStatusCode,
)
from Gemtext import Link, annotate_links, extract_links

log = structlog.get_logger(__name__)

MAX_STATUS = 255


class StatusClass(Enum):
    INPUT = "input"
    SUCCESS = "success"
    REDIRECT = "redirect"
    TEMPORARY_FAILURE = "temporary-failure"
    PERMANENT_FAILURE = "permanent-failure"
    CERTIFICATE_REQUIRED = "certificate-required"
    UNKNOWN = "unknown"


_RANGES: Tuple[Tuple[int, int, StatusClass], ...] = (
    (10, 19, StatusClass.INPUT),
    (20, 29, StatusClass.SUCCESS),
    (30, 39, StatusClass.REDIRECT),
    (40, 49, StatusClass.TEMPORARY_FAILURE),
    (50, 59, StatusClass.PERMANENT_FAILURE),
    (60, 69, StatusClass.CERTIFICATE_REQUIRED),
)


def classify(code: int) -> StatusClass:
    for low, high, status_class in _RANGES:
        if low <= code <= high:
            return status_class
    return StatusClass.UNKNOWN


@dataclass(frozen=True)
class Document:
    status: int
    status_class: StatusClass
    meta: str
    body: Optional[str] = None
    links: Tuple[Link, ...] = field(default_factory=tuple)

    @property
    def is_secret_input(self) -> bool:
        # only an exact 10 gets a visible prompt
        return self.status_class is StatusClass.INPUT and self.status != 10


def split_lines(raw: str) -> List[str]:
    """Split on ``\\n``, dropping one trailing ``\\r`` per line.

    A trailing newline does not produce an extra empty line.
    """
    if not raw:
        return []
    lines = raw.split("\n")
    if lines[-1] == "":
        lines.pop()
    return [line[:-1] if line.endswith("\r") else line for line in lines]


class ResponseParser:
    """Turns a raw response into a Document.

    The first line is ``<status> <meta>``; every following line is body.
    Link lines in the body come back annotated with their link index.
    """

    def __init__(self, raw: str):
        self.raw = raw

    def parse(self) -> Document:
        lines = split_lines(self.raw)
        if not lines:
            raise EmptyResponse()

        status, meta = self.parse_status_line(lines[0])
        body_lines = lines[1:]
        body = "\n".join(annotate_links(body_lines))
        links = tuple(extract_links(body_lines))

        doc = Document(
            status=status,
            status_class=classify(status),
            meta=meta,
            body=body or None,
            links=links,
        )
        log.debug("response parsed", status=status, status_class=doc.status_class.value,
                  meta=meta, links=len(links))
        return doc

    @staticmethod
    def parse_status_line(line: str) -> Tuple[int, str]:
        token, sep, meta = line.partition(" ")
        if not token:
            raise MissingStatusCode()
        if not (token.isascii() and token.isdigit()):
            raise InvalidStatusCode(token)
        status = int(token)
        if status > MAX_STATUS:
            raise InvalidStatusCode(token)
        if not sep:
            raise MissingMetaDescription()
        return status, meta


def parse_response(raw: str) -> Document:
    return ResponseParser(raw).parse()
