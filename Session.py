"""Navigation session: history, link resolution and the step state machine.

One call to `NavigationSession.step` is one navigation step: fetch the
target, parse it, route on its status class and return what the driving
loop should do next (`Navigate` somewhere or `Terminate`). All user-facing
side effects go through a `Frontend`, so the session itself never touches
the terminal.
"""
from dataclasses import dataclass
from enum import Enum
from typing import Callable, List, Optional, Protocol, Union

import structlog

from errors import (
    InvalidURL,
    LinkResolutionError,
    NavigationError,
    NoPreviousLocation,
    ParseError,
    RelativeResolutionError,
    TransportError,
)
from Response import Document, StatusClass, parse_response
from URL import URL

log = structlog.get_logger(__name__)

DEFAULT_MAX_REDIRECTS = 5

CLIENT_PROMPT = "Select a link by number or type a new URL ([q]uit [b]ack [r]eload [e]dit): "


class State(Enum):
    IDLE = "idle"
    AWAITING_INPUT = "awaiting-input"
    DISPLAYING = "displaying"
    REDIRECTING = "redirecting"
    FAILED = "failed"
    TERMINATED = "terminated"


@dataclass(frozen=True)
class Navigate:
    url: URL


@dataclass(frozen=True)
class ExternalAction:
    target: str


@dataclass(frozen=True)
class Terminate:
    exit_code: int = 0
    reason: str = ""


ResolvedTarget = Union[Navigate, ExternalAction]
NextAction = Union[Navigate, Terminate]


class Frontend(Protocol):
    """What a step needs from the user interface."""

    def show(self, document: Document, url: URL) -> None: ...

    def ask(self, prompt: str) -> Optional[str]: ...

    def prompt(self, text: str, secret: bool) -> Optional[str]: ...

    def edit(self, text: str) -> Optional[str]: ...

    def open_external(self, target: str) -> None: ...

    def report(self, message: str) -> None: ...


class NavigationSession:
    def __init__(
        self,
        url: URL,
        max_redirects: int = DEFAULT_MAX_REDIRECTS,
        fetch: Optional[Callable[[URL], str]] = None,
    ):
        self.current_url = url
        self.history: List[URL] = []
        self.redirects = 0
        self.max_redirects = max_redirects
        self.last_working_url: Optional[URL] = None
        self.state = State.IDLE
        self.fetch = fetch or (lambda u: u.request())

    # -----------------------
    # history
    # -----------------------
    def top_of_history(self) -> URL:
        """Top of history, i.e. the location fetched last."""
        if not self.history:
            raise NoPreviousLocation()
        return self.history[-1]

    def entry_before_top(self) -> URL:
        """The entry before the top of history."""
        if len(self.history) < 2:
            raise NoPreviousLocation()
        return self.history[-2]

    def reload(self) -> URL:
        return self.top_of_history()

    def back(self) -> URL:
        return self.entry_before_top()

    # -----------------------
    # link resolution
    # -----------------------
    def resolve(self, link: str) -> ResolvedTarget:
        try:
            parsed = URL(link)
        except InvalidURL:
            parsed = None

        if parsed is not None:
            if not parsed.is_gemini:
                return ExternalAction(link)
            if parsed == self.current_url:
                # a link to the page itself goes back one step
                return Navigate(self.entry_before_top())
            return Navigate(parsed)

        base = self.current_url
        try:
            if link.startswith("//"):
                url = URL(f"{base.scheme}://{link.lstrip('/')}")
            elif link.startswith("/"):
                url = base.join(link)
            else:
                url = base.join(f"./{link}")
        except ValueError as e:
            raise RelativeResolutionError(link, str(e)) from e
        return Navigate(url)

    # -----------------------
    # one navigation step
    # -----------------------
    def request(self, url: URL) -> Document:
        self.history.append(url)
        self.current_url = url
        log.info("requesting", url=str(url))
        return parse_response(self.fetch(url))

    def step(self, url: URL, frontend: Frontend) -> NextAction:
        """Fetch *url* and route on the response's status class.

        A Terminate leaves the session in FAILED when the server reported a
        failure status, and in TERMINATED otherwise.
        """
        try:
            document = self.request(url)
        except (TransportError, ParseError) as e:
            log.error("request failed", url=str(url), error=str(e))
            frontend.report(f"Response Error: {e}")
            return self._terminate(1, str(e))

        status_class = document.status_class
        if status_class is StatusClass.INPUT:
            action = self.handle_input(document, frontend)
        elif status_class is StatusClass.SUCCESS:
            action = self.handle_success(document, url, frontend)
        elif status_class is StatusClass.REDIRECT:
            action = self.handle_redirect(document, frontend)
        elif status_class in (
            StatusClass.TEMPORARY_FAILURE,
            StatusClass.PERMANENT_FAILURE,
            StatusClass.CERTIFICATE_REQUIRED,
        ):
            action = self.handle_failure(document, frontend)
        else:
            # StatusClass.UNKNOWN
            log.error("invalid status code", status=document.status)
            frontend.report(f"INVALID STATUS CODE {document.status}")
            action = self._terminate(1, f"invalid status code {document.status}")
        return action

    def handle_input(self, document: Document, frontend: Frontend) -> NextAction:
        log.info("page asks for user input", secret=document.is_secret_input)
        self.state = State.AWAITING_INPUT
        reply = frontend.prompt(document.meta, secret=document.is_secret_input)
        if reply is None:
            return self._terminate(1, "input aborted")
        try:
            target = self.top_of_history()
        except NoPreviousLocation as e:
            frontend.report(str(e))
            return self._terminate(1, str(e))
        return Navigate(target.with_query(reply))

    def handle_success(self, document: Document, url: URL, frontend: Frontend) -> NextAction:
        self.state = State.DISPLAYING
        self.last_working_url = url
        self.redirects = 0
        frontend.show(document, url)

        while True:
            command = frontend.ask(CLIENT_PROMPT)
            if command is None:
                return self._terminate(1, "input aborted")
            action = self.choose(document, command, frontend)
            if action is not None:
                return action

    def handle_redirect(self, document: Document, frontend: Frontend) -> NextAction:
        self.state = State.REDIRECTING
        self.redirects += 1
        log.info("redirecting", target=document.meta, count=self.redirects)

        if self.redirects >= self.max_redirects:
            log.error("too many redirects", count=self.redirects)
            frontend.report("Too many redirects!")
            return self._fall_back(1, "too many redirects")

        try:
            target = self.resolve(document.meta.strip())
        except LinkResolutionError as e:
            log.error("error parsing redirect", meta=document.meta, error=str(e))
            frontend.report(f"Error parsing redirect: {e}")
            return self._terminate(1, str(e))

        if isinstance(target, ExternalAction):
            frontend.open_external(target.target)
            return self._fall_back(0, f"redirected to {target.target}")
        return target

    def handle_failure(self, document: Document, frontend: Frontend) -> NextAction:
        log.error("request failed", status=document.status, meta=document.meta)
        self.state = State.FAILED
        frontend.report(document.meta)
        return Terminate(1, document.meta)

    # -----------------------
    # user commands after a page was shown
    # -----------------------
    def choose(self, document: Document, command: str, frontend: Frontend) -> Optional[NextAction]:
        """Interpret a command typed at the client prompt.

        Returns None when the user should be prompted again.
        """
        command = command.strip()
        if command == "q":
            frontend.report("Goodbye!")
            return self._terminate(0, "quit")
        if command == "b":
            try:
                return Navigate(self.back())
            except NavigationError as e:
                frontend.report(str(e))
                return None
        if command == "r":
            try:
                return Navigate(self.reload())
            except NavigationError as e:
                frontend.report(str(e))
                return None
        if command == "e":
            edited = frontend.edit(str(self.current_url))
            if edited is None:
                return None
            try:
                url = URL(edited.strip())
            except InvalidURL as e:
                log.info("discarding edited URL", error=str(e))
                frontend.report(str(e))
                return None
            return self._go_to(url, frontend)

        if command.isascii() and command.isdigit():
            index = int(command)
            if index >= len(document.links):
                frontend.report(f"No link with index {index}")
                return None
            return self._follow(document.links[index].href, frontend)

        try:
            url = URL(command)
        except InvalidURL:
            frontend.report("Invalid input. Please try again.")
            return None
        return self._go_to(url, frontend)

    def _follow(self, href: str, frontend: Frontend) -> Optional[NextAction]:
        try:
            target = self.resolve(href)
        except LinkResolutionError as e:
            frontend.report(str(e))
            return None
        if isinstance(target, ExternalAction):
            frontend.open_external(target.target)
            return None
        return target

    def _go_to(self, url: URL, frontend: Frontend) -> Optional[NextAction]:
        if not url.is_gemini:
            frontend.open_external(str(url))
            return None
        return Navigate(url)

    def _fall_back(self, exit_code: int, reason: str) -> NextAction:
        """Return to the last good page once; a second trip before the next
        Success terminates."""
        if self.last_working_url is not None:
            target, self.last_working_url = self.last_working_url, None
            log.info("falling back", url=str(target))
            return Navigate(target)
        return self._terminate(exit_code, reason)

    def _terminate(self, exit_code: int, reason: str) -> Terminate:
        self.state = State.TERMINATED
        return Terminate(exit_code, reason)
