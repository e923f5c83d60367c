"""Tests for link resolution, history and the navigation state machine."""
import pytest

from errors import ConnectError, NavigationError, NoPreviousLocation, RelativeResolutionError
from Response import parse_response
from Session import (
    DEFAULT_MAX_REDIRECTS,
    ExternalAction,
    Navigate,
    NavigationSession,
    State,
    Terminate,
)
from URL import URL

L0 = URL("gemini://host/")
L1 = URL("gemini://host/dir/page")
L2 = URL("gemini://host/moved")

PAGE = "20 text/gemini\r\n# Page\r\n=> /dir/page Next\r\n=> https://web.example/ Web\r\n"


class FakeFrontend:
    def __init__(self, commands=(), replies=(), edits=()):
        self.commands = list(commands)
        self.replies = list(replies)
        self.edits = list(edits)
        self.shown = []
        self.prompts = []
        self.opened = []
        self.reports = []

    def show(self, document, url):
        self.shown.append((url, document))

    def ask(self, prompt):
        return self.commands.pop(0) if self.commands else None

    def prompt(self, text, secret):
        self.prompts.append((text, secret))
        return self.replies.pop(0) if self.replies else None

    def edit(self, text):
        self.edits_seen = text
        return self.edits.pop(0) if self.edits else None

    def open_external(self, target):
        self.opened.append(target)

    def report(self, message):
        self.reports.append(message)


class CannedServer:
    def __init__(self, pages):
        self.pages = pages
        self.requests = []

    def __call__(self, url):
        self.requests.append(url)
        page = self.pages[str(url)]
        if isinstance(page, Exception):
            raise page
        return page


def make_session(pages, start=L0, **kwargs):
    server = CannedServer(pages)
    return NavigationSession(start, fetch=server, **kwargs), server


# -----------------------
# resolution
# -----------------------
def at(url, history=()):
    session = NavigationSession(url, fetch=lambda u: "")
    session.history = list(history) + [url]
    return session


def test_absolute_path():
    assert at(L1).resolve("/foo") == Navigate(URL("gemini://host/foo"))


def test_document_relative_keeps_directory():
    assert at(L1).resolve("bar") == Navigate(URL("gemini://host/dir/bar"))
    assert at(L1).resolve("sub/x.gmi") == Navigate(URL("gemini://host/dir/sub/x.gmi"))


def test_protocol_relative():
    assert at(L1).resolve("//other.org/a") == Navigate(URL("gemini://other.org/a"))
    assert at(L1).resolve("///other.org/a") == Navigate(URL("gemini://other.org/a"))


def test_absolute_gemini_link_unmodified():
    target = URL("gemini://elsewhere.org/x?y")
    assert at(L1).resolve("gemini://elsewhere.org/x?y") == Navigate(target)


def test_self_link_goes_to_previous_entry():
    session = at(L1, history=[L0])
    assert session.resolve("gemini://host/dir/page") == Navigate(L0)


def test_self_link_without_history():
    with pytest.raises(NoPreviousLocation):
        at(L1).resolve("gemini://host/dir/page")


def test_foreign_scheme_is_external():
    session = at(L1)
    assert session.resolve("https://web.example/") == ExternalAction("https://web.example/")
    assert session.resolve("mailto:me@example.org") == ExternalAction("mailto:me@example.org")
    assert session.current_url == L1


def test_relative_resolution_error():
    with pytest.raises(RelativeResolutionError):
        at(L1).resolve("//bad:port/")


# -----------------------
# history
# -----------------------
def test_back_and_reload():
    session = at(L2, history=[L0, L1])
    assert session.back() == L1
    assert session.reload() == L2


def test_back_needs_two_entries():
    session = at(L0)
    with pytest.raises(NavigationError):
        session.back()
    assert session.reload() == L0


def test_reload_needs_history():
    session = NavigationSession(L0, fetch=lambda u: "")
    with pytest.raises(NoPreviousLocation):
        session.reload()


# -----------------------
# steps
# -----------------------
def test_success_then_link_then_redirect_then_success():
    session, server = make_session({
        str(L0): PAGE,
        str(L1): "31 /moved\r\n",
        str(L2): "20 text/gemini\r\nmoved here\r\n",
    })
    ui = FakeFrontend(commands=["0", "q"])

    action = session.step(L0, ui)
    assert action == Navigate(L1)
    assert session.state is State.DISPLAYING

    action = session.step(action.url, ui)
    assert action == Navigate(L2)
    assert session.state is State.REDIRECTING
    assert session.redirects == 1

    action = session.step(action.url, ui)
    assert action == Terminate(0, "quit")
    assert session.history == [L0, L1, L2]
    assert session.last_working_url == L2
    assert session.redirects == 0
    assert session.state is State.TERMINATED
    assert [url for url, _ in ui.shown] == [L0, L2]
    assert ui.shown[1][1].body == "moved here"


def test_redirects_are_bounded():
    loop = URL("gemini://host/loop")
    session, server = make_session({str(loop): "30 gemini://host/loop2\r\n",
                                    "gemini://host/loop2": "30 /loop\r\n"})
    ui = FakeFrontend()
    url, steps = loop, 0
    while True:
        action = session.step(url, ui)
        steps += 1
        if isinstance(action, Terminate):
            break
        url = action.url
        assert steps < 50

    assert steps == DEFAULT_MAX_REDIRECTS
    assert session.redirects == DEFAULT_MAX_REDIRECTS
    assert action.exit_code == 1
    assert "Too many redirects!" in ui.reports


def test_self_redirect_goes_back_one_entry():
    session, server = make_session({str(L0): PAGE, str(L1): "30 gemini://host/dir/page\r\n"},
                                   max_redirects=3)
    ui = FakeFrontend(commands=["0"])
    assert session.step(L0, ui) == Navigate(L1)

    action = session.step(L1, ui)
    assert action == Navigate(L0)


def test_redirect_chain_guard_returns_last_working():
    pages = {str(L0): PAGE}
    for i in range(10):
        pages[f"gemini://host/r{i}"] = f"30 /r{i + 1}\r\n"
    session, server = make_session(pages, max_redirects=3)
    session.last_working_url = L0

    action = session.step(URL("gemini://host/r0"), FakeFrontend())
    assert action == Navigate(URL("gemini://host/r1"))
    action = session.step(action.url, FakeFrontend())
    assert action == Navigate(URL("gemini://host/r2"))
    action = session.step(action.url, FakeFrontend())
    assert action == Navigate(L0)
    assert session.redirects == 3
    assert session.last_working_url is None
    assert session.history[-1] == URL("gemini://host/r2")


def test_redirect_to_foreign_scheme_opens_externally():
    session, server = make_session({str(L0): "30 https://web.example/\r\n"})
    ui = FakeFrontend()
    action = session.step(L0, ui)
    assert ui.opened == ["https://web.example/"]
    assert action == Terminate(0, "redirected to https://web.example/")


def test_unresolvable_redirect_terminates():
    session, server = make_session({str(L0): "30 //bad:port/\r\n"})
    ui = FakeFrontend()
    action = session.step(L0, ui)
    assert isinstance(action, Terminate)
    assert action.exit_code == 1
    assert ui.reports[0].startswith("Error parsing redirect")


@pytest.mark.parametrize("raw", ["40 slow down", "51 not found", "60 cert please"])
def test_failures_terminate(raw):
    session, server = make_session({str(L0): raw})
    ui = FakeFrontend()
    action = session.step(L0, ui)
    assert action == Terminate(1, raw.split(" ", 1)[1])
    assert session.state is State.FAILED
    assert ui.reports == [raw.split(" ", 1)[1]]


def test_unknown_status_terminates():
    session, server = make_session({str(L0): "99 what"})
    ui = FakeFrontend()
    action = session.step(L0, ui)
    assert action.exit_code == 1
    assert ui.reports == ["INVALID STATUS CODE 99"]


def test_transport_error_terminates():
    session, server = make_session({str(L0): ConnectError("refused")})
    ui = FakeFrontend()
    action = session.step(L0, ui)
    assert action.exit_code == 1
    assert session.history == [L0]
    assert ui.reports == ["Response Error: refused"]


def test_parse_error_terminates():
    session, server = make_session({str(L0): ""})
    action = session.step(L0, FakeFrontend())
    assert isinstance(action, Terminate)
    assert action.exit_code == 1


def test_visible_input():
    search = URL("gemini://host/search")
    session, server = make_session({str(search): "10 Search for?\r\n"})
    ui = FakeFrontend(replies=["gemini clients"])
    action = session.step(search, ui)
    assert session.state is State.AWAITING_INPUT
    assert ui.prompts == [("Search for?", False)]
    assert action == Navigate(URL("gemini://host/search?gemini%20clients"))


def test_secret_input():
    login = URL("gemini://host/login?old")
    session, server = make_session({str(login): "11 Password\r\n"})
    ui = FakeFrontend(replies=["hunter2"])
    action = session.step(login, ui)
    assert ui.prompts == [("Password", True)]
    assert action == Navigate(URL("gemini://host/login?hunter2"))


def test_aborted_input_terminates():
    session, server = make_session({str(L0): "10 Name?"})
    action = session.step(L0, FakeFrontend())
    assert action == Terminate(1, "input aborted")


def test_aborted_command_prompt_terminates():
    session, server = make_session({str(L0): PAGE})
    assert session.step(L0, FakeFrontend()) == Terminate(1, "input aborted")


# -----------------------
# client prompt commands
# -----------------------
def displayed(history, commands=(), **kwargs):
    session = at(history[-1], history=history[:-1])
    ui = FakeFrontend(commands=commands, **kwargs)
    return session, ui, parse_response(PAGE)


def test_command_back_and_reload():
    session, ui, doc = displayed([L0, L1, L2])
    assert session.choose(doc, "b", ui) == Navigate(L1)
    assert session.choose(doc, "r", ui) == Navigate(L2)


def test_command_back_without_history_reprompts():
    session, ui, doc = displayed([L0])
    assert session.choose(doc, "b", ui) is None
    assert ui.reports == ["No previous location in history"]
    assert session.current_url == L0


def test_command_link_index():
    session, ui, doc = displayed([L0])
    assert session.choose(doc, "0", ui) == Navigate(L1)


def test_command_external_link_reprompts():
    session, ui, doc = displayed([L0])
    assert session.choose(doc, "1", ui) is None
    assert ui.opened == ["https://web.example/"]


def test_command_bad_index_reprompts():
    session, ui, doc = displayed([L0])
    assert session.choose(doc, "7", ui) is None
    assert ui.reports == ["No link with index 7"]


def test_command_typed_url():
    session, ui, doc = displayed([L0])
    assert session.choose(doc, "gemini://other.org/", ui) == Navigate(URL("gemini://other.org/"))
    assert session.choose(doc, "https://web.example/", ui) is None
    assert ui.opened == ["https://web.example/"]


def test_command_invalid():
    session, ui, doc = displayed([L0])
    assert session.choose(doc, "what", ui) is None
    assert ui.reports == ["Invalid input. Please try again."]


def test_command_edit():
    session, ui, doc = displayed([L0], edits=["gemini://host/edited\n"])
    assert session.choose(doc, "e", ui) == Navigate(URL("gemini://host/edited"))
    assert ui.edits_seen == "gemini://host/"


def test_command_edit_discarded():
    session, ui, doc = displayed([L0], edits=["not a url"])
    assert session.choose(doc, "e", ui) is None
    session, ui, doc = displayed([L0])
    assert session.choose(doc, "e", ui) is None


def test_command_quit():
    session, ui, doc = displayed([L0])
    assert session.choose(doc, " q ", ui) == Terminate(0, "quit")
    assert ui.reports == ["Goodbye!"]


def test_success_reprompts_until_a_target():
    session, server = make_session({str(L0): PAGE})
    ui = FakeFrontend(commands=["nonsense", "b", "1", "0"])
    assert session.step(L0, ui) == Navigate(L1)
    assert ui.reports == ["Invalid input. Please try again.", "No previous location in history"]
    assert ui.opened == ["https://web.example/"]
    assert len(ui.shown) == 1


def test_history_is_never_deduplicated():
    session, server = make_session({str(L0): PAGE})
    ui = FakeFrontend(commands=["r", "r"])
    url = session.step(L0, ui).url
    url = session.step(url, ui).url
    assert session.history == [L0, L0]
    assert url == L0


def test_fallback_page_that_redirects_terminates():
    served = []

    def fetch(url):
        served.append(url)
        return PAGE if len(served) == 1 else "30 /elsewhere\r\n"

    session = NavigationSession(L0, fetch=fetch)
    ui = FakeFrontend(commands=["0"])
    url, steps = L0, 0
    while True:
        action = session.step(url, ui)
        steps += 1
        if isinstance(action, Terminate):
            break
        url = action.url
        assert steps < 50

    assert action.exit_code == 1
    # home, a full redirect chain ending in the fallback, then home redirecting again
    assert steps == 1 + DEFAULT_MAX_REDIRECTS + 1
    assert ui.reports == ["Too many redirects!", "Too many redirects!"]


def test_history_entry_names():
    session = at(L2, history=[L0, L1])
    assert session.top_of_history() == L2
    assert session.entry_before_top() == L1
