"""Terminal front-end: pager, prompts, editor and opener around a session."""
import os
import shutil
import subprocess
import tempfile
from pathlib import Path
from typing import Optional

import click
import structlog
import typer

from config import Settings, settings as default_settings
from Response import Document
from Session import NavigationSession, Terminate
from URL import URL

log = structlog.get_logger(__name__)


def get_editor_command(configured: Optional[str] = None) -> str:
    if configured:
        return configured
    if "EDITOR" in os.environ:
        return os.environ["EDITOR"]
    for candidate in ("nano", "vim"):
        if shutil.which(candidate):
            return candidate
    return "vi"


def render_page(document: Document) -> str:
    lines = [document.body if document.body is not None else "No content", "", ""]
    for i, link in enumerate(document.links):
        lines.append(
            "{}: {} ({})".format(
                typer.style(str(i), fg=typer.colors.BLUE),
                typer.style(link.name or "", fg=typer.colors.BRIGHT_WHITE),
                typer.style(link.href, fg=typer.colors.BLUE),
            )
        )
    return "\n".join(lines) + "\n"


class Browser:
    def __init__(self, session: NavigationSession, settings: Optional[Settings] = None):
        self.session = session
        self.settings = settings or default_settings

    # ---- display
    def show(self, document: Document, url: URL) -> None:
        text = render_page(document)
        cmd = self.settings.pager.command()
        log.debug("spawning pager", cmd=cmd, url=str(url))
        try:
            pager = subprocess.Popen(cmd, stdin=subprocess.PIPE, text=True)
        except OSError as e:
            # 페이저가 없으면 그냥 출력
            log.warning("pager unavailable", cmd=cmd, error=str(e))
            typer.echo(text)
            return
        try:
            pager.stdin.write(text)
            pager.stdin.close()
        except BrokenPipeError:
            # user quit the pager before reading everything
            pass
        pager.wait()
        click.clear()

    # ---- prompts
    def ask(self, prompt: str) -> Optional[str]:
        try:
            return input(typer.style(prompt, fg=typer.colors.YELLOW))
        except EOFError:
            return None

    def prompt(self, text: str, secret: bool) -> Optional[str]:
        if not secret:
            return self.ask(text + " ")
        try:
            return typer.prompt(
                typer.style(text, fg=typer.colors.YELLOW),
                default="",
                show_default=False,
                hide_input=True,
                prompt_suffix=" ",
            )
        except typer.Abort:
            return None

    # ---- external programs
    def edit(self, text: str) -> Optional[str]:
        editor = get_editor_command(self.settings.editor)
        fd, name = tempfile.mkstemp(suffix=".txt", prefix="gemini-url-")
        path = Path(name)
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                f.write(text)
            # shell=True so "code -w" style commands work
            ret = subprocess.call(f'{editor} "{path}"', shell=True)
            if ret != 0:
                log.info("edit aborted", editor=editor, code=ret)
                return None
            return path.read_text(encoding="utf-8")
        finally:
            path.unlink(missing_ok=True)

    def open_external(self, target: str) -> None:
        log.info("opening externally", target=target, opener=self.settings.opener)
        try:
            subprocess.Popen(
                [self.settings.opener, target],
                stdout=subprocess.DEVNULL,
                stderr=subprocess.DEVNULL,
            )
        except OSError as e:
            log.error("could not start opener", opener=self.settings.opener, error=str(e))

    def report(self, message: str) -> None:
        typer.echo(message)

    # ---- driving loop
    def run(self, url: URL) -> int:
        """Run navigation steps until one terminates; return the exit code."""
        while True:
            try:
                action = self.session.step(url, self)
            except KeyboardInterrupt:
                typer.echo("\n\n👋 Interrupted.")
                return 1
            if isinstance(action, Terminate):
                log.info("session terminated", reason=action.reason, exit_code=action.exit_code)
                return action.exit_code
            url = action.url
