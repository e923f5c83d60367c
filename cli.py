#!/usr/bin/env python3
"""gemini-client: browse gemini:// capsules from the terminal.

Usage:
    gemini-client geminiprotocol.net
    gemini-client gemini://example.org/ --pager bat
"""
from dataclasses import replace
from typing import Optional

import structlog
import typer

from Browser import Browser
from config import Pager, settings, setup_logging
from errors import InvalidURL
from Session import NavigationSession
from URL import initialize_url

log = structlog.get_logger(__name__)

app = typer.Typer(name="gemini-client", help="A simple Gemini protocol client.", add_completion=False)


@app.command()
def main(
    url: str = typer.Argument(..., help="Capsule to open; gemini:// is assumed when omitted."),
    pager: Pager = typer.Option(settings.pager, help="Pager used to display pages."),
    max_redirects: int = typer.Option(settings.max_redirects, min=1, help="Redirect chain bound."),
    timeout: Optional[float] = typer.Option(settings.timeout, help="Socket timeout in seconds."),
    verify_tls: bool = typer.Option(settings.verify_tls, help="Verify server certificates."),
    log_level: str = typer.Option(settings.log_level, help="debug, info, warning or error."),
) -> None:
    setup_logging(log_level)

    run_settings = replace(
        settings,
        pager=pager,
        max_redirects=max_redirects,
        timeout=timeout,
        verify_tls=verify_tls,
        log_level=log_level,
    )

    # 대상 URL 파싱
    try:
        start = initialize_url(url)
    except InvalidURL as e:
        log.error("could not parse URL", url=url, error=str(e))
        typer.echo(f"❌ Could not parse URL: {e}", err=True)
        raise typer.Exit(code=1)

    session = NavigationSession(
        start,
        max_redirects=max_redirects,
        fetch=lambda u: u.request(timeout=timeout, verify=verify_tls),
    )
    code = Browser(session, run_settings).run(start)
    raise typer.Exit(code=code)


if __name__ == "__main__":
    app()
