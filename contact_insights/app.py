#!/usr/bin/env python3
from __future__ import annotations

import argparse
import logging
import sys
from typing import List, Optional

from dotenv import load_dotenv
from rich.console import Console
from rich.logging import RichHandler
from rich.traceback import install

from contact_insights.hubspot.config import AnalysisConfig, load_config
from contact_insights.hubspot.errors import ContactInsightsError
from contact_insights.hubspot.pipeline import run_pipeline
from contact_insights.report import render_error_panel, render_page, render_summary
from contact_insights.runtime.events import RuntimeEvent, set_emitter

install()
console = Console()
logger = logging.getLogger("contact_insights")


def _log_event(ev: RuntimeEvent) -> None:
    logger.log(ev.log_level, "%s", ev.describe())


def setup_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=console, show_path=False, markup=False)],
    )
    # urllib3 retry chatter is only useful with --verbose
    logging.getLogger("urllib3").setLevel(logging.DEBUG if verbose else logging.WARNING)
    set_emitter(_log_event)


def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(
        prog="contact-insights",
        description="Count HubSpot associations, deals, form submissions and email engagement per contact.",
    )
    p.add_argument("--config", help="TOML config file (defaults apply when omitted)")
    p.add_argument("--max-contacts", type=int, help="override contact_search.max_contacts (0 = no limit)")
    p.add_argument("--no-forms", action="store_true", help="skip form submissions")
    p.add_argument("--no-mark", action="store_true", help="do not stamp the analysis completed property")
    p.add_argument("--engagement", action="store_true", help="count email opens/clicks from the event log")
    p.add_argument("-v", "--verbose", action="store_true", help="debug logging (HTTP + paging events)")
    return p


def apply_overrides(cfg: AnalysisConfig, args: argparse.Namespace) -> AnalysisConfig:
    if args.max_contacts is not None:
        cfg.contact_search.max_contacts = max(0, int(args.max_contacts))
    if args.no_forms:
        cfg.form_submissions.enabled = False
    if args.no_mark:
        cfg.mark_analysis_completed = False
    if args.engagement:
        cfg.fetch_engagement = True
    return cfg


def run(argv: Optional[List[str]] = None) -> int:
    load_dotenv()
    args = build_parser().parse_args(argv)
    setup_logging(args.verbose)

    try:
        cfg = apply_overrides(load_config(args.config), args)
        pipeline = run_pipeline(config=cfg)

        console.print("[bold magenta]Starting HubSpot contact analysis…[/bold magenta]")
        console.print(f"Counters: {', '.join(cfg.association_types)}")
        pipeline.prepare()
        if pipeline.summary.submissions_mode:
            console.print(
                f"Form submissions indexed for {pipeline.summary.emails_indexed} email(s) "
                f"({pipeline.summary.submissions_mode})."
            )

        for page in pipeline:
            render_page(console, page)

        render_summary(console, pipeline.summary)
        return 0

    except (ContactInsightsError, ValueError) as e:
        console.print(render_error_panel(e))
        return 1
    finally:
        set_emitter(None)


def main() -> None:
    try:
        sys.exit(run())
    except KeyboardInterrupt:
        sys.exit(0)


if __name__ == "__main__":
    main()
