from __future__ import annotations

from typing import Any, List

from rich.console import Console, Group
from rich.markup import escape
from rich.panel import Panel
from rich.table import Table
from rich.text import Text

from contact_insights.hubspot.errors import HubSpotRequestError
from contact_insights.hubspot.pipeline import ContactReport, PageReport, RunSummary
from contact_insights.hubspot.time_utils import format_ms


def truncate(s: Any, n: int = 96) -> str:
    t = "" if s is None else str(s)
    return t if len(t) <= n else t[: n - 1] + "…"


def _contact_panel(rep: ContactReport) -> Panel:
    c = rep.contact
    lines: List[Any] = []

    counts = ", ".join(f"{k}: {v}" for k, v in rep.counts.items()) or "(no relationship types)"
    lines.append(Text(f"Counts: {counts}"))
    if rep.engagement is not None:
        lines.append(Text(f"Email engagement: opens {rep.engagement.opens}, clicks {rep.engagement.clicks}"))

    if rep.submissions:
        t = Table(title=f"Form submissions ({len(rep.submissions)})", show_lines=False, expand=True)
        t.add_column("Form")
        t.add_column("Submitted")
        t.add_column("Page URL", overflow="fold")
        t.add_column("Fields", overflow="fold")
        for sub in rep.submissions:
            fields = ", ".join(f"{n}={v}" for n, v in sub.values)
            t.add_row(
                f"{escape(sub.form_name)}\n[dim]{escape(sub.form_guid)}[/dim]",
                format_ms(sub.submitted_at),
                escape(sub.page_url or ""),
                escape(truncate(fields, 240)),
            )
        lines.append(t)

    if rep.deals:
        t = Table(title="Deals", expand=True)
        t.add_column("Deal id")
        t.add_column("Name")
        t.add_column("Amount", justify="right")
        t.add_column("Stage")
        for d in rep.deals:
            t.add_row(
                d.id,
                escape(d.get("dealname").display()),
                d.get("amount").display(),
                rep.deal_stages.get(d.id, d.get("dealstage").display()),
            )
        lines.append(t)

    if rep.emails:
        t = Table(title="Emails", expand=True)
        t.add_column("Email id")
        t.add_column("Subject", overflow="fold")
        t.add_column("Direction")
        t.add_column("Date")
        for e in rep.emails:
            ts = e.get("hs_timestamp")
            t.add_row(
                e.id,
                escape(e.get("hs_email_subject").display()),
                e.get("hs_email_direction").display(),
                ts.value if ts.present else ts.display(),
            )
        lines.append(t)

    detailed = {"deals", "emails"} if rep.emails else {"deals"}
    for name, ids in rep.associations.items():
        if name in detailed or not ids:
            continue
        lines.append(Text(f"{name}: {', '.join(ids)}", style="dim"))

    title = f"[bold]{c.id}[/bold]  {escape(c.email or '(no email)')}  {escape(c.display_name)}"
    return Panel(Group(*lines), title=title, title_align="left")


def render_page(console: Console, page: PageReport) -> None:
    for rep in page.contacts:
        console.print(_contact_panel(rep))
    console.print(f"[dim]--- page {page.page} done, {page.total_processed} total so far ---[/dim]\n")


def render_summary(console: Console, summary: RunSummary) -> None:
    t = Table(show_header=False, box=None)
    t.add_row("Contacts processed", str(summary.contacts))
    t.add_row("Pages", str(summary.pages))
    t.add_row("Contacts marked analysed", str(summary.marked))
    if summary.submissions_mode:
        t.add_row("Form submissions", f"{summary.emails_indexed} email(s), {summary.submissions_mode}")
    if summary.possible_gaps:
        t.add_row("Possible cache gaps", ", ".join(summary.possible_gaps))
    t.add_row("Engagement counts", "on" if summary.engagement_enabled else "off")
    console.print(Panel(t, title="Done", style="green"))


def render_error_panel(e: BaseException) -> Panel:
    status = getattr(e, "status_code", None)
    body = escape((getattr(e, "body_excerpt", "") or "")[:800])
    msg = escape(str(e))

    if isinstance(e, HubSpotRequestError) or status is not None:
        if status in (401, 403):
            hint = "Unauthorized/Forbidden. Check HUBSPOT_ACCESS_TOKEN and the private app's scopes."
            return Panel(f"[red]Auth Error {status}[/red]\n{hint}\n\n{msg}\n\n[dim]{body}[/dim]", style="red")
        if status == 429:
            return Panel(
                f"[red]Rate Limit (429)[/red]\nRaise delay_between_batches_ms and retry.\n\n[dim]{body}[/dim]",
                style="red",
            )
        return Panel(f"[red]API Error {status}[/red]\n{msg}\n\n[dim]{body}[/dim]", style="red")

    return Panel(f"[red]Error[/red]\n{msg}", style="red")
