"""
Summary rendering.

Markdown is the canonical delivery format (file export, Slack, email text
part). Email also gets an HTML alternative rendered with `markdown`.
"""

import logging

import markdown

from workday_debrief.integrations.core.types import Summary

logger = logging.getLogger(__name__)


def render_summary_markdown(summary: Summary) -> str:
    """Render a stored summary as a markdown document. Empty sections are omitted."""
    sections = [f"# Work Summary — {summary.summary_date}", ""]

    sections.append("## Narrative")
    sections.append(summary.narrative or "(No narrative)")
    sections.append("")

    if summary.tickets_closed:
        sections.append(f"## Tickets Closed ({len(summary.tickets_closed)})")
        sections.extend(f"- [{t.id}]({t.url}) - {t.title}" for t in summary.tickets_closed)
        sections.append("")

    if summary.tickets_in_progress:
        sections.append(f"## In Progress ({len(summary.tickets_in_progress)})")
        sections.extend(f"- [{t.id}]({t.url}) - {t.title}" for t in summary.tickets_in_progress)
        sections.append("")

    if summary.meetings:
        total = sum(m.duration_minutes for m in summary.meetings)
        sections.append(f"## Meetings ({len(summary.meetings)}, {total}m total)")
        sections.extend(f"- {m.title} ({m.duration_minutes}m)" for m in summary.meetings)
        sections.append("")

    if summary.focus_hours > 0:
        sections.append("## Focus Time")
        sections.append(f"{summary.focus_hours:.1f} hours")
        sections.append("")

    for heading, value in (
        ("Blockers", summary.blockers),
        ("Tomorrow's Priorities", summary.tomorrow_priorities),
        ("Notes", summary.manual_notes),
    ):
        if value:
            sections.append(f"## {heading}")
            sections.append(value)
            sections.append("")

    return "\n".join(sections)


def markdown_to_email_html(content: str, title: str = "Work Summary") -> str:
    """Wrap rendered markdown in a minimal, email-safe HTML document."""
    body_html = markdown.markdown(content, extensions=["sane_lists"])
    return f"""<!DOCTYPE html>
<html>
<head>
    <meta charset="utf-8">
    <title>{title}</title>
    <style>
        body {{ font-family: -apple-system, BlinkMacSystemFont, 'Segoe UI', Roboto, sans-serif; font-size: 14px; line-height: 1.6; color: #333; max-width: 600px; margin: 0 auto; padding: 20px; }}
        h1, h2 {{ color: #1a1a1a; }}
        a {{ color: #0066cc; text-decoration: none; }}
    </style>
</head>
<body>
{body_html}
</body>
</html>"""
