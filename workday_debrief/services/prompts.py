"""
Narrative prompt templates and the structured fallback.

Both are pure functions of the aggregated data, so the same input always
produces the same prompt and the same fallback text.
"""

from workday_debrief.integrations.core.types import AggregatedData, Tone, UserFields

NO_ACTIVITY_TEXT = "No activity recorded for today."


PROFESSIONAL_TEMPLATE = """Write a professional work summary in 4-6 sentences, in the third person. Be factual and concise.

Input data:
- Tickets closed: {tickets_closed_count} ({tickets_closed_list})
- Tickets in progress: {tickets_in_progress_count} ({tickets_in_progress_list})
- Meetings attended: {meetings_count} ({meetings_list})
- Focus time: {focus_hours} hours
- Current blockers: {blockers}
- Tomorrow's priorities: {tomorrow_priorities}

Cover, in order: accomplishments (closed tickets), current work, meetings and collaboration, focus time, blockers if any, and tomorrow's plan.

Use formal language without emojis. Refer to tickets by their IDs."""


CASUAL_TEMPLATE = """Write a casual first-person summary of my workday in 4-6 sentences. Keep it conversational and call out the wins.

Today:
- Closed {tickets_closed_count} tickets: {tickets_closed_list}
- Still working on {tickets_in_progress_count} tickets: {tickets_in_progress_list}
- Went to {meetings_count} meetings: {meetings_list}
- Got {focus_hours} hours of focus time
- Blockers: {blockers}
- Tomorrow I'm planning: {tomorrow_priorities}

Write it the way I'd tell a teammate what I did today, using "I" and "my". Mention ticket IDs where they matter."""


DETAILED_TEMPLATE = """Write a comprehensive work summary in 6-8 sentences with specific details and time breakdowns.

Detailed input:
- Tickets completed ({tickets_closed_count}): {tickets_closed_list}
- Ongoing work ({tickets_in_progress_count}): {tickets_in_progress_list}
- Meetings ({meetings_count} total): {meetings_list}
- Focused work time: {focus_hours} hours
- Current blockers: {blockers}
- Planned for tomorrow: {tomorrow_priorities}

Include ticket IDs with what was done on each, meeting topics with durations, how the day's time was split, the state of in-progress work, blockers with context, and clear priorities for tomorrow.

Use professional language with concrete numbers."""


TEMPLATES: dict[Tone, str] = {
    Tone.PROFESSIONAL: PROFESSIONAL_TEMPLATE,
    Tone.CASUAL: CASUAL_TEMPLATE,
    Tone.DETAILED: DETAILED_TEMPLATE,
}


def get_template(tone) -> str:
    """Template for a tone; unknown tones get the professional one."""
    return TEMPLATES[Tone.parse(tone)]


def _ticket_list(tickets) -> str:
    return ", ".join(f"{t.id}: {t.title}" for t in tickets)


def _meeting_list(meetings) -> str:
    return ", ".join(f"{m.title} ({m.duration_minutes}m)" for m in meetings)


def build_prompt(data: AggregatedData, user_fields: UserFields, tone) -> str:
    """Fill the tone's template from the aggregated data and the user's notes."""
    return get_template(tone).format(
        tickets_closed_count=len(data.tickets_closed),
        tickets_closed_list=_ticket_list(data.tickets_closed),
        tickets_in_progress_count=len(data.tickets_in_progress),
        tickets_in_progress_list=_ticket_list(data.tickets_in_progress),
        meetings_count=len(data.meetings),
        meetings_list=_meeting_list(data.meetings),
        focus_hours=f"{data.focus_hours:.1f}",
        blockers=user_fields.blockers or "",
        tomorrow_priorities=user_fields.tomorrow_priorities or "",
    )


def generate_bullet_fallback(data: AggregatedData, user_fields: UserFields) -> str:
    """
    Markdown bullets built straight from the structured data.

    Used whenever the model is disabled, slow, unreachable or returns nothing.
    Makes no network calls.
    """
    lines = []

    if data.tickets_closed:
        items = ", ".join(f"{t.id} ({t.title})" for t in data.tickets_closed)
        lines.append(f"**Tickets Closed ({len(data.tickets_closed)}):** {items}")

    if data.tickets_in_progress:
        items = ", ".join(f"{t.id} ({t.title})" for t in data.tickets_in_progress)
        lines.append(f"**In Progress ({len(data.tickets_in_progress)}):** {items}")

    if data.meetings:
        lines.append(
            f"**Meetings ({len(data.meetings)}, {data.total_meeting_minutes}m total):** "
            f"{_meeting_list(data.meetings)}"
        )

    if data.focus_hours > 0:
        lines.append(f"**Focus Time:** {data.focus_hours:.1f} hours")

    blockers = (user_fields.blockers or "").strip()
    if blockers:
        lines.append(f"**Blockers:** {blockers}")

    priorities = (user_fields.tomorrow_priorities or "").strip()
    if priorities:
        lines.append(f"**Tomorrow:** {priorities}")

    if not lines:
        return NO_ACTIVITY_TEXT
    return "\n\n".join(lines)
