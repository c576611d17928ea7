"""Default templates for follow-up drafts, agenda synthesis, and reports.

Templates use ``{{name}}`` placeholders rendered by
``src.clientops.core.templating.render``. Every placeholder must be supplied
by the caller; an unresolved placeholder is a validation failure rather than
text left in the output.

Exports:
    FOLLOWUP_SUBJECT_TEMPLATE: Subject line of the post-meeting follow-up draft.
    FOLLOWUP_BODY_TEMPLATE: Plain-text body of the follow-up draft.
    AGENDA_SYSTEM_PROMPT: System prompt for agenda synthesis.
    AGENDA_PROMPT_TEMPLATE: User prompt carrying the aggregated context.
    AGENDA_SUBJECT_TEMPLATE: Subject line of the agenda notification.
    AGENDA_BODY_TEMPLATE: Body of the agenda notification.
    OUTLOOK_SUBJECT_TEMPLATE: Subject line of the outlook report.
    OUTLOOK_BODY_TEMPLATE: Body of the outlook report.
"""

from __future__ import annotations


# ── Follow-up Draft ──────────────────────────────────────────────────────────


FOLLOWUP_SUBJECT_TEMPLATE: str = "Follow-up: {{meeting_title}} ({{meeting_date}})"

FOLLOWUP_BODY_TEMPLATE: str = """\
Hi {{client_name}} team,

Thanks for your time today. Here is a summary of what we covered.

{{summary}}

Action Items:
{{action_items}}

Best regards,

{{marker}}
"""


# ── Agenda Synthesis ─────────────────────────────────────────────────────────


AGENDA_SYSTEM_PROMPT: str = """\
You prepare concise, practical meeting agendas for a client relationship \
manager. Use only the context provided. Keep the agenda under one page, \
lead with open commitments, and flag anything overdue.\
"""

AGENDA_PROMPT_TEMPLATE: str = """\
Prepare an agenda for the upcoming meeting "{{meeting_title}}" with \
{{client_name}} on {{meeting_date}}.

Outstanding tasks (due today or earlier):
{{outstanding_tasks}}

Recent correspondence (last 7 days):
{{correspondence}}

Notes from the previous meeting:
{{prior_notes}}

Action items carried over from the previous meeting:
{{carried_over}}

Return a numbered agenda followed by a short "Open Questions" list.
"""

AGENDA_SUBJECT_TEMPLATE: str = "Agenda: {{client_name}} / {{meeting_title}} ({{meeting_date}})"

AGENDA_BODY_TEMPLATE: str = """\
Agenda for {{meeting_title}} with {{client_name}}
Starts: {{meeting_start}}

{{agenda}}
"""


# ── Outlook Report ───────────────────────────────────────────────────────────


OUTLOOK_SUBJECT_TEMPLATE: str = "Client outlook: {{window_start}} to {{window_end}}"

OUTLOOK_BODY_TEMPLATE: str = """\
Upcoming client meetings, {{window_start}} to {{window_end}}.

{{sections}}
"""
