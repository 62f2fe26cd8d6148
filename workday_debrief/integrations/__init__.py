"""
Workday Debrief integration layer.

Modules:
- core/: API clients, OAuth session, secret vault, types
- readers/: Source clients (Jira, Google Calendar, Toggl)
- exporters/: Delivery channels (email, Slack webhook, file)
"""
