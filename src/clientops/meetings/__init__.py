"""Meeting lifecycle -- webhook ingestion, sent detection, and completion.

Drives meeting records from recording ingestion through the human-reviewed
follow-up to filed notes and tracked tasks, plus the pre-meeting agenda
sub-flow.
"""
