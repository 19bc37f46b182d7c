"""
SLA Module
==========

SLA deadlines, the breach sweep and the escalation ladder.

Architecture:
- domain/: Pure business logic (priority, deadlines, ladder, escalations)
- application/: Sweep, escalation and statistics services, DTOs
- infrastructure/: Database models, repositories, webhooks, scheduler
- interfaces/: API controllers and the inbound webhook
"""
