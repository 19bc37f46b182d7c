"""
Complaints Module
=================

Complaint intake, the lifecycle state machine, review, assignment and
citizen feedback.

Architecture:
- domain/: Pure business logic (entities, state machine)
- application/: Use cases and DTOs
- infrastructure/: Database models and repositories
- interfaces/: API controllers
"""
