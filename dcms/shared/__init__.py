"""
Shared Kernel Module
====================

Shared infrastructure used across all bounded contexts
(Complaints, Triage and SLA Monitoring).

Architecture Pattern: Modular Monolith
- Each module (complaints, triage, sla) is a bounded context
- Shared kernel contains only generic infrastructure

DO NOT add complaint lifecycle rules to the shared kernel.
"""
