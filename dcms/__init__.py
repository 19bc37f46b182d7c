"""
DCMS - Digital Complaint Management System
==========================================

Complaint lifecycle service: state machine, priority model, SLA deadlines,
breach monitoring and the escalation ladder.
"""

__version__ = "1.0.0"
