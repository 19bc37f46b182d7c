"""
Triage Module
=============

LLM classification of new complaints and the auto-approval gate that
routes them either straight to a department or to manual review.

Architecture:
- domain/: Classification result, prompt and parsing rules
- application/: Classifier service and auto-approval gate
- infrastructure/: LLM adapter and background dispatchers
"""
