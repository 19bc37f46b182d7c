"""
Infrastructure Layer
====================

Cross-module technical adapters:
- database: SQLAlchemy engine and session lifecycle
- llm: LLM provider clients used by the complaint classifier
"""
