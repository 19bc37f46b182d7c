"""
Shared API Dependencies
========================

Application-wide singletons created in the lifespan handler and stored on
``app.state``, exposed to routes through ``Depends()``.
"""

from fastapi import Request

from dcms.complaints.application import INotifier
from dcms.sla.domain import ISLAConfigProvider
from dcms.triage.application import IClassifier


def get_config_provider(request: Request) -> ISLAConfigProvider:
    """Get the hot-reloaded lifecycle policy."""
    return request.app.state.config_provider


def get_notifier(request: Request) -> INotifier:
    """Get the outbound webhook notifier."""
    return request.app.state.notifier


def get_classifier(request: Request) -> IClassifier:
    """Get the complaint classifier."""
    return request.app.state.classifier
