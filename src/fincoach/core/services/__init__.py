"""
Service subpackage aggregating domain logic.

This package exposes the session registry, topic state machine, notebook
aggregate and manager, report and reply generation, exports, the failure
log and the turn pipeline. See individual modules for details.
"""
from . import (  # noqa: F401
    events,
    export,
    extraction,
    failures,
    llm_utils,
    notebook,
    notebook_manager,
    personas,
    profile,
    registry,
    replies,
    reports,
    topics,
    turns,
)
