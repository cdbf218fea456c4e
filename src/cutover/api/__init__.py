"""REST API for cutover.

Endpoints:
    GET  /health                   Service health check
    GET  /targets/{target_id}      Record, lease and recent attempts
    GET  /attempts/{attempt_id}    Archived attempt
    GET  /approvals/pending        Approval requests awaiting a decision
    POST /approvals/{attempt_id}   Approve or deny an attempt

Usage::

    from cutover.api import create_app

    app = create_app("/var/lib/cutover")
"""

from cutover.api.server import create_app

__all__ = ["create_app"]
