"""
Audit logging for the proxy's security-relevant events: authorize redirects, callbacks,
token issuance and rejection, client registration. Only client ids, IPs, outcomes and
OAuth error codes are recorded; no tokens, codes, verifiers, or states.
"""
from fastapi import APIRouter, Depends, Request
from sqlalchemy.orm import Session

from pkce_proxy.database import get_db
from pkce_proxy.models import AuditLog

EVENT_AUTHORIZE_REDIRECT = "authorize_redirect"
EVENT_CALLBACK_OK = "callback_ok"
EVENT_CALLBACK_FAIL = "callback_fail"
EVENT_TOKEN_ISSUED = "token_issued"
EVENT_TOKEN_FAIL = "token_fail"
EVENT_REFRESH_REJECTED = "refresh_rejected"
EVENT_CLIENT_REGISTERED = "client_registered"

OUTCOME_SUCCESS = "success"
OUTCOME_FAIL = "fail"

MAX_AUDIT_ROWS = 500


def get_client_ip(request: Request | None) -> str | None:
    """Client IP if available. Forwarding headers are not trusted."""
    if request is None or request.client is None:
        return None
    return getattr(request.client, "host", None)


def log_audit(
    db: Session,
    event_type: str,
    *,
    client_id: str | None = None,
    ip: str | None = None,
    outcome: str = OUTCOME_SUCCESS,
    error: str | None = None,
) -> None:
    """Append one audit record. Callers pass error codes, never token material."""
    db.add(
        AuditLog(
            event_type=event_type,
            client_id=client_id,
            ip=ip,
            outcome=outcome,
            error=error,
        )
    )
    db.commit()


router = APIRouter(tags=["audit"])


@router.get("/audit")
def list_audit_logs(
    limit: int = 100,
    event_type: str | None = None,
    outcome: str | None = None,
    client_id: str | None = None,
    db: Session = Depends(get_db),
):
    """Recent audit events, most recent first. Empty filter values mean "all"."""
    q = db.query(AuditLog).order_by(AuditLog.created_at.desc(), AuditLog.id.desc())
    if event_type:
        q = q.filter(AuditLog.event_type == event_type)
    if outcome:
        q = q.filter(AuditLog.outcome == outcome)
    if client_id:
        q = q.filter(AuditLog.client_id == client_id)
    rows = q.limit(min(max(1, limit), MAX_AUDIT_ROWS)).all()
    return [
        {
            "created_at": r.created_at.isoformat() if r.created_at else None,
            "event_type": r.event_type,
            "client_id": r.client_id,
            "ip": r.ip,
            "outcome": r.outcome,
            "error": r.error,
        }
        for r in rows
    ]
