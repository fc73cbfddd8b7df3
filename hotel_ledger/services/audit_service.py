import json
from sqlalchemy import select
from sqlalchemy.orm import Session
from hotel_ledger.models.audit_log import AuditLog

def log_audit(db: Session, actor_user_id: str, action: str, entity_type: str, entity_id, details: dict | None = None):
    """Stage an audit row in the caller's transaction; it commits or rolls back with the change it describes."""
    db.add(AuditLog(
        actor_user_id=actor_user_id,
        action=action,
        entity_type=entity_type,
        entity_id=str(entity_id),
        details_json=json.dumps(details or {}, ensure_ascii=False, default=str),
    ))


def audit_trail(db: Session, entity_type: str | None = None, entity_id: str | None = None, limit: int = 100) -> list[dict]:
    query = select(AuditLog)
    if entity_type:
        query = query.where(AuditLog.entity_type == entity_type)
    if entity_id:
        query = query.where(AuditLog.entity_id == str(entity_id))
    rows = db.execute(query.order_by(AuditLog.id.desc()).limit(min(limit, 500))).scalars()
    return [{"id": a.id, "actor": a.actor_user_id, "action": a.action, "entityType": a.entity_type,
             "entityId": a.entity_id, "details": json.loads(a.details_json or "{}"),
             "createdAt": a.created_at.isoformat() if a.created_at else None} for a in rows]
