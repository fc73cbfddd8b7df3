
from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy import func, select
from sqlalchemy.orm import Session

from hotel_ledger.api.deps import require_permissions
from hotel_ledger.core.permissions import ActorContext, Permission, Role
from hotel_ledger.db.session import get_db
from hotel_ledger.models.user import User
from hotel_ledger.services import maintenance_service
from hotel_ledger.services.audit_service import audit_trail, log_audit

router = APIRouter(tags=["admin"])

admin_only = require_permissions(Permission.MANAGE_SETTINGS)


def _user_out(u: User) -> dict:
    return {"id": u.id, "email": u.email, "fullName": u.full_name, "role": u.role, "isActive": u.is_active,
            "createdAt": u.created_at.isoformat() if u.created_at else None}


def _role(value: str) -> str:
    try:
        return Role(value.upper()).value
    except ValueError:
        raise HTTPException(status_code=400, detail="invalid role")


@router.get("/admin/users")
def list_users(role: str | None = None, q: str | None = None, limit: int = 50, offset: int = 0,
               db: Session = Depends(get_db), me: ActorContext = Depends(admin_only)):
    query = select(User)
    if role:
        query = query.where(User.role == _role(role))
    if q:
        ql = f"%{q.lower()}%"
        query = query.where(func.lower(User.email).like(ql) | func.lower(User.full_name).like(ql))
    total = db.execute(select(func.count()).select_from(query.subquery())).scalar_one()
    users = db.execute(query.order_by(User.created_at.desc()).limit(min(limit, 200)).offset(max(offset, 0))).scalars()
    return {"total": total, "items": [_user_out(u) for u in users]}


@router.put("/admin/users/{user_id}")
def upsert_user(user_id: str, email: str, fullName: str = "", role: str = "GUEST", isActive: bool = True,
                db: Session = Depends(get_db), me: ActorContext = Depends(admin_only)):
    """Directory entry used for guest notifications; identities are issued by the auth service."""
    email_l = email.strip().lower()
    if not email_l:
        raise HTTPException(status_code=400, detail="email required")
    taken = db.execute(select(User).where(User.email == email_l, User.id != user_id)).scalar_one_or_none()
    if taken:
        raise HTTPException(status_code=409, detail="email already exists")
    u = db.get(User, user_id)
    if not u:
        u = User(id=user_id)
        db.add(u)
    u.email = email_l
    u.full_name = fullName or ""
    u.role = _role(role)
    u.is_active = bool(isActive)
    log_audit(db, me.user_id, "user.upsert", "user", user_id, {"email": email_l, "role": u.role})
    db.commit()
    return _user_out(u)


@router.get("/admin/audit-logs")
def list_audit_logs(entityType: str | None = None, entityId: str | None = None, limit: int = 100,
                    db: Session = Depends(get_db), me: ActorContext = Depends(admin_only)):
    return audit_trail(db, entity_type=entityType, entity_id=entityId, limit=limit)


@router.post("/admin/maintenance/reprice-bookings")
def reprice_bookings(roomId: int, db: Session = Depends(get_db), me: ActorContext = Depends(admin_only)):
    return maintenance_service.reprice_bookings(db, me, roomId)


@router.post("/admin/maintenance/refresh-totals")
def refresh_totals(db: Session = Depends(get_db), me: ActorContext = Depends(admin_only)):
    return maintenance_service.refresh_cached_totals(db, me)


@router.post("/admin/maintenance/migrate-legacy-refunds")
def migrate_legacy_refunds(db: Session = Depends(get_db), me: ActorContext = Depends(admin_only)):
    return maintenance_service.migrate_legacy_refunds(db, me)
