from fastapi import Depends, HTTPException
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from jose import JWTError

from hotel_ledger.core.permissions import ActorContext, Permission, Role
from hotel_ledger.core.security import decode_token
from hotel_ledger.services.stripe_client import PaymentGateway, build_gateway

bearer = HTTPBearer(auto_error=False)


def get_actor(creds: HTTPAuthorizationCredentials | None = Depends(bearer)) -> ActorContext:
    if not creds:
        raise HTTPException(status_code=401, detail="Not authenticated")
    try:
        payload = decode_token(creds.credentials)
    except JWTError:
        raise HTTPException(status_code=401, detail="Invalid token")
    user_id = payload.get("sub")
    try:
        role = Role(str(payload.get("role", "")).upper())
    except ValueError:
        raise HTTPException(status_code=401, detail="Invalid token role")
    if not user_id:
        raise HTTPException(status_code=401, detail="Invalid token subject")
    return ActorContext(user_id=str(user_id), role=role)


def require_permissions(*permissions: Permission):
    def _guard(actor: ActorContext = Depends(get_actor)) -> ActorContext:
        if not all(actor.can(p) for p in permissions):
            raise HTTPException(status_code=403, detail="Forbidden")
        return actor
    return _guard


def get_gateway() -> PaymentGateway:
    return build_gateway()
