import secrets
import string
from datetime import date, datetime, timedelta, timezone
from typing import Generator, Optional

from fastapi import Depends, HTTPException, Security, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import ExpiredSignatureError, JWTError, jwt
from passlib.context import CryptContext
from sqlalchemy.orm import Session, joinedload

from ..config import SessionLocal, settings
from ..models.models import Owner, OwnerBoardMemberMap

pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")
bearer_scheme = HTTPBearer(auto_error=False)

TEMP_PASSWORD_ALPHABET = string.ascii_letters + string.digits


def verify_password(plain_password: str, hashed_password: Optional[str]) -> bool:
    if not hashed_password:
        return False
    return pwd_context.verify(plain_password, hashed_password)


def get_password_hash(password: str) -> str:
    return pwd_context.hash(password)


def generate_temporary_password(length: int = 10) -> str:
    return "".join(secrets.choice(TEMP_PASSWORD_ALPHABET) for _ in range(length))


def create_access_token(owner_id: int, expires_minutes: Optional[int] = None) -> str:
    minutes = expires_minutes if expires_minutes is not None else settings.access_token_expire_minutes
    expire = datetime.now(timezone.utc) + timedelta(minutes=minutes)
    payload = {"sub": str(owner_id), "type": "access", "exp": expire}
    return jwt.encode(payload, settings.jwt_secret, algorithm=settings.jwt_algorithm)


def decode_token(token: str, verify_exp: bool = True) -> dict:
    return jwt.decode(
        token,
        settings.jwt_secret,
        algorithms=[settings.jwt_algorithm],
        options={"verify_exp": verify_exp},
    )


def get_db() -> Generator[Session, None, None]:
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def _credentials_exception(detail: str = "Could not validate credentials") -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail=detail,
        headers={"WWW-Authenticate": "Bearer"},
    )


def owner_id_from_token(token: str, verify_exp: bool = True) -> int:
    payload = decode_token(token, verify_exp=verify_exp)
    owner_id = payload.get("sub")
    if owner_id is None or payload.get("type") not in (None, "access"):
        raise JWTError("Token missing subject")
    return int(owner_id)


def get_current_owner(
    credentials: Optional[HTTPAuthorizationCredentials] = Security(bearer_scheme),
    db: Session = Depends(get_db),
) -> Owner:
    if not credentials:
        raise _credentials_exception("No token provided")
    try:
        owner_id = owner_id_from_token(credentials.credentials)
    except ExpiredSignatureError:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail={"detail": "Token expired", "code": "TOKEN_EXPIRED"},
            headers={"WWW-Authenticate": "Bearer"},
        )
    except (JWTError, ValueError):
        raise _credentials_exception()

    owner = (
        db.query(Owner)
        .options(joinedload(Owner.board_memberships).joinedload(OwnerBoardMemberMap.role))
        .filter(Owner.id == owner_id)
        .first()
    )
    if owner is None:
        raise _credentials_exception()
    return owner


def get_active_owner(owner: Owner = Depends(get_current_owner)) -> Owner:
    if owner.is_temporary_password:
        raise HTTPException(status_code=403, detail="Password change required")
    return owner


def find_active_board_membership(
    db: Session,
    owner_id: int,
    today: Optional[date] = None,
) -> Optional[OwnerBoardMemberMap]:
    today = today or date.today()
    return (
        db.query(OwnerBoardMemberMap)
        .options(joinedload(OwnerBoardMemberMap.role))
        .filter(
            OwnerBoardMemberMap.owner_id == owner_id,
            *OwnerBoardMemberMap.active_clause(today),
        )
        .first()
    )


def require_board_member(*capabilities: str):
    required = {capability.upper() for capability in capabilities}

    def board_checker(owner: Owner = Depends(get_active_owner), db: Session = Depends(get_db)) -> Owner:
        membership = find_active_board_membership(db, owner.id)
        if membership is None:
            raise HTTPException(status_code=403, detail="Access denied. Board member privileges required.")
        if any(not membership.role.allows(capability) for capability in required):
            raise HTTPException(status_code=403, detail="Your board role does not permit this action.")
        return owner

    return board_checker
