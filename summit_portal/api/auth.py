import logging
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Security
from fastapi.security import HTTPAuthorizationCredentials
from jose import JWTError
from sqlalchemy import func
from sqlalchemy.orm import Session

from ..api.dependencies import get_db
from ..auth.jwt import (
    bearer_scheme,
    create_access_token,
    find_active_board_membership,
    generate_temporary_password,
    get_current_owner,
    get_password_hash,
    owner_id_from_token,
    verify_password,
)
from ..core.rate_limit import rate_limit_dependency
from ..models.models import Account, Owner, OwnerBoardMemberMap
from ..schemas.schemas import (
    BoardMemberDetails,
    ForgotPasswordRequest,
    ForgotPasswordResponse,
    LoginRequest,
    LoginResponse,
    LoginUser,
    NotificationPreferenceRead,
    OwnerDetails,
    PasswordChange,
    RegistrationRequest,
    RegistrationVerifyRequest,
    RegistrationVerifyResponse,
    TokenResponse,
)
from ..services import email as email_service
from ..services.audit import audit_log
from ..services.preferences import get_or_create_preferences

router = APIRouter()
logger = logging.getLogger(__name__)

FORGOT_PASSWORD_MESSAGE = "If an account exists with this email, a temporary password has been sent."

forgot_password_limit = rate_limit_dependency(
    "forgot-password",
    limit=3,
    window_seconds=3600,
    message="Too many password reset attempts. Please try again in an hour.",
)


def _find_owner_by_email(db: Session, email: str) -> Optional[Owner]:
    return db.query(Owner).filter(func.lower(Owner.email) == email.strip().lower()).first()


def _login_user(db: Session, owner: Owner) -> LoginUser:
    membership: Optional[OwnerBoardMemberMap] = find_active_board_membership(db, owner.id)
    details = None
    if membership is not None:
        details = BoardMemberDetails(
            role_id=membership.role_id,
            member_role=membership.role.member_role,
            assess_fines=membership.role.assess_fines,
            change_rates=membership.role.change_rates,
            change_members=membership.role.change_members,
            start_date=membership.start_date,
            end_date=membership.end_date,
        )
    return LoginUser(
        id=owner.id,
        email=owner.email,
        first_name=owner.first_name,
        last_name=owner.last_name,
        role="board_member" if membership is not None else "resident",
        is_temporary_password=owner.is_temporary_password,
        board_member_details=details,
    )


@router.post("/login", response_model=LoginResponse)
def login(payload: LoginRequest, db: Session = Depends(get_db)) -> LoginResponse:
    owner = _find_owner_by_email(db, payload.email)
    if not owner or not verify_password(payload.password, owner.hashed_password):
        raise HTTPException(status_code=401, detail="Invalid email or password")
    return LoginResponse(token=create_access_token(owner.id), user=_login_user(db, owner))


@router.post("/refresh-token", response_model=TokenResponse)
def refresh_token(
    credentials: Optional[HTTPAuthorizationCredentials] = Security(bearer_scheme),
    db: Session = Depends(get_db),
) -> TokenResponse:
    if credentials is None or not credentials.credentials:
        raise HTTPException(status_code=401, detail="No token provided")
    try:
        owner_id = owner_id_from_token(credentials.credentials, verify_exp=False)
    except (JWTError, ValueError) as exc:
        raise HTTPException(status_code=401, detail="Invalid token") from exc
    if db.get(Owner, owner_id) is None:
        raise HTTPException(status_code=401, detail="Invalid token")
    return TokenResponse(token=create_access_token(owner_id))


@router.post(
    "/forgot-password",
    response_model=ForgotPasswordResponse,
    dependencies=[Depends(forgot_password_limit)],
)
def forgot_password(payload: ForgotPasswordRequest, db: Session = Depends(get_db)) -> ForgotPasswordResponse:
    temp_password = generate_temporary_password()
    try:
        owner = _find_owner_by_email(db, payload.email or "")
        if owner is not None:
            owner.hashed_password = get_password_hash(temp_password)
            owner.is_temporary_password = True
            db.add(owner)
            db.commit()
            email_service.send_email(
                db,
                to=owner.email,
                template="password_reset",
                context={"temp_password": temp_password},
                bypass_preferences=True,
            )
            logger.info("Temporary password issued for owner %s.", owner.id)
    except Exception:
        db.rollback()
        logger.exception("Forgot password processing failed.")
    return ForgotPasswordResponse(message=FORGOT_PASSWORD_MESSAGE)


def _verify_registration(db: Session, payload: RegistrationVerifyRequest) -> Owner:
    owner = db.get(Owner, payload.owner_id)
    if owner is None:
        raise HTTPException(status_code=400, detail="Owner ID not found")
    account = db.get(Account, payload.account_id)
    if account is None or account.owner_id != owner.id:
        raise HTTPException(status_code=400, detail="Account not associated with this owner")
    if not owner.is_temporary_password:
        raise HTTPException(status_code=400, detail="Account is already registered")
    if not verify_password(payload.temp_code, owner.hashed_password):
        raise HTTPException(status_code=400, detail="Invalid temporary code")
    return owner


@router.post("/verify-registration", response_model=RegistrationVerifyResponse)
def verify_registration(payload: RegistrationVerifyRequest, db: Session = Depends(get_db)) -> RegistrationVerifyResponse:
    owner = _verify_registration(db, payload)
    return RegistrationVerifyResponse(valid=True, account_id=payload.account_id, owner_id=owner.id)


@router.post("/register", response_model=LoginResponse, status_code=201)
def register(payload: RegistrationRequest, db: Session = Depends(get_db)) -> LoginResponse:
    owner = _verify_registration(db, payload)
    existing = _find_owner_by_email(db, payload.email)
    if existing is not None and existing.id != owner.id:
        raise HTTPException(status_code=400, detail="Email is already registered")

    owner.first_name = payload.first_name.strip()
    owner.last_name = payload.last_name.strip()
    owner.email = payload.email.lower()
    owner.phone = payload.phone
    owner.hashed_password = get_password_hash(payload.password)
    owner.is_temporary_password = False
    owner.voting_rights = True
    db.add(owner)
    get_or_create_preferences(db, owner)
    db.commit()

    audit_log(
        db_session=db,
        actor_owner_id=owner.id,
        action="owner.register",
        target_entity_type="Owner",
        target_entity_id=str(owner.id),
        after={"email": owner.email, "account_id": payload.account_id},
    )
    return LoginResponse(token=create_access_token(owner.id), user=_login_user(db, owner))


@router.post("/change-password")
def change_password(
    payload: PasswordChange,
    db: Session = Depends(get_db),
    owner: Owner = Depends(get_current_owner),
):
    if payload.current_password is not None or not owner.is_temporary_password:
        if not payload.current_password or not verify_password(payload.current_password, owner.hashed_password):
            raise HTTPException(status_code=400, detail="Current password is incorrect")

    owner.hashed_password = get_password_hash(payload.new_password)
    owner.is_temporary_password = False
    db.add(owner)
    db.commit()

    audit_log(
        db_session=db,
        actor_owner_id=owner.id,
        action="owner.password_change",
        target_entity_type="Owner",
        target_entity_id=str(owner.id),
        after={"password_changed": True},
    )
    return {"message": "Password updated."}


def owner_details(owner: Owner) -> OwnerDetails:
    return OwnerDetails(
        id=owner.id,
        first_name=owner.first_name,
        last_name=owner.last_name,
        email=owner.email,
        phone=owner.phone,
        voting_rights=owner.voting_rights,
        is_temporary_password=owner.is_temporary_password,
        notification_preferences=(
            NotificationPreferenceRead.model_validate(owner.notification_preference)
            if owner.notification_preference
            else None
        ),
    )


@router.get("/profile", response_model=OwnerDetails)
def read_profile(owner: Owner = Depends(get_current_owner)) -> OwnerDetails:
    return owner_details(owner)
