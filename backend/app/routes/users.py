from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy import or_
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from app.core.auth import get_current_admin, get_current_user
from app.core.permissions import ROLE_DEFINITIONS, normalize_role
from app.core.security import get_password_hash
from app.database.deps import get_db
from app.models.user import User
from app.schemas.user import (
    RoleOptionOut,
    UserCreate,
    UserOut,
    UserProfileUpdate,
    UserUpdate,
)
from app.services.audit import log_action

router = APIRouter(prefix='/users', tags=['Users'])


def _resolve_role(value: str) -> str:
    role = normalize_role(value)
    if not role:
        raise HTTPException(status_code=400, detail='Perfil inválido')
    return role


def _ensure_unique(db: Session, username: str, email: str, current_id: int | None = None) -> None:
    query = db.query(User).filter(or_(User.username == username, User.email == email))
    if current_id is not None:
        query = query.filter(User.id != current_id)
    if query.first():
        raise HTTPException(status_code=409, detail='Usuário ou email já cadastrado')


def _get_user_or_404(db: Session, user_id: int) -> User:
    user = db.query(User).filter(User.id == user_id).first()
    if not user:
        raise HTTPException(status_code=404, detail='Usuário não encontrado')
    return user


def _commit_or_conflict(db: Session) -> None:
    try:
        db.commit()
    except IntegrityError as exc:
        db.rollback()
        raise HTTPException(status_code=409, detail='Usuário ou email já cadastrado') from exc


@router.get('/roles', response_model=list[RoleOptionOut])
def list_roles(current_user: User = Depends(get_current_user)):
    return [RoleOptionOut(code=item['code'], label=item['label']) for item in ROLE_DEFINITIONS]


@router.get('/', response_model=list[UserOut])
def list_users(
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_admin),
):
    return db.query(User).order_by(User.real_name.asc()).all()


@router.post('/', response_model=UserOut, status_code=status.HTTP_201_CREATED)
def create_user(
    payload: UserCreate,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_admin),
):
    username = payload.username.strip()
    email = payload.email.strip()
    _ensure_unique(db, username, email)
    user = User(
        username=username,
        real_name=payload.real_name.strip(),
        email=email,
        password=get_password_hash(payload.password),
        role=_resolve_role(payload.role),
    )
    db.add(user)
    db.flush()
    log_action(db, current_user.username, 'CREATE', 'USER', user.id, f'Usuário {username} criado.')
    _commit_or_conflict(db)
    db.refresh(user)
    return user


@router.put('/me/profile', response_model=UserOut)
def update_own_profile(
    payload: UserProfileUpdate,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    current_user.real_name = payload.real_name.strip()
    if payload.avatar_url is not None:
        current_user.avatar_url = payload.avatar_url or None
    log_action(db, current_user.username, 'UPDATE', 'USER', current_user.id, 'Perfil atualizado.')
    db.commit()
    db.refresh(current_user)
    return current_user


@router.put('/{user_id}', response_model=UserOut)
def update_user(
    user_id: int,
    payload: UserUpdate,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_admin),
):
    user = _get_user_or_404(db, user_id)
    data = payload.model_dump(exclude_unset=True)
    next_username = str(data.get('username') or user.username).strip()
    next_email = str(data.get('email') or user.email).strip()
    _ensure_unique(db, next_username, next_email, current_id=user.id)

    if 'role' in data and data['role'] is not None:
        next_role = _resolve_role(data['role'])
        if current_user.id == user.id and next_role != user.role:
            raise HTTPException(status_code=400, detail='Não é possível alterar o próprio perfil')
        user.role = next_role
    user.username = next_username
    user.email = next_email
    if data.get('real_name'):
        user.real_name = data['real_name'].strip()
    if data.get('password'):
        user.password = get_password_hash(data['password'])

    changed = ', '.join(sorted(key for key in data if key != 'password'))
    log_action(db, current_user.username, 'UPDATE', 'USER', user.id, f'Usuário {user.username} atualizado: {changed}')
    _commit_or_conflict(db)
    db.refresh(user)
    return user


@router.post('/{user_id}/2fa/disable', response_model=UserOut)
def admin_disable_two_factor(
    user_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_admin),
):
    user = _get_user_or_404(db, user_id)
    user.is_2fa_enabled = False
    user.two_fa_secret = None
    log_action(db, current_user.username, '2FA_DISABLE', 'USER', user.id, f'2FA desativado para {user.username}.')
    db.commit()
    db.refresh(user)
    return user


@router.delete('/{user_id}', status_code=status.HTTP_204_NO_CONTENT)
def delete_user(
    user_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_admin),
):
    if current_user.id == user_id:
        raise HTTPException(status_code=400, detail='Não é possível excluir o próprio usuário')
    user = _get_user_or_404(db, user_id)
    log_action(db, current_user.username, 'DELETE', 'USER', user.id, f'Usuário {user.username} excluído.')
    db.delete(user)
    db.commit()
    return None
