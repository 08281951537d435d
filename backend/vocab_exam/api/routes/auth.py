from fastapi import APIRouter, Depends
from fastapi.security import HTTPAuthorizationCredentials

from vocab_exam.api.deps import bearer, get_auth_service, get_current_teacher, get_store
from vocab_exam.core.exceptions import AuthenticationError, NotFoundError
from vocab_exam.db.store import ExamStore
from vocab_exam.models.schemas import SignInRequest, SignUpRequest, TeacherOut, TokenResponse
from vocab_exam.services.auth_service import AuthService, AuthSession

router = APIRouter()


def _token_response(session: AuthSession) -> TokenResponse:
    return TokenResponse(
        access_token=session.token,
        teacher_id=session.teacher_id,
        expires_at=session.expires_at,
    )


@router.post("/signup", response_model=TokenResponse, status_code=201)
def sign_up(
    request: SignUpRequest,
    store: ExamStore = Depends(get_store),
    auth: AuthService = Depends(get_auth_service),
):
    session = auth.sign_up(store, request.email, request.password, request.full_name)
    return _token_response(session)


@router.post("/signin", response_model=TokenResponse)
def sign_in(
    request: SignInRequest,
    store: ExamStore = Depends(get_store),
    auth: AuthService = Depends(get_auth_service),
):
    return _token_response(auth.sign_in(store, request.email, request.password))


@router.post("/signout")
def sign_out(
    credentials: HTTPAuthorizationCredentials = Depends(bearer),
    auth: AuthService = Depends(get_auth_service),
):
    if credentials is None:
        raise AuthenticationError("Not signed in")
    auth.sign_out(credentials.credentials)
    return {"status": "signed_out"}


@router.get("/me", response_model=TeacherOut)
def me(
    current: AuthSession = Depends(get_current_teacher),
    store: ExamStore = Depends(get_store),
):
    teacher = store.get_teacher(current.teacher_id)
    if teacher is None:
        raise NotFoundError("Teacher", current.teacher_id)
    return teacher
