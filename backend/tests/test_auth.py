import pytest

from vocab_exam.core.exceptions import AuthenticationError, ConflictError, ValidationError
from vocab_exam.services.auth_service import SIGNED_IN, SIGNED_OUT, AuthService


def test_sign_up_then_sign_in(store, auth):
    created = auth.sign_up(store, "Teacher@School.org", "secret123", "Ms Teacher")
    session = auth.sign_in(store, "teacher@school.org", "secret123")

    assert session.teacher_id == created.teacher_id
    assert auth.get_session(session.token).teacher_id == created.teacher_id


def test_duplicate_email(store, auth):
    auth.sign_up(store, "a@b.org", "secret123", "A")
    with pytest.raises(ConflictError):
        auth.sign_up(store, "A@B.org", "secret123", "A again")


@pytest.mark.parametrize(
    "email,password,name",
    [("", "secret123", "A"), ("a@b.org", "short", "A"), ("a@b.org", "secret123", " ")],
)
def test_sign_up_validation(store, auth, email, password, name):
    with pytest.raises(ValidationError):
        auth.sign_up(store, email, password, name)


def test_wrong_password(store, auth, teacher):
    with pytest.raises(AuthenticationError):
        auth.sign_in(store, teacher.email, "wrong-password")
    with pytest.raises(AuthenticationError):
        auth.sign_in(store, "nobody@example.org", "password123")


@pytest.mark.parametrize("token", [None, "", "not-a-jwt"])
def test_bad_tokens(auth, token):
    with pytest.raises(AuthenticationError):
        auth.get_session(token)


def test_token_from_other_secret_rejected(store, teacher):
    session = AuthService(secret_key="one").sign_in(store, teacher.email, "password123")
    with pytest.raises(AuthenticationError):
        AuthService(secret_key="two").get_session(session.token)


def test_sign_out_revokes_and_notifies(store, auth, teacher):
    events = []
    listener = auth.on_auth_state_change(lambda event, s: events.append((event, s.teacher_id)))

    session = auth.sign_in(store, teacher.email, "password123")
    other = auth.sign_in(store, teacher.email, "password123")
    auth.sign_out(session.token)

    with pytest.raises(AuthenticationError):
        auth.get_session(session.token)
    assert auth.get_session(other.token).teacher_id == teacher.id
    assert events == [
        (SIGNED_IN, teacher.id),
        (SIGNED_IN, teacher.id),
        (SIGNED_OUT, teacher.id),
    ]

    auth.remove_listener(listener)
    auth.sign_out(other.token)
    assert len(events) == 3
