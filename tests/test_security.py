import uuid
from datetime import timedelta

from jose import jwt

from backoffice.config import settings
from backoffice.core.security import (
    create_access_token,
    generate_temporary_password,
    get_password_hash,
    verify_access_token,
    verify_password,
)


def test_password_hash_roundtrip():
    hashed = get_password_hash("s3cret-pass")
    assert hashed != "s3cret-pass"
    assert verify_password("s3cret-pass", hashed)
    assert not verify_password("wrong", hashed)
    assert not verify_password("s3cret-pass", "not-a-hash")


def test_temporary_passwords_differ():
    first, second = generate_temporary_password(), generate_temporary_password()
    assert first != second
    assert first.startswith("Temp") and first.endswith("!")


def test_access_token_carries_company_claim():
    user_id, company_id = uuid.uuid4(), uuid.uuid4()
    token = create_access_token(user_id, additional_claims={"company_id": str(company_id)})

    claims = verify_access_token(token)
    assert claims["sub"] == str(user_id)
    assert claims["company_id"] == str(company_id)


def test_rejected_tokens():
    assert verify_access_token("garbage") is None
    assert verify_access_token(create_access_token(uuid.uuid4(), expires_delta=timedelta(seconds=-5))) is None

    refresh = jwt.encode({"sub": "x", "type": "refresh"}, settings.SECRET_KEY, algorithm=settings.ALGORITHM)
    assert verify_access_token(refresh) is None
