from __future__ import annotations

import hashlib

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPBasic, HTTPBasicCredentials

import db

security = HTTPBasic()


def verify_user(credentials: HTTPBasicCredentials = Depends(security)) -> str:
    """Authenticate the Basic-auth caller and return their account email.

    Emails match case-insensitively and come back lowercased, so website
    ownership and sharing always compare the same form of the address.
    """
    email = db.normalize_email(credentials.username)
    user = db.get_user(email)
    password_hash = hashlib.sha256(credentials.password.encode()).hexdigest()
    if user is None or password_hash != user["password_hash"]:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid email or password",
            headers={"WWW-Authenticate": "Basic"},
        )
    return email
