from __future__ import annotations

import secrets
from typing import Callable

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPBasic, HTTPBasicCredentials

basic = HTTPBasic()


def require_basic_auth(username: str, password: str) -> Callable[[HTTPBasicCredentials], str]:
    """Purpose: Build a dependency guarding the audit endpoints with basic auth.
    Inputs/Outputs: Inputs are the expected credentials; output is a FastAPI dependency
        returning the authenticated username.
    Side Effects / State: None.
    Dependencies: fastapi.security.HTTPBasic and secrets.compare_digest.
    Failure Modes: Wrong or missing credentials raise HTTP 401 with WWW-Authenticate.
    If Removed: Anyone can export or wipe the chat logs.
    Testing Notes: Call with good, bad and no credentials.
    """
    expected_user = username.encode("utf-8")
    expected_pass = password.encode("utf-8")

    def _check(credentials: HTTPBasicCredentials = Depends(basic)) -> str:
        user_ok = secrets.compare_digest(credentials.username.encode("utf-8"), expected_user)
        pass_ok = secrets.compare_digest(credentials.password.encode("utf-8"), expected_pass)
        if not (user_ok and pass_ok):
            raise HTTPException(
                status_code=status.HTTP_401_UNAUTHORIZED,
                detail="Unauthorized",
                headers={"WWW-Authenticate": "Basic"},
            )
        return credentials.username

    return _check
