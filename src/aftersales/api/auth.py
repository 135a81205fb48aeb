"""Who is calling. The header only names the user; roles come from the stored User."""

from fastapi import Header

from aftersales.errors import AccessDeniedError


def acting_user_id(x_user_id: str = Header(default="")) -> str:
    if not x_user_id.strip():
        raise AccessDeniedError("Authentication required")
    return x_user_id.strip()
