import logging
from datetime import timedelta
from typing import Annotated

from fastapi import APIRouter, Depends
from fastapi.security import OAuth2PasswordRequestForm

from daysheet.api_service import schemas
from daysheet.api_service.auth import authenticate_user, create_access_token, require_auth
from daysheet.api_service.core.settings import settings
from daysheet.processing_service.logic.settings import settings as service_settings
from daysheet.shared.errors import AuthError

logger = logging.getLogger(__name__)

router = APIRouter()


@router.post("/token", response_model=schemas.Token)
async def login(form_data: Annotated[OAuth2PasswordRequestForm, Depends()]):
    """Exchanges the configured user's credentials for a session token."""
    if not authenticate_user(form_data.username, form_data.password):
        logger.warning(f"Failed login attempt for user '{form_data.username}'")
        raise AuthError("Incorrect username or password")

    expires_minutes = settings.ACCESS_TOKEN_EXPIRE_MINUTES
    token = create_access_token({"sub": form_data.username}, expires_delta=timedelta(minutes=expires_minutes))
    return schemas.Token(access_token=token, expires_in=expires_minutes * 60)


@router.get("/me")
async def read_current_user(current_user: str = Depends(require_auth)):
    return {"username": current_user, "pm_provider": service_settings.PM_PROVIDER}
