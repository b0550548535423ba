# pixelpets/validate.py
from datetime import datetime, timedelta, timezone

from aiogram.utils.web_app import WebAppInitData, safe_parse_webapp_init_data
from fastapi import HTTPException, status


def get_init_data(raw: str, bot_token: str, *, lifetime: int = 3600, request=None) -> WebAppInitData:
    """
    Parse + validate Telegram Web-App initData.
    Raises HTTP 403 for forged or expired data, 400 for absent data.
    The authenticated user id is the owner id for everything else.
    """
    if not raw:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="initData missing – open PixelPets inside Telegram",
        )

    try:
        init = safe_parse_webapp_init_data(bot_token, raw)
    except ValueError:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="initData signature invalid or expired",
        )

    age = datetime.now(timezone.utc) - init.auth_date
    if init.user is None or age > timedelta(seconds=lifetime):
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="initData signature invalid or expired",
        )

    if request is not None:
        request.state.user_id = str(init.user.id)
    return init
