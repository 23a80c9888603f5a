from fastapi import APIRouter
from fastapi.responses import RedirectResponse

from calcula.core.config import AFFILIATE_COOKIE_NAME, FRONTEND_URL
from calcula.services.checkout import COOKIE_MAX_AGE_SECONDS

router = APIRouter()


@router.get("/r/{code}")
def affiliate_redirect(code: str):
    """Persist the referral code for 60 days and send the visitor to the affiliate plan page."""
    response = RedirectResponse(url=f"{FRONTEND_URL}/affiliate/{code}", status_code=302)
    response.set_cookie(
        AFFILIATE_COOKIE_NAME,
        code,
        max_age=COOKIE_MAX_AGE_SECONDS,
        expires=COOKIE_MAX_AGE_SECONDS,
        path="/",
        samesite="lax",
        secure=True,
    )
    return response
