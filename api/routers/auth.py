"""
Accounting OAuth Endpoints.

One-time connection of the QuickBooks company. Tokens are stored by the
connector and refreshed automatically afterwards.
"""

import logging
import secrets
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from fastapi.responses import RedirectResponse

from api.dependencies import get_accounting_client
from api.models import AuthCallbackResponse
from connectors.quickbooks import QuickBooksClient
from domain.errors import UpstreamError

logger = logging.getLogger(__name__)

router = APIRouter()


@router.get(
    "/auth/quickbooks",
    summary="Connect QuickBooks",
    description="Redirect to the QuickBooks consent screen."
)
def start_authorization(accounting: QuickBooksClient = Depends(get_accounting_client)):
    state = secrets.token_urlsafe(16)
    return RedirectResponse(accounting.get_authorization_url(state), status_code=307)


@router.get(
    "/callback/quickbooks",
    response_model=AuthCallbackResponse,
    summary="QuickBooks OAuth Callback",
)
def authorization_callback(
    code: Optional[str] = Query(None),
    realm_id: Optional[str] = Query(None, alias="realmId"),
    accounting: QuickBooksClient = Depends(get_accounting_client),
):
    """
    Exchange the authorization code for tokens and store them.

    Returns 400 when `code` or `realmId` is missing.
    """
    if not code or not realm_id:
        raise HTTPException(status_code=400, detail="Missing authorization code or realmId")

    try:
        tokens = accounting.exchange_code(code, realm_id)
    except UpstreamError as e:
        logger.error("QuickBooks token exchange failed: %s", e)
        raise HTTPException(status_code=500, detail=f"Token exchange failed: {e}")

    return AuthCallbackResponse(
        success=True,
        message="QuickBooks connected",
        company_id=tokens.company_id,
        expires_at=tokens.expires_at,
    )
