"""One-click unsubscribe from notification emails.

Provides endpoints for:
- GET /unsubscribe?token= - Confirmation page
- POST /unsubscribe?token= - Turn off email notifications
"""

import html
import logging
from typing import Optional
from urllib.parse import quote

from fastapi import APIRouter, HTTPException, Query, status
from fastapi.responses import HTMLResponse
from sqlalchemy import update

from tracker_core.api.deps import AppSettings, DBSession
from tracker_core.domain.models import Tenant
from tracker_core.domain.services.tokens import verify_signed_token

router = APIRouter(prefix="/unsubscribe", tags=["unsubscribe"])
logger = logging.getLogger(__name__)


def render_page(title: str, body: str) -> str:
    return f"""<!DOCTYPE html>
<html lang="en">
<head>
  <meta charset="utf-8" />
  <meta name="viewport" content="width=device-width, initial-scale=1" />
  <title>{html.escape(title)} | Social Tracker</title>
  <style>
    body {{ font-family: -apple-system, BlinkMacSystemFont, "Segoe UI", Roboto, sans-serif; max-width: 480px; margin: 60px auto; padding: 0 20px; color: #1a1a1a; }}
    h1 {{ font-size: 24px; margin-bottom: 16px; }}
    a {{ color: #2563eb; }}
  </style>
</head>
<body>
  <h1>{html.escape(title)}</h1>
  {body}
</body>
</html>"""


@router.get("", response_class=HTMLResponse)
async def unsubscribe_page(
    settings: AppSettings,
    token: Optional[str] = Query(None),
) -> HTMLResponse:
    """Show a confirmation form; nothing changes until it is submitted."""
    if not token:
        return HTMLResponse(
            render_page("Invalid Link", "<p>This unsubscribe link is missing a token.</p>"),
            status_code=status.HTTP_400_BAD_REQUEST,
        )

    if verify_signed_token(token, settings.secret_key) is None:
        return HTMLResponse(
            render_page("Invalid Link", "<p>This unsubscribe link is invalid or has expired.</p>"),
            status_code=status.HTTP_400_BAD_REQUEST,
        )

    body = (
        "<p>Click the button below to unsubscribe from email notifications.</p>\n"
        f'  <form method="POST" action="/api/unsubscribe?token={quote(token, safe="")}">\n'
        '    <button type="submit" style="background:#dc2626;color:#fff;border:none;'
        'padding:10px 24px;border-radius:6px;font-size:16px;cursor:pointer;">'
        "Unsubscribe</button>\n"
        "  </form>\n"
        '  <p style="margin-top:24px;">Or <a href="/settings/account">manage your '
        "notification preferences</a> in settings.</p>"
    )
    return HTMLResponse(render_page("Unsubscribe from Email Notifications", body))


@router.post("")
async def unsubscribe(
    db: DBSession,
    settings: AppSettings,
    token: Optional[str] = Query(None),
) -> dict:
    """Disable email notifications for the tenant named by the token.

    Raises:
        HTTPException: 400 if the token is missing, invalid, or expired.
    """
    if not token:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Missing token",
        )

    tenant_id = verify_signed_token(token, settings.secret_key)
    if tenant_id is None:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Invalid or expired token",
        )

    db.execute(update(Tenant).where(Tenant.id == tenant_id).values(email_notifications=False))
    logger.info(f"Tenant {tenant_id} unsubscribed from email notifications")

    return {"success": True}
