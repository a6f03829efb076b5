"""Outgoing email through the Resend HTTP API."""

from __future__ import annotations

import html
import logging
from typing import Optional

import httpx

from config import get_settings

LOGGER = logging.getLogger(__name__)

RESEND_URL = "https://api.resend.com/emails"


def mask_email(email: str) -> str:
    local, _, domain = email.partition("@")
    if not local or not domain:
        return "***@***.***"
    if len(local) <= 2:
        return f"{local}@{domain}"
    stars = "*" * min(5, len(local) - 2)
    return f"{local[0]}{stars}{local[-1]}@{domain}"


def send_email(to: str, subject: str, body_html: str, client: Optional[httpx.Client] = None) -> bool:
    """Send one email; returns ``False`` instead of raising when delivery fails."""
    settings = get_settings()
    if not settings.resend_api_key:
        LOGGER.warning("RESEND_API_KEY not set; email to %s not sent.", mask_email(to))
        return False

    payload = {"from": settings.email_from, "to": [to], "subject": subject, "html": body_html}
    headers = {"Authorization": f"Bearer {settings.resend_api_key}"}
    try:
        if client is not None:
            response = client.post(RESEND_URL, json=payload, headers=headers)
        else:
            with httpx.Client(timeout=10.0) as own_client:
                response = own_client.post(RESEND_URL, json=payload, headers=headers)
        response.raise_for_status()
    except httpx.HTTPError:
        LOGGER.exception("Email delivery to %s failed", mask_email(to))
        return False
    return True


def password_setup_email(name: str, token: str, is_reset: bool = False) -> str:
    base_url = get_settings().public_base_url
    action_url = f"{base_url}/auth/set-password/{token}"
    title = "Şifre Sıfırlama" if is_reset else "Hesap Oluşturma"
    button = "Şifremi Sıfırla" if is_reset else "Hesabımı Oluştur"
    return (
        f"<h2>{title}</h2>"
        f"<p>Merhaba <strong>{html.escape(name)}</strong>,</p>"
        f'<p><a href="{action_url}">{button}</a></p>'
        "<p>Bu link 24 saat içinde geçerliliğini yitirecektir.</p>"
        f'<p><a href="{action_url}">{action_url}</a></p>'
    )


__all__ = ["mask_email", "password_setup_email", "send_email"]
