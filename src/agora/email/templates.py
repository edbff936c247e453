"""
Email templates.

Each template function returns (subject, html_body, text_body).
"""

from __future__ import annotations

from html import escape

BG = "#F6F8FA"
CARD = "#FFFFFF"
ACCENT = "#2F6FEB"
TEXT_PRIMARY = "#1F2328"
TEXT_SECONDARY = "#59636E"


def _base_layout(content: str, app_name: str = "Agora") -> str:
    """Wrap content in the base email layout."""
    return f"""\
<!DOCTYPE html>
<html lang="en">
<head><meta charset="UTF-8"><title>{app_name}</title></head>
<body style="margin: 0; padding: 40px 20px; background-color: {BG}; font-family: -apple-system, 'Segoe UI', Roboto, sans-serif;">
    <div style="max-width: 560px; margin: 0 auto; background-color: {CARD}; border-radius: 8px; padding: 32px;">
        {content}
    </div>
    <p style="text-align: center; color: {TEXT_SECONDARY}; font-size: 12px;">
        If you didn't sign up for {app_name}, you can safely ignore this email.
    </p>
</body>
</html>"""


def activation_email(name: str, activation_url: str, ttl_hours: int) -> tuple[str, str, str]:
    """Account activation email carrying the single-use link."""
    subject = "Activate your Agora account"
    safe_name = escape(name)
    html = _base_layout(f"""\
<h1 style="color: {TEXT_PRIMARY}; font-size: 22px;">Welcome, {safe_name}!</h1>
<p style="color: {TEXT_SECONDARY}; line-height: 1.6;">Confirm your email address to activate your account.</p>
<p><a href="{escape(activation_url)}" style="display: inline-block; background-color: {ACCENT}; color: #FFFFFF; padding: 12px 24px; border-radius: 6px; text-decoration: none;">Activate account</a></p>
<p style="color: {TEXT_SECONDARY}; font-size: 13px;">This link expires in {ttl_hours} hours and works only once.</p>""")
    text = (
        f"Welcome, {name}!\n\n"
        f"Activate your account: {activation_url}\n\n"
        f"This link expires in {ttl_hours} hours and works only once.\n"
    )
    return subject, html, text
