"""HTML/text templates for registration and account emails."""

from __future__ import annotations

import html
import os
from typing import Any, Dict, List

from osot.integrations.contracts.email import EmailMessage


def public_base_url() -> str:
    return os.getenv("PUBLIC_BASE_URL", "http://localhost:8000").rstrip("/")


def admin_emails() -> List[str]:
    raw = os.getenv("ADMIN_EMAILS", "admin@osot.on.ca")
    return [e.strip() for e in raw.split(",") if e.strip()]


def _wrap(title: str, body: str) -> str:
    return (
        "<html><body style=\"font-family: Arial, sans-serif\">"
        f"<h2>{html.escape(title)}</h2>{body}"
        "<p>Ontario Society of Occupational Therapists</p>"
        "</body></html>"
    )


def verification_email(to: str, first_name: str, session_id: str, token: str, expires_minutes: int) -> EmailMessage:
    link = f"{public_base_url()}/verify-email?sessionId={session_id}&token={token}"
    name = html.escape(first_name or "there")
    body = (
        f"<p>Hi {name},</p>"
        "<p>Please confirm your email address to continue your OSOT registration.</p>"
        f"<p><a href=\"{link}\">Verify my email</a></p>"
        f"<p>This link expires in {expires_minutes} minutes.</p>"
    )
    return EmailMessage(
        to=[to],
        subject="Verify your email address",
        html=_wrap("Verify your email", body),
        text=f"Hi {first_name}, verify your email: {link}",
        template="verification",
        metadata={"session_id": session_id},
    )


def admin_approval_email(session: Dict[str, Any], approve_token: str, reject_token: str) -> EmailMessage:
    base = f"{public_base_url()}/public/registration/admin"
    account = session.get("request", {}).get("account", {})
    full_name = f"{account.get('first_name', '')} {account.get('last_name', '')}".strip()
    body = (
        "<p>A new registration is waiting for approval.</p>"
        "<ul>"
        f"<li>Name: {html.escape(full_name)}</li>"
        f"<li>Email: {html.escape(account.get('email', ''))}</li>"
        f"<li>Account number: {html.escape(str(session.get('account_business_id') or '-'))}</li>"
        "</ul>"
        f"<p><a href=\"{base}/approve/{approve_token}\">Approve</a> | "
        f"<a href=\"{base}/reject/{reject_token}\">Reject</a></p>"
    )
    return EmailMessage(
        to=admin_emails(),
        subject=f"New OSOT registration: {full_name}",
        html=_wrap("Registration approval", body),
        text=f"Approve: {base}/approve/{approve_token}\nReject: {base}/reject/{reject_token}",
        template="admin_approval",
        metadata={"session_id": session.get("session_id")},
    )


def account_approved_email(to: str, first_name: str) -> EmailMessage:
    body = (
        f"<p>Hi {html.escape(first_name or 'there')},</p>"
        "<p>Your OSOT account has been approved. You can now sign in.</p>"
        f"<p><a href=\"{public_base_url()}/login\">Sign in</a></p>"
    )
    return EmailMessage(
        to=[to],
        subject="Your OSOT account is active",
        html=_wrap("Account approved", body),
        text="Your OSOT account has been approved. You can now sign in.",
        template="account_approved",
    )


def account_rejected_email(to: str, first_name: str, reason: str = "") -> EmailMessage:
    reason_html = f"<p>Reason: {html.escape(reason)}</p>" if reason else ""
    body = (
        f"<p>Hi {html.escape(first_name or 'there')},</p>"
        "<p>Unfortunately your OSOT registration could not be approved.</p>"
        f"{reason_html}"
        "<p>Please contact us if you have questions.</p>"
    )
    return EmailMessage(
        to=[to],
        subject="Your OSOT registration",
        html=_wrap("Registration update", body),
        text="Your OSOT registration could not be approved." + (f" Reason: {reason}" if reason else ""),
        template="account_rejected",
    )


def password_reset_email(to: str, name: str, token: str, expires_minutes: int) -> EmailMessage:
    link = f"{public_base_url()}/reset-password?token={token}"
    body = (
        f"<p>Hi {html.escape(name or 'there')},</p>"
        "<p>We received a request to reset your OSOT password.</p>"
        f"<p><a href=\"{link}\">Choose a new password</a></p>"
        f"<p>This link expires in {expires_minutes} minutes. "
        "If you did not ask for a reset you can ignore this email.</p>"
    )
    return EmailMessage(
        to=[to],
        subject="Password Recovery - OSOT",
        html=_wrap("Password recovery", body),
        text=f"Reset your OSOT password: {link}",
        template="password_reset",
    )


def password_changed_email(to: str, name: str) -> EmailMessage:
    body = (
        f"<p>Hi {html.escape(name or 'there')},</p>"
        "<p>Your OSOT password was just changed.</p>"
        "<p>If this was not you, contact us right away.</p>"
    )
    return EmailMessage(
        to=[to],
        subject="Your password has been changed - OSOT",
        html=_wrap("Password changed", body),
        text="Your OSOT password was just changed. If this was not you, contact us right away.",
        template="password_changed",
    )
