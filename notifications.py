"""
Transactional email through Resend.

send_email() never raises: a failed delivery is logged and reported as False
so the request that triggered it still succeeds. send_email_or_raise() is
for the few flows (password reset) that must surface the failure.
"""
import html
import logging
from typing import Dict, Iterable, Optional, Tuple

import resend

import settings

logger = logging.getLogger(__name__)

BRAND = "Marketplace"


class EmailError(Exception):
    pass


def _deliver(payload: Dict[str, object]) -> Tuple[bool, Optional[str]]:
    api_key = settings.RESEND_API_KEY
    if not api_key:
        return False, "Resend API key is not configured."
    resend.api_key = api_key
    try:
        response = resend.Emails.send(payload)
    except Exception as exc:
        return False, str(exc)
    if not isinstance(response, dict) or not response.get("id"):
        return False, str(response)
    return True, None


def _payload(to: str, subject: str, html_body: str, text: Optional[str]) -> Dict[str, object]:
    payload: Dict[str, object] = {
        "from": settings.EMAIL_FROM,
        "to": [to],
        "subject": subject,
        "html": html_body,
    }
    if text:
        payload["text"] = text
    return payload


def send_email(to: str, subject: str, html_body: str, text: Optional[str] = None) -> bool:
    delivered, error = _deliver(_payload(to, subject, html_body, text))
    if not delivered:
        logger.error("Failed to send email %r to %s: %s", subject, to, error)
    return delivered


def send_email_or_raise(to: str, subject: str, html_body: str, text: Optional[str] = None):
    delivered, error = _deliver(_payload(to, subject, html_body, text))
    if not delivered:
        logger.error("Failed to send email %r to %s: %s", subject, to, error)
        raise EmailError(error or "Email could not be sent")


# ----------------------- Templates -----------------------
def _page(title: str, *paragraphs: str) -> str:
    body = "".join(f"<p>{p}</p>" for p in paragraphs)
    return f"<html><body><h2>{html.escape(title)}</h2>{body}<p>- {BRAND}</p></body></html>"


def _e(value) -> str:
    return html.escape(str(value if value is not None else ""))


def _item_lines(items: Iterable[dict]) -> str:
    rows = "".join(f"<li>{_e(i.get('name'))} x {_e(i.get('quantity'))} - ₹{_e(i.get('subtotal'))}</li>" for i in items)
    return f"<ul>{rows}</ul>"


def order_confirmation(name: str, order: dict) -> Tuple[str, str]:
    subject = f"Order Confirmation - {order['order_number']}"
    return subject, _page(
        "Thank you for your order",
        f"Hi {_e(name)}, we have received order <b>{_e(order['order_number'])}</b>.",
        _item_lines(order.get("items", [])),
        f"Total: ₹{_e(order.get('total'))}",
    )


def new_seller_order(seller_name: str, order: dict, items: Iterable[dict]) -> Tuple[str, str]:
    return f"New Order Received - {order['order_number']}", _page(
        "You have a new order",
        f"Hi {_e(seller_name)}, order <b>{_e(order['order_number'])}</b> includes your products.",
        _item_lines(items),
    )


def order_status_update(name: str, order: dict, status: str, notes: Optional[str] = None) -> Tuple[str, str]:
    paragraphs = [f"Hi {_e(name)}, order <b>{_e(order['order_number'])}</b> is now <b>{_e(status)}</b>."]
    if notes:
        paragraphs.append(_e(notes))
    return f"Order {order['order_number']} is {status}", _page("Order update", *paragraphs)


def order_cancelled(name: str, order: dict, reason: str) -> Tuple[str, str]:
    return f"Order {order['order_number']} cancelled", _page(
        "Your order was cancelled",
        f"Hi {_e(name)}, order <b>{_e(order['order_number'])}</b> has been cancelled.",
        f"Reason: {_e(reason)}",
    )


def application_received(name: str, application: dict) -> Tuple[str, str]:
    return "Seller application received", _page(
        "We received your application",
        f"Hi {_e(name)}, your application for <b>{_e(application['business_name'])}</b> is under review.",
        f"Application ID: {_e(application['application_id'])}",
    )


def new_application_for_admin(admin_name: str, applicant: str, application: dict, review_url: str) -> Tuple[str, str]:
    return f"New seller application {application['application_id']}", _page(
        "New seller application",
        f"Hi {_e(admin_name)}, {_e(applicant)} applied to sell as <b>{_e(application['business_name'])}</b>.",
        f'<a href="{_e(review_url)}">Review application</a>',
    )


def application_approved(name: str, application: dict) -> Tuple[str, str]:
    dashboard = f"{settings.FRONTEND_URL}/seller/dashboard"
    return "Your seller application was approved", _page(
        "Welcome aboard",
        f"Hi {_e(name)}, <b>{_e(application['business_name'])}</b> is approved to sell.",
        f'<a href="{_e(dashboard)}">Open your dashboard</a>',
    )


def application_rejected(name: str, application: dict, reason: str) -> Tuple[str, str]:
    return "Update on your seller application", _page(
        "Application not approved",
        f"Hi {_e(name)}, we could not approve <b>{_e(application['business_name'])}</b>.",
        f"Reason: {_e(reason)}",
        "You can submit a new application at any time.",
    )


def application_changes_requested(name: str, application: dict, reason: str) -> Tuple[str, str]:
    return "Changes requested on your seller application", _page(
        "Changes requested",
        f"Hi {_e(name)}, please update your application for <b>{_e(application['business_name'])}</b>.",
        _e(reason),
    )


def password_reset(name: str, reset_url: str, minutes: int) -> Tuple[str, str, str]:
    subject = "Password reset request"
    text = f"Reset your password within {minutes} minutes: {reset_url}"
    return subject, _page(
        "Reset your password",
        f"Hi {_e(name)}, use the link below within {minutes} minutes.",
        f'<a href="{_e(reset_url)}">Reset password</a>',
    ), text
