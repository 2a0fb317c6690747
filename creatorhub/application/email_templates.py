"""
Email templates — subject + HTML (Jinja2, autoescaped) + plain-text bodies
for every notification category.
"""
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path

from jinja2 import Environment, FileSystemLoader, select_autoescape

from creatorhub.config import get_settings

BRAND = "Creatorhub"

templates_dir = Path(__file__).parent.parent / "templates" / "email"
_env = Environment(
    loader=FileSystemLoader(str(templates_dir)),
    autoescape=select_autoescape(["html"]),
)


@dataclass(frozen=True)
class EmailContent:
    template: str
    subject: str
    html: str
    text: str
    payload: dict


def build_action_url(kind: str, **params) -> str:
    """Absolute link into the frontend for an email call-to-action."""
    base = get_settings().APP_ORIGIN.rstrip("/")
    if kind == "post":
        return f"{base}/purchases?postId={params.get('post_id') or ''}"
    if kind == "purchases":
        return f"{base}/purchases"
    if kind == "dashboard":
        return f"{base}/dashboard?tab=requests"
    if kind == "sales":
        return f"{base}/dashboard?tab=sales"
    return f"{base}/"


def _render(template: str, subject: str, text: str, **ctx) -> EmailContent:
    html = _env.get_template(f"{template}.html").render(
        subject=subject,
        brand=BRAND,
        year=datetime.now(timezone.utc).year,
        **ctx,
    )
    return EmailContent(template=template, subject=subject, html=html, text=text, payload=ctx)


def member_post(product_title: str, post_id: int | None) -> EmailContent:
    url = build_action_url("post", post_id=post_id)
    return _render(
        "member_post",
        f"New Post from {product_title} Just for You",
        f"New post for {product_title}\n\nA new post has been published for your membership.\nView the post: {url}\n",
        product_title=product_title,
        action_url=url,
    )


def purchase_receipt(product_title: str, product_type: str) -> EmailContent:
    url = build_action_url("purchases")
    return _render(
        "purchase_receipt",
        f"Your {product_type} purchase is confirmed",
        f"Purchase confirmed\n\nYour purchase of {product_title} is confirmed.\nMy Purchases: {url}\n",
        product_title=product_title,
        action_url=url,
    )


def creator_sale(product_title: str, product_type: str) -> EmailContent:
    url = build_action_url("sales")
    return _render(
        "creator_sale",
        "You made a sale",
        f"You made a sale\n\nYour {product_type} \"{product_title}\" was just purchased.\n{url}\n",
        product_title=product_title,
        product_type=product_type,
        action_url=url,
    )


def new_request() -> EmailContent:
    url = build_action_url("dashboard")
    return _render(
        "new_request",
        "You've Got a New Request",
        f"New request received\n\nGreat news! You've received a new request.\nView request: {url}\n",
        action_url=url,
    )


def request_delivered(product_title: str | None) -> EmailContent:
    url = build_action_url("purchases")
    title_line = f": {product_title}" if product_title else ""
    return _render(
        "request_delivered",
        "Your Request Has Been Completed",
        f"Your request is complete\n\nYour creator has completed your request{title_line}.\nView request: {url}\n",
        product_title=product_title,
        action_url=url,
    )


def membership_renewal(product_title: str, days: int) -> EmailContent:
    url = build_action_url("purchases")
    return _render(
        "membership_renewal",
        f"Your Membership Will Renew in {days} Days",
        f"Membership renews soon\n\nHi, your membership ({product_title}) will renew in {days} days.\n"
        f"Manage subscription: {url}\n",
        product_title=product_title,
        days=days,
        action_url=url,
    )
