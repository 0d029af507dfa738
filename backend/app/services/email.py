import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Sequence

import httpx
from jinja2 import Environment, FileSystemLoader, select_autoescape

from app.core.config import settings

logger = logging.getLogger(__name__)

TEMPLATE_PATH = Path(__file__).parent.parent / "templates" / "emails"
env = Environment(loader=FileSystemLoader(TEMPLATE_PATH), autoescape=select_autoescape(["html", "xml", "html.j2"]))

CONFIRM_SUBSCRIPTION_SUBJECT = "You're on the list — we'll notify you when it's back!"


def _build_payload(to_email: str, subject: str, html_body: str, text_body: str | None = None) -> dict[str, Any]:
    payload: dict[str, Any] = {
        "from": settings.email_from,
        "to": to_email,
        "subject": subject,
        "html": html_body,
    }
    if text_body:
        payload["text"] = text_body
    return payload


async def send_email(to_email: str, subject: str, html_body: str, text_body: str | None = None) -> bool:
    api_key = (settings.resend_api_key or "").strip()
    if not api_key:
        return False
    payload = _build_payload(to_email, subject, html_body, text_body)
    logger.info("email_send", extra={"subject": subject})
    try:
        async with httpx.AsyncClient(timeout=10) as client:
            resp = await client.post(
                settings.resend_api_url,
                json=payload,
                headers={"Authorization": f"Bearer {api_key}", "Content-Type": "application/json"},
            )
    except httpx.HTTPError as exc:
        logger.warning("Email send failed: %s", exc)
        return False
    if resp.is_error:
        logger.warning("email_send_rejected", extra={"status_code": resp.status_code, "body_preview": resp.text[:500]})
        return False
    return True


def render_template(template_name: str, context: dict) -> tuple[str, str]:
    base_text = env.get_template("base.txt.j2")
    base_html = env.get_template("base.html.j2")
    full_context = {"current_year": datetime.now(timezone.utc).year, **context}
    body_text = env.get_template(template_name).render(**full_context)
    body_html = env.get_template(template_name.replace(".txt.j2", ".html.j2")).render(**full_context)
    return base_text.render(body=body_text, **full_context), base_html.render(body=body_html, **full_context)


def _image_of(node: dict | None, key: str) -> dict:
    image = (node or {}).get(key) if isinstance(node, dict) else None
    return image if isinstance(image, dict) else {}


def _product_url(product: dict, shop_domain: str) -> str:
    url = product.get("onlineStoreUrl")
    if url:
        return str(url)
    handle = product.get("handle")
    return f"https://{shop_domain}/products/{handle}" if handle else f"https://{shop_domain}"


def confirm_subscription_context(
    *,
    first_name: str | None,
    product: dict | None,
    variant: dict | None = None,
    shop_domain: str | None = None,
    new_arrivals: Sequence[dict] = (),
) -> dict[str, Any]:
    domain = shop_domain or settings.shop_domain
    product = product or {}
    image = _image_of(variant, "image") or _image_of(product, "featuredImage")
    arrivals = []
    for item in new_arrivals:
        arrival_image = _image_of(item, "featuredImage")
        arrivals.append(
            {
                "title": item.get("title") or "",
                "url": _product_url(item, domain),
                "image_url": arrival_image.get("url"),
                "image_alt": arrival_image.get("altText") or item.get("title") or "",
            }
        )
    return {
        "first_name": first_name or "there",
        "product_name": product.get("title") or "this item",
        "product_url": _product_url(product, domain),
        "variant_title": (variant or {}).get("title"),
        "image_url": image.get("url"),
        "image_alt": image.get("altText") or product.get("title") or "",
        "logo_url": settings.logo_url,
        "shop_url": f"https://{domain}",
        "new_arrivals": arrivals,
    }


def build_confirm_subscription_email(**kwargs: Any) -> tuple[str, str]:
    return render_template("confirm_subscription.txt.j2", confirm_subscription_context(**kwargs))


async def send_confirm_subscription(to_email: str, **kwargs: Any) -> bool:
    text_body, html_body = build_confirm_subscription_email(**kwargs)
    return await send_email(to_email, CONFIRM_SUBSCRIPTION_SUBJECT, html_body, text_body)


_SAMPLE_IMAGE_URL = "https://cdn.shopify.com/shopify-email/example-image.jpg"

SAMPLE_CONFIRM_SUBSCRIPTION: dict[str, Any] = {
    "first_name": "Alex",
    "product": {
        "title": "Clementines Art Print",
        "handle": "clementines-art-print",
        "onlineStoreUrl": "https://mishmushkids.com/products/clementines-art-print",
    },
    "variant": {
        "title": "8x10 Print",
        "image": {"url": _SAMPLE_IMAGE_URL, "altText": "Clementines Art Print"},
    },
    "new_arrivals": [
        {
            "title": f"New Arrival {name}",
            "handle": f"new-arrival-{name.lower()}",
            "featuredImage": {"url": _SAMPLE_IMAGE_URL, "altText": f"New Arrival {name}"},
        }
        for name in ("One", "Two", "Three", "Four")
    ],
}


def sample_confirm_subscription() -> dict[str, str]:
    text_body, html_body = build_confirm_subscription_email(**SAMPLE_CONFIRM_SUBSCRIPTION)
    return {"text": text_body, "html": html_body}
