from __future__ import annotations

import html
import time
from datetime import date
from pathlib import Path
from typing import Any, Callable

import httpx

from onecard_simulator.logger import append_log_event
from onecard_simulator.models import MailingConfig, OutboundResult
from onecard_simulator.utils import now_local_iso

MAILERLITE_BASE_URL = "https://connect.mailerlite.com/api"
RESEND_BASE_URL = "https://api.resend.com"
REQUEST_TIMEOUT_SECONDS = 30.0
MAX_RETRIES = 2
RETRYABLE_STATUS_CODES = {408, 425, 429, 500, 502, 503, 504}
BRAND_NAME = "One Card"
SITE_URL = "https://onecard.app"


class ProviderError(RuntimeError):
    def __init__(self, provider: str, status_code: int, detail: str) -> None:
        super().__init__(f"{provider} error: {detail}")
        self.provider = provider
        self.status_code = status_code
        self.detail = detail


class TransportError(RuntimeError):
    pass


class _JsonApiClient:
    provider_name = "API"

    def __init__(
        self,
        api_key: str,
        base_url: str,
        transport: httpx.BaseTransport | None = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self._client = httpx.Client(
            base_url=base_url.rstrip("/"),
            headers={"Authorization": f"Bearer {api_key}", "Content-Type": "application/json"},
            timeout=REQUEST_TIMEOUT_SECONDS,
            transport=transport,
        )
        self._sleep = sleep

    def close(self) -> None:
        self._client.close()

    def _post(self, path: str, payload: dict[str, Any]) -> dict[str, Any]:
        for attempt in range(MAX_RETRIES + 1):
            try:
                response = self._client.post(path, json=payload)
            except httpx.TransportError as exc:
                if attempt >= MAX_RETRIES:
                    raise TransportError(
                        f"Could not connect to {self.provider_name}: {exc}. Nothing was sent."
                    ) from exc
                self._sleep(0.25 * (2**attempt))
                continue

            if response.is_success:
                return _safe_json(response)
            if response.status_code in RETRYABLE_STATUS_CODES and attempt < MAX_RETRIES:
                self._sleep(0.25 * (2**attempt))
                continue
            raise ProviderError(self.provider_name, response.status_code, response.text or response.reason_phrase)
        raise RuntimeError(f"Unexpected retry loop exit for {self.provider_name} {path}.")


class MailerLiteClient(_JsonApiClient):
    provider_name = "MailerLite"

    def __init__(self, api_key: str, base_url: str = MAILERLITE_BASE_URL, **kwargs: Any) -> None:
        super().__init__(api_key=api_key, base_url=base_url, **kwargs)

    def add_subscriber(self, email: str, group_id: str | None = None) -> dict[str, Any]:
        return self._post("/subscribers", {"email": email, "groups": [group_id] if group_id else []})


class ResendClient(_JsonApiClient):
    provider_name = "Resend"

    def __init__(self, api_key: str, base_url: str = RESEND_BASE_URL, **kwargs: Any) -> None:
        super().__init__(api_key=api_key, base_url=base_url, **kwargs)

    def send_email(
        self,
        sender: str,
        to: list[str],
        subject: str,
        html_body: str,
        reply_to: str | None = None,
    ) -> dict[str, Any]:
        payload: dict[str, Any] = {"from": sender, "to": to, "subject": subject, "html": html_body}
        if reply_to is not None:
            payload["reply_to"] = reply_to
        return self._post("/emails", payload)


def normalize_email(value: object) -> str | None:
    if not isinstance(value, str):
        return None
    cleaned = value.strip().lower()
    if not cleaned or "@" not in cleaned:
        return None
    return cleaned


def subscribe_email(
    email: object,
    settings: MailingConfig,
    mailerlite: MailerLiteClient | None = None,
    resend: ResendClient | None = None,
    log_path: Path | None = None,
) -> OutboundResult:
    address = normalize_email(email)
    if address is None:
        return OutboundResult(ok=False, message="Email required", status_code=400, error_kind="validation")
    if not settings.mailerlite_api_key:
        return OutboundResult(
            ok=False, message="MAILERLITE_API_KEY missing", status_code=500, error_kind="configuration"
        )

    client = mailerlite or MailerLiteClient(settings.mailerlite_api_key, base_url=settings.mailerlite_api_url)
    try:
        client.add_subscriber(address, group_id=settings.mailerlite_group_id)
    except ProviderError as exc:
        return OutboundResult(ok=False, message=str(exc), status_code=502, error_kind="provider")
    except TransportError as exc:
        return OutboundResult(ok=False, message=str(exc), status_code=502, error_kind="transport")
    finally:
        if mailerlite is None:
            client.close()

    if settings.resend_api_key and settings.support_from_email:
        _send_welcome_email(address, settings, resend, log_path)

    return OutboundResult(ok=True, message="You're on the list. Check your inbox!")


def send_support_message(
    email: object,
    message: object,
    settings: MailingConfig,
    resend: ResendClient | None = None,
) -> OutboundResult:
    address = normalize_email(email)
    text = message.strip() if isinstance(message, str) else ""
    if address is None or not text:
        return OutboundResult(
            ok=False, message="Email and message required", status_code=400, error_kind="validation"
        )
    if (
        not settings.resend_api_key
        or not settings.support_to_email
        or not settings.support_from_email
    ):
        return OutboundResult(ok=False, message="Missing RESEND env vars", status_code=500, error_kind="configuration")

    client = resend or ResendClient(settings.resend_api_key, base_url=settings.resend_api_url)
    try:
        client.send_email(
            sender=f"{BRAND_NAME} <{settings.support_from_email}>",
            to=[settings.support_to_email],
            subject=f"{BRAND_NAME} – Support message from {address}",
            html_body=render_support_html(address, text),
            reply_to=address,
        )
    except ProviderError as exc:
        return OutboundResult(ok=False, message=str(exc), status_code=502, error_kind="provider")
    except TransportError as exc:
        return OutboundResult(ok=False, message=str(exc), status_code=502, error_kind="transport")
    finally:
        if resend is None:
            client.close()

    return OutboundResult(ok=True, message="Message sent. We'll reply ASAP.")


def render_welcome_html(year: int | None = None) -> str:
    year = year or date.today().year
    return (
        "<div style=\"font-family:'Segoe UI',Roboto,Arial,sans-serif;background-color:#000;padding:24px;"
        'color:#e5e5e5;border-radius:12px;text-align:center;">'
        f'<h2 style="color:#34d399;margin-bottom:8px;">Welcome to {BRAND_NAME}</h2>'
        '<p style="font-size:15px;color:#d4d4d4;">Thanks for subscribing! You\'re on the early access list.</p>'
        f'<a href="{SITE_URL}" style="display:inline-block;margin-top:16px;padding:10px 20px;'
        'background-color:#34d399;color:#000;font-weight:600;border-radius:6px;text-decoration:none;">'
        f"Visit {BRAND_NAME}</a>"
        f'<p style="margin-top:20px;font-size:12px;color:#9ca3af;">&copy; {year} {BRAND_NAME}</p>'
        "</div>"
    )


def render_support_html(email: str, message: str, year: int | None = None) -> str:
    year = year or date.today().year
    return (
        "<div style=\"font-family:'Segoe UI',Roboto,Arial,sans-serif;background-color:#000;padding:24px;"
        'color:#e5e5e5;border-radius:12px;">'
        f'<h2 style="color:#34d399;margin-bottom:8px;">{BRAND_NAME} Support Message</h2>'
        f'<p style="margin:0 0 8px 0;font-size:14px;">New message from the {BRAND_NAME} page.</p>'
        '<div style="background:#111;padding:12px;border-radius:8px;margin-top:12px;border:1px solid #222;">'
        f'<p><b style="color:#34d399;">From:</b> {html.escape(email)}</p>'
        '<p><b style="color:#34d399;">Message:</b></p>'
        '<pre style="white-space:pre-wrap;font-size:14px;line-height:1.5;color:#fafafa;">'
        f"{html.escape(message, quote=False)}</pre>"
        "</div>"
        f'<p style="margin-top:16px;font-size:12px;color:#9ca3af;">&copy; {year} {BRAND_NAME}</p>'
        "</div>"
    )


def _send_welcome_email(
    address: str,
    settings: MailingConfig,
    resend: ResendClient | None,
    log_path: Path | None,
) -> None:
    client = resend or ResendClient(settings.resend_api_key, base_url=settings.resend_api_url)
    try:
        client.send_email(
            sender=f"{BRAND_NAME} <{settings.support_from_email}>",
            to=[address],
            subject=f"Welcome to {BRAND_NAME} – You're In!",
            html_body=render_welcome_html(),
        )
    except (ProviderError, TransportError) as exc:
        # The subscription already succeeded.
        append_log_event(
            log_path,
            {
                "timestamp": now_local_iso(),
                "event_name": "welcome_email_failed",
                "status": "warning",
                "error_message": str(exc),
            },
        )
    finally:
        if resend is None:
            client.close()


def _safe_json(response: httpx.Response) -> dict[str, Any]:
    try:
        value = response.json()
    except ValueError:
        return {"raw": response.text}
    if isinstance(value, dict):
        return value
    return {"raw": value}
