"""Pydantic schemas for webhook subscription management."""

from pydantic import AnyHttpUrl, BaseModel, Field

from src.hb_common.enums import WebhookEvent
from src.hb_webhook.infrastructure.persistence import Webhook


class CreateWebhookRequest(BaseModel):
    name: str = Field(..., min_length=1, max_length=100)
    url: AnyHttpUrl
    events: list[WebhookEvent] = Field(..., min_length=1)


class UpdateWebhookRequest(BaseModel):
    name: str | None = Field(None, min_length=1, max_length=100)
    url: AnyHttpUrl | None = None
    events: list[WebhookEvent] | None = Field(None, min_length=1)
    is_active: bool | None = None


class SendTestEventRequest(BaseModel):
    event: WebhookEvent = WebhookEvent.PAYMENT_COMPLETED


class WebhookItem(BaseModel):
    id: str
    name: str
    url: str
    events: list[str]
    secret: str
    is_active: bool
    fail_count: int
    last_triggered_at: str | None
    created_at: str | None
    logs: list[dict] = Field(default_factory=list)

    @classmethod
    def from_domain(cls, w: Webhook, logs: list[dict] | None = None) -> "WebhookItem":
        return cls(
            id=w.id,
            name=w.name,
            url=w.url,
            events=w.events,
            secret=w.secret,
            is_active=w.is_active,
            fail_count=w.fail_count,
            last_triggered_at=w.last_triggered_at.isoformat() if w.last_triggered_at else None,
            created_at=w.created_at.isoformat() if w.created_at else None,
            logs=logs or [],
        )
