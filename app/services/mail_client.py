"""Mailbox access through Microsoft Graph."""

import base64
import re
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional, Protocol

import httpx

from app.core.base_api_client import BaseAPIClient
from app.core.config import GraphSettings, settings
from app.core.exceptions import ConfigurationError, MailClientError
from app.utils.logging import get_logger

LOGGER = get_logger(__name__)

_MESSAGE_FIELDS = "id,subject,from,receivedDateTime,bodyPreview,hasAttachments,isRead"


@dataclass(frozen=True)
class MailMessage:
    id: str
    subject: str = ""
    sender_address: Optional[str] = None
    sender_name: Optional[str] = None
    received_at: Optional[datetime] = None
    has_attachments: bool = False
    is_read: bool = False
    body_preview: Optional[str] = None


@dataclass(frozen=True)
class MailAttachment:
    name: str
    content: bytes
    content_type: str = "application/pdf"
    size: Optional[int] = None

    @property
    def is_pdf(self) -> bool:
        return self.name.lower().endswith(".pdf")


@dataclass(frozen=True)
class SubscriptionInfo:
    action: str  # created | renewed
    subscription_id: str
    expires_at: datetime


class MailClient(Protocol):
    """What ingestion needs from a mailbox."""

    async def get_message(self, message_id: str) -> MailMessage: ...

    async def list_messages(self, since: datetime, top: int) -> List[MailMessage]: ...

    async def get_attachments(self, message_id: str) -> List[MailAttachment]: ...

    async def mark_read(self, message_id: str) -> None: ...

    async def ensure_subscription(
        self, notification_url: str, client_state: str, ttl_days: int
    ) -> SubscriptionInfo: ...


def _parse_datetime(value: Optional[str]) -> Optional[datetime]:
    if not value:
        return None
    # Graph emits up to seven fractional digits; datetime keeps six
    value = re.sub(r"(\.\d{6})\d+", r"\1", value.replace("Z", "+00:00"))
    parsed = datetime.fromisoformat(value)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def parse_message(payload: Dict[str, Any]) -> MailMessage:
    """Build a MailMessage from a Graph message resource."""
    sender = (payload.get("from") or {}).get("emailAddress") or {}
    return MailMessage(
        id=payload["id"],
        subject=payload.get("subject") or "",
        sender_address=sender.get("address"),
        sender_name=sender.get("name"),
        received_at=_parse_datetime(payload.get("receivedDateTime")),
        has_attachments=bool(payload.get("hasAttachments")),
        is_read=bool(payload.get("isRead")),
        body_preview=payload.get("bodyPreview"),
    )


class GraphMailClient(BaseAPIClient):
    """Microsoft Graph client for one monitored mailbox.

    Authenticates with the client-credentials flow and caches the access
    token until shortly before it expires.
    """

    error_class = MailClientError

    def __init__(
        self,
        config: Optional[GraphSettings] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.config = config or settings.graph
        super().__init__(
            base_url=self.config.base_url,
            timeout=settings.http_timeout,
            max_retries=settings.max_retries,
            retry_delay=settings.retry_delay,
            transport=transport,
        )
        self._token: Optional[str] = None
        self._token_expires_at: Optional[datetime] = None

    @property
    def mailbox_path(self) -> str:
        if not self.config.monitored_mailbox:
            raise ConfigurationError("MONITORED_MAILBOX is not configured")
        return f"/users/{self.config.monitored_mailbox}"

    async def auth_headers(self) -> Dict[str, str]:
        return {"Authorization": f"Bearer {await self._get_token()}"}

    async def _get_token(self) -> str:
        now = datetime.now(timezone.utc)
        if self._token and self._token_expires_at and now < self._token_expires_at:
            return self._token

        if not (self.config.tenant_id and self.config.client_id and self.config.client_secret):
            raise ConfigurationError("Azure client credentials are not configured")

        token_url = f"{self.config.authority_url}/{self.config.tenant_id}/oauth2/v2.0/token"
        try:
            async with self._client() as client:
                response = await client.post(
                    token_url,
                    data={
                        "grant_type": "client_credentials",
                        "client_id": self.config.client_id,
                        "client_secret": self.config.client_secret,
                        "scope": "https://graph.microsoft.com/.default",
                    },
                )
                response.raise_for_status()
        except httpx.HTTPError as e:
            LOGGER.error(f"Failed to acquire Graph access token: {str(e)}", exc_info=True)
            raise MailClientError(f"Token request failed: {str(e)}", original_error=e) from e

        body = response.json()
        self._token = body["access_token"]
        # Refresh a minute early
        self._token_expires_at = now + timedelta(seconds=int(body.get("expires_in", 3600)) - 60)
        return self._token

    async def get_message(self, message_id: str) -> MailMessage:
        payload = await self.call_api(
            f"{self.mailbox_path}/messages/{message_id}",
            params={"$select": _MESSAGE_FIELDS},
        )
        return parse_message(payload)

    async def list_messages(self, since: datetime, top: int = 100) -> List[MailMessage]:
        """Newest inbox messages received at or after ``since``.

        Sender and read-state filtering is left to the caller; Graph rejects
        many filter/orderby combinations on the inbox.
        """
        payload = await self.call_api(
            f"{self.mailbox_path}/mailFolders/inbox/messages",
            params={
                "$select": _MESSAGE_FIELDS,
                "$orderby": "receivedDateTime desc",
                "$top": str(top),
            },
        )
        messages = [parse_message(item) for item in payload.get("value", [])]
        return [m for m in messages if m.received_at is None or m.received_at >= since]

    async def get_attachments(self, message_id: str) -> List[MailAttachment]:
        payload = await self.call_api(f"{self.mailbox_path}/messages/{message_id}/attachments")
        attachments = []
        for item in payload.get("value", []):
            if item.get("@odata.type") not in (None, "#microsoft.graph.fileAttachment"):
                continue
            if not item.get("contentBytes"):
                continue
            attachments.append(
                MailAttachment(
                    name=item.get("name") or "attachment",
                    content=base64.b64decode(item["contentBytes"]),
                    content_type=item.get("contentType") or "application/octet-stream",
                    size=item.get("size"),
                )
            )
        return attachments

    async def mark_read(self, message_id: str) -> None:
        await self.call_api(
            f"{self.mailbox_path}/messages/{message_id}",
            method="PATCH",
            json={"isRead": True},
        )

    async def ensure_subscription(
        self,
        notification_url: str,
        client_state: str,
        ttl_days: int = 3,
    ) -> SubscriptionInfo:
        """Renew the inbox subscription, or create one if none exists.

        Args:
            notification_url: Public webhook URL Graph should call
            client_state: Secret echoed back on every notification
            ttl_days: Subscription lifetime

        Returns:
            SubscriptionInfo describing what was done
        """
        resource = f"{self.mailbox_path}/mailFolders/inbox/messages"
        expires_at = datetime.now(timezone.utc) + timedelta(days=ttl_days)
        expiration = expires_at.strftime("%Y-%m-%dT%H:%M:%S.0000000Z")

        existing = await self.call_api("/subscriptions")
        for subscription in existing.get("value", []):
            if subscription.get("resource", "").lstrip("/") == resource.lstrip("/"):
                await self.call_api(
                    f"/subscriptions/{subscription['id']}",
                    method="PATCH",
                    json={"expirationDateTime": expiration},
                )
                LOGGER.info("Renewed mail subscription", extra={"subscription_id": subscription["id"]})
                return SubscriptionInfo("renewed", subscription["id"], expires_at)

        created = await self.call_api(
            "/subscriptions",
            method="POST",
            json={
                "changeType": "created",
                "notificationUrl": notification_url,
                "resource": resource,
                "expirationDateTime": expiration,
                "clientState": client_state,
            },
        )
        LOGGER.info("Created mail subscription", extra={"subscription_id": created.get("id")})
        return SubscriptionInfo(
            "created",
            created["id"],
            _parse_datetime(created.get("expirationDateTime")) or expires_at,
        )
