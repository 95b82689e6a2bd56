"""
Pydantic models for relayed email.

Models:
  Provider            - which delivery provider acted
  EmailStatus         - outcome recorded in the email log
  EmailSendRequest    - canonical message accepted by POST /relay/send
  SendEmailResponse   - body returned to the relay caller
  EmailLog            - email_logs row as shown in the admin dashboard
  EmailLogList        - paginated GET /api/logs response
"""

from datetime import datetime
from enum import Enum
from typing import List, Optional

from pydantic import Field

from app.models.base import CamelModel


class Provider(str, Enum):
    NOTIFICATIONAPI = "notificationapi"
    BREVO = "brevo"


class EmailStatus(str, Enum):
    SUCCESS = "success"     # delivered by the primary provider
    FALLBACK = "fallback"   # delivered by the secondary provider
    FAILED = "failed"       # both providers failed


class EmailSendRequest(CamelModel):
    """A single transactional email, after request validation."""

    to: str
    subject: str
    body: str
    html: Optional[str] = None
    from_: Optional[str] = Field(default=None, alias="from")
    sender_name: Optional[str] = None
    reply_to: Optional[str] = None


class SendEmailResponse(CamelModel):
    success: bool
    message: str
    provider: Optional[Provider] = None
    log_id: Optional[str] = None


class EmailLog(CamelModel):
    """
    One row per relay request.

    ``provider`` names the provider that delivered the message. When both
    providers failed it is pinned to the primary provider.
    """

    id: str
    timestamp: datetime
    recipient: str
    subject: str
    sender: str
    status: EmailStatus
    provider: Provider
    api_key_id: Optional[str] = None
    api_key_name: Optional[str] = None
    error_message: Optional[str] = None


class EmailLogList(CamelModel):
    success: bool = True
    logs: List[EmailLog]
    total: int
    limit: int
    offset: int
    warning: Optional[str] = None
