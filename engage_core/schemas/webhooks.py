"""
Webhook Receiver Schemas.
"""

from pydantic import BaseModel, Field


class WebhookAck(BaseModel):
    """Acknowledgement returned to the provider after a verified delivery."""

    status: str = Field(default="received")
    provider: str
    verified: bool = Field(..., description="False when the delivery was let through unverified")
