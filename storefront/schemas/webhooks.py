from __future__ import annotations

from typing import Optional

from pydantic import BaseModel


class WebhookAck(BaseModel):
    success: bool = True
    event: str = ""
    handled: bool = False
    outcome: Optional[str] = None
