"""Domain models."""
from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator


@dataclass(frozen=True)
class QueueMessage:
    """One delivery of a queue message (value object).

    receipt_handle is only valid for this delivery; message_id is for log correlation.
    """

    message_id: str
    body: str | bytes
    receipt_handle: str
    receive_count: int = 1


class Product(BaseModel):
    """Product record decoded from a message and echoed back by the downstream API."""

    model_config = ConfigDict(frozen=True, extra="ignore")

    id: int | None = None
    name: str
    description: str | None = None
    price: Decimal = Field(gt=0)
    quantity: int = Field(ge=0)

    @field_validator("name")
    @classmethod
    def _name_not_blank(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("name is required")
        return value

    def to_forward_payload(self) -> dict[str, Any]:
        """JSON body for the downstream create call. The id is assigned downstream, never sent.

        price stays a Decimal; the HTTP adapter writes its exact digits as a JSON number.
        """
        payload: dict[str, Any] = {
            "name": self.name,
            "price": self.price,
            "quantity": int(self.quantity),
        }
        if self.description is not None:
            payload["description"] = self.description
        return payload


class ProcessingOutcome(str, Enum):
    FORWARDED = "FORWARDED"
    DECODE_FAILED = "DECODE_FAILED"
    FORWARD_FAILED = "FORWARD_FAILED"
    DEAD_LETTERED = "DEAD_LETTERED"


@dataclass(frozen=True)
class ProcessingResult:
    """Outcome of processing one delivery.

    deleted is False after a successful forward whose acknowledgement failed; the message
    may then be redelivered and forwarded again.
    """

    message_id: str
    outcome: ProcessingOutcome
    product: Product | None = None
    error: Exception | None = None
    deleted: bool = False

    @property
    def succeeded(self) -> bool:
        return self.outcome == ProcessingOutcome.FORWARDED
