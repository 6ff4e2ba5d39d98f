"""API request/response schemas for relay endpoints."""

from typing import Any, Literal

from pydantic import BaseModel, Field


class CheckoutSessionRequest(BaseModel):
    """Payload accepted by `POST /create-checkout-session`."""

    client_id: str | None = None
    line_items: list[dict[str, Any]] = Field(min_length=1)
    customer_email: str | None = None
    mode: str | None = None
    domain: str = Field(min_length=1)


class CheckoutSessionResponse(BaseModel):
    clientSecret: str | None
    sessionId: str


class PaymentError(BaseModel):
    """Last payment error of the session's payment intent, passed through verbatim."""

    code: str | None = None
    decline_code: str | None = None
    message: str | None = None
    type: str | None = None


class SessionStatusResponse(BaseModel):
    status: str | None
    payment_status: str | None
    customer_email: str | None = None
    error: PaymentError | None = None


class AuthorizeRequest(BaseModel):
    """Key pair supplied by the widget when linking a tenant manually."""

    secretKey: str = ""
    publicKey: str = ""


class UnauthorizeRequest(BaseModel):
    clientId: str = ""


class AuthorizeResponse(BaseModel):
    type: Literal["success"] = "success"
    id: str


class SuccessResponse(BaseModel):
    type: Literal["success"] = "success"


class FailResponse(BaseModel):
    type: Literal["fail"] = "fail"
    reason: str


class ErrorResponse(BaseModel):
    error: str


class ReturnResponse(BaseModel):
    type: Literal["PAYMENT_COMPLETE"] = "PAYMENT_COMPLETE"
    sessionId: str | None


class LinkedAccount(BaseModel):
    """Tenant created from a Connect OAuth link, as posted back to the widget."""

    id: str
    pk: str | None = None
    accountName: str | None = None
