"""Async HTTP helpers shared by the payment client."""

from .client import HttpClient, HttpError, make_payment_api_http

__all__ = [
    "HttpClient",
    "HttpError",
    "make_payment_api_http",
]
