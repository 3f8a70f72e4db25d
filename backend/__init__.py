"""
backend - Hosted Backend Access

HTTP client for the auth service, OTP edge functions and REST tables,
with per-request credential selection and a two-outcome result type.
Part of Roominate - Boarding-House Marketplace Client.
"""

from backend.client import BackendClient
from backend.request_builder import AuthenticatedRequestBuilder
from backend.schemas import ApiResult

__all__ = ["ApiResult", "AuthenticatedRequestBuilder", "BackendClient"]
