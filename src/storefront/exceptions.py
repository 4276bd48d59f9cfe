#   Copyright 2026 UCP Authors
#
#   Licensed under the Apache License, Version 2.0 (the "License");
#   you may not use this file except in compliance with the License.
#   You may obtain a copy of the License at
#
#       http://www.apache.org/licenses/LICENSE-2.0
#
#   Unless required by applicable law or agreed to in writing, software
#   distributed under the License is distributed on an "AS IS" BASIS,
#   WITHOUT WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied.
#   See the License for the specific language governing permissions and
#   limitations under the License.

"""Custom exceptions for the storefront fulfillment engine."""


class StorefrontError(Exception):
  """Base class for all storefront exceptions."""

  def __init__(
      self, message: str, code: str = "INTERNAL_ERROR", status_code: int = 500
  ):
    self.message = message
    self.code = code
    self.status_code = status_code
    super().__init__(self.message)


class ResourceNotFoundError(StorefrontError):
  """Raised when a requested resource is not found."""

  def __init__(self, message: str):
    super().__init__(message, code="RESOURCE_NOT_FOUND", status_code=404)


class InvalidRequestError(StorefrontError):
  """Raised when the request is invalid (e.g. missing fields)."""

  def __init__(self, message: str):
    super().__init__(message, code="INVALID_REQUEST", status_code=400)


class UnauthorizedError(StorefrontError):
  """Raised when a caller presents no usable credential."""

  def __init__(self, message: str = "Unauthorized"):
    super().__init__(message, code="UNAUTHORIZED", status_code=401)


class ForbiddenError(StorefrontError):
  """Raised when the caller is known but not allowed to act."""

  def __init__(self, message: str = "Forbidden"):
    super().__init__(message, code="FORBIDDEN", status_code=403)


class InsufficientStockError(StorefrontError):
  """Raised when there is not enough stock for a line item."""

  def __init__(
      self,
      message: str,
      product_id: str | None = None,
      status_code: int = 400,
  ):
    self.product_id = product_id
    super().__init__(message, code="OUT_OF_STOCK", status_code=status_code)


class InvalidTransitionError(StorefrontError):
  """Raised when an operator asks for a transition the lifecycle forbids."""

  def __init__(self, message: str):
    super().__init__(message, code="INVALID_TRANSITION", status_code=409)


class SignatureVerificationError(StorefrontError):
  """Raised when a webhook payload fails authenticity checks."""

  def __init__(self, message: str = "Invalid signature"):
    super().__init__(message, code="INVALID_SIGNATURE", status_code=400)


class PaymentGatewayError(StorefrontError):
  """Raised when the payment collaborator cannot create a session."""

  def __init__(self, message: str):
    super().__init__(message, code="PAYMENT_GATEWAY_ERROR", status_code=502)


class CarrierError(StorefrontError):
  """Raised by the carrier client when the aggregator call fails."""

  def __init__(self, message: str):
    super().__init__(message, code="CARRIER_ERROR", status_code=502)


class RateLimitedError(StorefrontError):
  """Raised when a client exceeds the request rate of a route bucket."""

  def __init__(self, retry_after: int):
    self.retry_after = retry_after
    super().__init__(
        "Too many requests. Please try again later.",
        code="RATE_LIMITED",
        status_code=429,
    )
