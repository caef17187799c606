from typing import Optional, List, Generic, TypeVar
from pydantic import BaseModel

T = TypeVar("T")


# Paginated response wrapper: used by all list endpoints
class PaginatedResponse(BaseModel, Generic[T]):
    data: List[T]
    total: int
    page: int
    limit: int
    total_pages: int


# Error responses
class ErrorResponse(BaseModel):
    error: str
    message: str


# 409 body for a booking the availability check turned down
class BookingRejectedError(ErrorResponse):
    reason: str


# 503 body when the store timed out
class RetryableError(ErrorResponse):
    retry_after: Optional[int] = None
