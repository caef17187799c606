from pydantic import BaseModel, UUID4


# Bearer token claims
class TokenPayload(BaseModel):
    sub: UUID4
    exp: int
