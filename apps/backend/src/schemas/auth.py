from pydantic import BaseModel, Field


class TokenData(BaseModel):
    sub: str | None = Field(
        default=None,
        description="Subject (owner identifier) of the token",
    )
    scopes: list[str] = Field(
        default_factory=list,
        description="Scopes/permissions associated with the token",
    )
