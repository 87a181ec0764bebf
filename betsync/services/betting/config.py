from pydantic import BaseModel


class BettingAPIConfig(BaseModel):
    """Configuration for the betting server REST client."""

    base_url: str = "http://localhost:3001"
    api_prefix: str = "/api/v1"
    timeout_seconds: float = 30.0
    max_connections: int = 20
    max_keepalive_connections: int = 10
    max_retries: int = 3

    @property
    def api_url(self) -> str:
        """Return base URL joined with the versioned API prefix."""
        return self.base_url.rstrip("/") + self.api_prefix
