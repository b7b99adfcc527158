import os

from dotenv import load_dotenv
from pydantic import BaseModel, Field

load_dotenv()


class Settings(BaseModel):
    # Snipcart API credentials
    api_key_secret: str = Field(default="", alias="SNIPCART_API_KEY_SECRET")
    api_key_secret_test: str = Field(default="", alias="SNIPCART_API_KEY_SECRET_TEST")
    # 1 = LIVE, 0 = TEST
    snipcart_environment: int = Field(default=0, alias="SNIPCART_ENVIRONMENT")
    api_endpoint: str = Field(
        default="https://app.snipcart.com/api/", alias="SNIPCART_API_ENDPOINT"
    )

    # Cache Configuration
    cache_max_size: int = Field(default=500, alias="SNIPWIRE_CACHE_MAX_SIZE")

    # HTTP Configuration
    http_timeout: float = Field(default=30.0, alias="SNIPWIRE_HTTP_TIMEOUT")
    max_connections: int = Field(default=10, alias="SNIPWIRE_MAX_CONNECTIONS")
    concurrent_requests: bool = Field(
        default=True, alias="SNIPWIRE_CONCURRENT_REQUESTS"
    )

    debug: bool = Field(default=False, alias="SNIPWIRE_DEBUG")

    @property
    def is_live(self) -> bool:
        return self.snipcart_environment == 1

    @property
    def active_api_key(self) -> str:
        """Secret key for the selected Snipcart environment."""
        return self.api_key_secret if self.is_live else self.api_key_secret_test

    @classmethod
    def from_env(cls) -> "Settings":
        return cls.model_validate(dict(os.environ))


global_settings = Settings.from_env()
