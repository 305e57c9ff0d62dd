from typing import Optional

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Settings configuration class for the multichain client manager."""

    app_name: str = "multichain"

    # Chain Configuration
    default_chain_id: str = "0x1"

    # RPC Configuration
    rpc_timeout: float = 10.0  # Seconds, per JSON-RPC round trip
    max_rpc_retries: int = 3
    rpc_backoff_factor: float = 0.5
    rpc_rate_limit: int = 100  # Max concurrent RPC calls per endpoint
    rpc_user_agent: Optional[str] = None

    # Health Configuration
    health_check_timeout: float = 5.0
    health_cache_ttl_ms: int = 300_000
    endpoint_failover: bool = True

    # Transaction Configuration
    receipt_poll_interval: float = 1.0  # Seconds between receipt lookups
    receipt_poll_attempts: int = 60

    @property
    def user_agent(self) -> str:
        """
        Assemble the User-Agent header sent with RPC requests.

        :return: user agent string.
        """
        return self.rpc_user_agent or self.app_name

    model_config = SettingsConfigDict(
        env_file=".env",
        env_prefix="MULTICHAIN_",
        env_file_encoding="utf-8",
    )


settings = Settings()
