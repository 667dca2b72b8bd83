"""
Configuration Management Module

Provides centralized configuration using pydantic-settings for environment-based configuration.
"""

from pydantic_settings import BaseSettings
from typing import Optional

from .events import EventDispatcher
from .ledger import TokenLedger, TokenMetadata, ZERO_ADDRESS
from .errors import InvalidAccount


class TokenLedgerConfig(BaseSettings):
    """Token ledger configuration"""

    # Token metadata
    token_name: str = "Token"
    token_symbol: str = "TKN"
    token_decimals: int = 18

    # Construction-time supply
    initial_supply: int = 1_000_000 * 10**18
    initial_holder: Optional[str] = None  # TOKEN_LEDGER_INITIAL_HOLDER env var
    null_account: str = ZERO_ADDRESS

    # Logging configuration
    log_level: str = "INFO"
    log_format: str = "json"  # json or text

    # API configuration
    api_host: str = "0.0.0.0"
    api_port: int = 8090
    api_event_history: bool = True  # Record events for GET /events
    api_event_history_size: Optional[int] = 10_000  # Newest events kept, None for all

    class Config:
        env_prefix = "TOKEN_LEDGER_"
        env_file = ".env"
        case_sensitive = False

    def token_metadata(self) -> TokenMetadata:
        return TokenMetadata(
            name=self.token_name,
            symbol=self.token_symbol,
            decimals=self.token_decimals
        )


# Global configuration instance
config = TokenLedgerConfig()


def get_config() -> TokenLedgerConfig:
    """Get global configuration instance"""
    return config


def reload_config() -> TokenLedgerConfig:
    """Reload configuration from environment"""
    global config
    config = TokenLedgerConfig()
    return config


def create_ledger(
    settings: Optional[TokenLedgerConfig] = None,
    dispatcher: Optional[EventDispatcher] = None
) -> TokenLedger:
    """
    Build a ledger from configuration, minting the initial supply

    Args:
        settings: Configuration to use, the global instance if omitted
        dispatcher: Event sink for the new ledger

    Returns:
        Newly created TokenLedger

    Raises:
        InvalidAccount: If no initial holder is configured
    """
    settings = settings or get_config()
    if not settings.initial_holder:
        raise InvalidAccount(settings.initial_holder)

    return TokenLedger(
        metadata=settings.token_metadata(),
        initial_holder=settings.initial_holder,
        initial_supply=settings.initial_supply,
        dispatcher=dispatcher,
        null_account=settings.null_account
    )
