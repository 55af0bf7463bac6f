"""Configuration module for loading and managing application settings"""
from functools import lru_cache
from typing import Dict, Any

from pydantic import BaseModel, ConfigDict, Field

from .lib.load_settings_conf import load_settings_conf, validate_settings, SettingsError, DEFAULTS

__all__ = [
    'get_settings',
    'get_settlement_config',
    'SettlementConfig',
    'SettingsError',
    'load_settings_conf',
    'validate_settings',
    'DEFAULTS',
]

class SettlementConfig(BaseModel):
    """Settlement parameters injected into the orchestrator and synchronizer.

    Built once from the loaded settings so that business logic never reads
    the process environment and tests can pass synthetic values.
    """
    model_config = ConfigDict(frozen=True)

    platform_fee_percent: int = Field(default=0, ge=0, le=100)
    currency: str = 'jpy'
    min_price: int = Field(default=1, ge=1)
    download_token_ttl_minutes: int = Field(default=120, ge=1)
    signed_url_ttl_seconds: int = Field(default=60, ge=1)
    pending_transfer_horizon_days: int = Field(default=180, ge=1)
    processed_event_retention_days: int = Field(default=30, ge=1)
    use_connect: bool = False
    connect_country: str = 'JP'
    base_url: str = 'http://localhost:8000'

    @classmethod
    def from_settings(cls, settings: Dict[str, Any]) -> 'SettlementConfig':
        """Build the config from a validated settings dictionary."""
        return cls(
            platform_fee_percent=settings['platform_fee_percent'],
            currency=settings['currency'],
            min_price=settings['min_price'],
            download_token_ttl_minutes=settings['download_token_ttl_min'],
            signed_url_ttl_seconds=settings['signed_url_ttl_sec'],
            pending_transfer_horizon_days=settings['pending_transfer_horizon_days'],
            processed_event_retention_days=settings['processed_event_retention_days'],
            use_connect=settings['use_stripe_connect'],
            connect_country=settings['connect_country'],
            base_url=settings['base_url'],
        )

@lru_cache()
def get_settings() -> Dict[str, Any]:
    """Load settings from ./settings.conf and the environment (cached)."""
    return load_settings_conf()

def get_settlement_config() -> SettlementConfig:
    """Get the settlement config derived from the loaded settings."""
    return SettlementConfig.from_settings(get_settings())
