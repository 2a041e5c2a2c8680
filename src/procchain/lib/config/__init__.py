"""Configuration loading helpers."""

from procchain.lib.config.settings import ProcchainConfig, load_config

__all__ = ["ProcchainConfig", "load_config"]
