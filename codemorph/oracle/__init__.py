"""Translation oracle contract and adapters."""

from .base import TranslationOracle
from .client import OracleClient, OracleRequest

__all__ = ["OracleClient", "OracleRequest", "TranslationOracle"]
