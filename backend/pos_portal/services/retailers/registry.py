"""
Retailer registry.

Resolves a retailer key to its public display name and to the private identifiers
(mall, brand, unit) and credential references the push API needs. The registry is
built once at startup from the RETAILERS_CONFIG JSON array and never mutated.

A missing or malformed config does not stop the process from starting: the load
error is kept and raised as ConfigurationError on every call, so operators can tell
misconfiguration apart from a bad user-supplied key (RetailerNotFoundError).
"""
import json
import logging
import os
from dataclasses import dataclass
from typing import Dict, List, Mapping, Optional, Tuple

from ...errors import ConfigurationError, RetailerNotFoundError

logger = logging.getLogger(__name__)

# JSON keys every retailer entry must carry
REQUIRED_KEYS = ("key", "name", "mall", "brand", "unit", "envUserVar", "envPassVar")


@dataclass(frozen=True)
class RetailerConfig:
    """Static configuration for one retailer."""
    key: str
    display_name: str
    mall: str
    brand: str
    unit: str
    credential_ref: Tuple[str, str]  # (username env var, password env var)

    @property
    def collection_name(self) -> str:
        """Datastore collection holding this retailer's accepted receipts."""
        return f"receipts{self.key}"

    @classmethod
    def from_dict(cls, entry: Dict, index: int) -> "RetailerConfig":
        """Build a RetailerConfig from one RETAILERS_CONFIG entry."""
        if not isinstance(entry, dict):
            raise ConfigurationError(f"Invalid config structure at index {index}: expected an object.")
        missing = [k for k in REQUIRED_KEYS if not entry.get(k)]
        if missing:
            raise ConfigurationError(
                f"Invalid config structure at index {index}: missing {', '.join(missing)}."
            )
        return cls(
            key=str(entry["key"]),
            display_name=str(entry["name"]),
            mall=str(entry["mall"]),
            brand=str(entry["brand"]),
            unit=str(entry["unit"]),
            credential_ref=(str(entry["envUserVar"]), str(entry["envPassVar"])),
        )


class RetailerRegistry:
    """Immutable lookup over the configured retailers."""

    def __init__(
        self,
        retailers: Optional[List[RetailerConfig]] = None,
        load_error: Optional[str] = None
    ):
        self._retailers: Tuple[RetailerConfig, ...] = tuple(retailers or ())
        self._by_key: Dict[str, RetailerConfig] = {r.key: r for r in self._retailers}
        self._load_error = load_error

    @classmethod
    def from_json(cls, raw: Optional[str]) -> "RetailerRegistry":
        """
        Parse RETAILERS_CONFIG.

        Never raises: a bad config yields a registry whose every call raises
        ConfigurationError.

        Args:
            raw: JSON array string (may be None or empty)

        Returns:
            RetailerRegistry
        """
        if not raw or not raw.strip():
            error = "RETAILERS_CONFIG environment variable is missing or empty."
            logger.error(f"[Registry] {error}")
            return cls(load_error=error)

        try:
            entries = json.loads(raw)
            if not isinstance(entries, list):
                raise ConfigurationError("RETAILERS_CONFIG is not a valid JSON array.")

            retailers = [RetailerConfig.from_dict(entry, i) for i, entry in enumerate(entries)]

            seen = set()
            for retailer in retailers:
                if retailer.key in seen:
                    raise ConfigurationError(f"Duplicate retailer key in RETAILERS_CONFIG: {retailer.key}")
                seen.add(retailer.key)
        except (json.JSONDecodeError, ConfigurationError) as e:
            error = f"Failed to parse RETAILERS_CONFIG JSON. {e}"
            logger.error(f"[Registry] {error}")
            return cls(load_error=error)

        logger.info(f"[Registry] Loaded {len(retailers)} retailer configs")
        return cls(retailers=retailers)

    def _ensure_loaded(self) -> None:
        if self._load_error is not None:
            raise ConfigurationError(self._load_error)

    def resolve(self, key: str) -> RetailerConfig:
        """
        Look up a retailer by key.

        Raises:
            ConfigurationError: registry config was absent or malformed
            RetailerNotFoundError: key is not configured
        """
        self._ensure_loaded()
        retailer = self._by_key.get(key)
        if retailer is None:
            raise RetailerNotFoundError(key)
        return retailer

    def list_public(self) -> List[Dict[str, str]]:
        """Public {key, name} pairs in configuration order. Never includes credentials."""
        self._ensure_loaded()
        return [{"key": r.key, "name": r.display_name} for r in self._retailers]


def resolve_credentials(
    retailer: RetailerConfig,
    environ: Optional[Mapping[str, str]] = None
) -> Tuple[str, str]:
    """
    Look up the push API username/password named by the retailer's credential_ref.

    Raises:
        ConfigurationError: either secret is unset or empty
    """
    env = os.environ if environ is None else environ
    values = []
    for var_name in retailer.credential_ref:
        value = env.get(var_name)
        if not value:
            raise ConfigurationError(f"Missing required environment variable: {var_name}")
        values.append(value)
    return values[0], values[1]
