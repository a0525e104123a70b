"""
Centralized settings and path configuration for order pricing.
"""
import os
from pathlib import Path
from dataclasses import dataclass
from typing import Optional


def get_project_root() -> Path:
    """Get the project root directory (where pyproject.toml lives)."""
    env_root = os.environ.get('ORDER_PRICING_ROOT')
    if env_root:
        return Path(env_root).resolve()

    # Walk up from this file to find the project root
    current = Path(__file__).resolve()
    for parent in current.parents:
        if (parent / 'pyproject.toml').exists():
            return parent
    # Fallback to 4 levels up from this file
    return Path(__file__).resolve().parent.parent.parent.parent


def _parse_locales(value: str) -> tuple:
    return tuple(loc.strip() for loc in value.split(',') if loc.strip())


@dataclass(frozen=True)
class Settings:
    """Application settings with sensible defaults."""

    # Project paths
    project_root: Path

    # Rule files
    rules_csv: Path
    compiled_rules: Path

    # Currency handling
    currency_code: str = 'EUR'
    minor_units: int = 2

    # Ordered fallback chain for multilingual text
    fallback_locales: tuple = ('en',)

    @classmethod
    def load(cls, project_root: Optional[Path] = None) -> 'Settings':
        """Load settings from the project structure and environment."""
        root = project_root or get_project_root()
        rules_dir = root / 'src' / 'order_pricing' / 'rules'

        locales = _parse_locales(os.environ.get('ORDER_PRICING_LOCALES', ''))

        return cls(
            project_root=root,
            rules_csv=rules_dir / 'discounts.csv',
            compiled_rules=rules_dir / 'compiled_discounts.json',
            currency_code=os.environ.get('ORDER_PRICING_CURRENCY', 'EUR'),
            minor_units=int(os.environ.get('ORDER_PRICING_MINOR_UNITS', '2')),
            fallback_locales=locales or ('en',),
        )


# Default settings instance
_settings: Optional[Settings] = None


def get_settings() -> Settings:
    """Get the global settings instance."""
    global _settings
    if _settings is None:
        _settings = Settings.load()
    return _settings
