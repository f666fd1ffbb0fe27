"""
Centralized settings and path configuration for package pricing.
"""
import os
from pathlib import Path
from dataclasses import dataclass
from typing import Optional


DATA_DIR_ENV = 'PACKAGE_PRICING_DATA_DIR'


def get_project_root() -> Path:
    """Get the project root directory (where pyproject.toml lives)."""
    current = Path(__file__).resolve()
    for parent in current.parents:
        if (parent / 'pyproject.toml').exists():
            return parent
    # Fallback to 3 levels up from this file
    return Path(__file__).resolve().parent.parent.parent.parent


@dataclass
class Settings:
    """Application settings with sensible defaults."""

    # Project paths
    project_root: Path

    # Package pricing sheets (one workbook or CSV directory per package)
    pricing_dir: Path

    # Settlement currency, passed through unchanged
    currency: str = 'USD'

    # API server
    api_host: str = '0.0.0.0'
    api_port: int = 8000

    @classmethod
    def load(cls, project_root: Optional[Path] = None) -> 'Settings':
        """Load settings from the project structure and environment."""
        root = project_root or get_project_root()

        pricing_dir = os.environ.get(DATA_DIR_ENV)
        return cls(
            project_root=root,
            pricing_dir=Path(pricing_dir) if pricing_dir else root / 'data' / 'packages',
            currency=os.environ.get('PACKAGE_PRICING_CURRENCY', 'USD'),
        )


# Default settings instance
_settings: Optional[Settings] = None


def get_settings() -> Settings:
    """Get the global settings instance."""
    global _settings
    if _settings is None:
        _settings = Settings.load()
    return _settings
