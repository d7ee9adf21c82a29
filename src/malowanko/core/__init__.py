"""Core components of the Malowanko coloring page generator.

This package holds everything that does not talk to the model provider:

- **MalowankoConfig**: Configuration management using Pydantic Settings
- **config**: Global configuration instance (loads from environment variables)
- **Database**: SQLite store for colorings, favorites, library, and quotas
- **QuotaLedger**: Atomic daily generation counter
- **FavoritesLedger**: Global favorites and personal library mutations
- **SessionStore**: Bearer-token sessions resolving to the current user

Architecture Overview
---------------------
1. **Configuration Layer** (config.py):
   - Environment-based configuration using Pydantic Settings
   - All settings prefixed with MALOWANKO_ in .env files

2. **Storage Layer** (database.py, quota.py, favorites_db.py, identity.py):
   - One short-lived SQLite connection per unit of work
   - Conditional single-statement updates where concurrency matters

3. **Contracts** (models.py, results.py, errors.py):
   - Pydantic input and output models
   - The ``{success, data | error}`` action envelope and error taxonomy

4. **Support Utilities**:
   - prompt_builder.py: Image prompt compilation
   - image_cache.py: Bounded cache of image data URLs
"""

from malowanko.core.config import MalowankoConfig, config
from malowanko.core.database import Database
from malowanko.core.favorites_db import FavoritesLedger
from malowanko.core.identity import SessionStore
from malowanko.core.quota import QuotaLedger

__all__ = [
    "Database",
    "FavoritesLedger",
    "MalowankoConfig",
    "QuotaLedger",
    "SessionStore",
    "config",
]
