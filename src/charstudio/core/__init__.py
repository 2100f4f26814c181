"""Core functionality for the Character Studio backend.

Architecture Overview
---------------------
1. **Configuration Layer** (config.py):
   - Environment-based configuration using Pydantic Settings
   - All settings prefixed with CHARSTUDIO_ in .env files

2. **Adapter Layer**:
   - identity.py: bearer credential verification (Firebase Auth or static tokens)
   - blob_store.py: image blobs (Firebase Storage or a local directory)
   - profile_store.py: profile documents (Firestore or a JSON file)
   - vision.py / synthesis.py: Gemini clients

3. **Handler Layer** (library.py):
   - The four library operations, input validation and error mapping

4. **Support Modules**:
   - errors.py: client-facing error taxonomy and adapter errors
   - models.py: domain models
   - prompts.py: instructions sent to the models
   - backends.py: one-time construction of the external clients
"""

from charstudio.core.config import CharStudioConfig, config

__all__ = [
    "CharStudioConfig",
    "config",
]
