"""
Contribution Vault

Field-level encryption for contribution records collected by field agents.
Email, street address, city, postal code and login IP addresses are stored as
AES-256-GCM ciphertext and decrypted only in memory for display, search,
editing and export.

Quick Start
-----------
```python
import asyncio
from decimal import Decimal
from uuid import uuid4
from contribution_vault import (
    Caller,
    ContributionCodec,
    ContributionInput,
    ContributionRepository,
    DirectoryResolver,
    FieldCipher,
    InMemoryRecordStore,
    SecureKey,
    StaticKeyProvider,
)

async def main():
    store = InMemoryRecordStore()
    cipher = FieldCipher(StaticKeyProvider(SecureKey.generate()))
    repository = ContributionRepository(
        store, ContributionCodec(cipher), DirectoryResolver(store)
    )

    agent = Caller(user_id=uuid4())
    view = await repository.create(
        ContributionInput(
            amount=Decimal("20"),
            first_name="Anna",
            last_name="Muster",
            email="anna@example.org",
            address="Hauptstrasse 1",
            city="Bern",
            postal_code="3000",
        ),
        agent,
    )
    print(view.contribution.email)  # plaintext, the store only holds ciphertext

asyncio.run(main())
```

Key Features
------------
- **AES-256-GCM**: Fresh random nonce per field, authenticated
- **Record binding**: Record id and field name bound as associated data
- **Key ring**: Key id carried in every token; retired keys keep decrypting
- **Explicit failure policy**: Discard or raise on undecryptable rows
- **PostgreSQL Storage**: asyncpg-backed record store
"""

__version__ = "0.1.0"

# =============================================================================
# Crypto Exports
# =============================================================================

from .crypto import (
    AES_256_KEY_SIZE,
    NONCE_SIZE,
    TAG_SIZE,
    AesGcmCipher,
    EncryptedData,
    FieldCipher,
    SecureKey,
)

# =============================================================================
# Key Exports
# =============================================================================

from .keys import (
    KeyProvider,
    KeyRing,
    KeyVersion,
    StaticKeyProvider,
    UnconfiguredKeyProvider,
    generate_key_material,
    key_provider_from_settings,
)

# =============================================================================
# Error Exports
# =============================================================================

from .errors import (
    ConfigError,
    CryptoError,
    DecryptionError,
    DirectoryLookupGap,
    EncryptionError,
    ExportError,
    KeyUnavailableError,
    PersistenceError,
    RecordNotFoundError,
    ValidationError,
    VaultError,
)

# =============================================================================
# Model Exports
# =============================================================================

from .models import (
    Caller,
    Contribution,
    ContributionInput,
    ContributionView,
    DirectoryEntry,
    LoginAuditEntry,
    StoredContribution,
    StoredLoginAuditEntry,
)

# =============================================================================
# Repository Exports (Primary API)
# =============================================================================

from .config import Settings, load_settings
from .directory import DirectoryResolver
from .export import ContributionTotals, CsvReportRenderer, ExportGateway, ExportRow
from .filters import ContributionFilter, DateRange, PaymentStatus
from .record_codec import ContributionCodec, DecryptFailurePolicy, LoginAuditCodec, RowOutcome
from .repository import ContributionRepository, LoginAuditRepository
from .rotation import ReencryptResult, reencrypt_all
from .store import InMemoryRecordStore, RecordStore

# =============================================================================
# PostgreSQL Exports
# =============================================================================

from .postgres import SCHEMA_SQL, PostgresRecordStore, create_schema

# =============================================================================
# Public API
# =============================================================================

__all__ = [
    # Version
    "__version__",
    # Crypto
    "AES_256_KEY_SIZE",
    "NONCE_SIZE",
    "TAG_SIZE",
    "AesGcmCipher",
    "EncryptedData",
    "FieldCipher",
    "SecureKey",
    # Keys
    "KeyProvider",
    "KeyRing",
    "KeyVersion",
    "StaticKeyProvider",
    "UnconfiguredKeyProvider",
    "generate_key_material",
    "key_provider_from_settings",
    # Errors
    "VaultError",
    "ValidationError",
    "CryptoError",
    "EncryptionError",
    "DecryptionError",
    "KeyUnavailableError",
    "DirectoryLookupGap",
    "PersistenceError",
    "RecordNotFoundError",
    "ConfigError",
    "ExportError",
    # Models
    "Caller",
    "Contribution",
    "ContributionInput",
    "ContributionView",
    "DirectoryEntry",
    "LoginAuditEntry",
    "StoredContribution",
    "StoredLoginAuditEntry",
    # Configuration
    "Settings",
    "load_settings",
    # Repositories (Primary API)
    "ContributionCodec",
    "LoginAuditCodec",
    "DecryptFailurePolicy",
    "RowOutcome",
    "DirectoryResolver",
    "ContributionRepository",
    "LoginAuditRepository",
    "ContributionFilter",
    "DateRange",
    "PaymentStatus",
    "ExportGateway",
    "ExportRow",
    "ContributionTotals",
    "CsvReportRenderer",
    "ReencryptResult",
    "reencrypt_all",
    # Storage
    "RecordStore",
    "InMemoryRecordStore",
    "PostgresRecordStore",
    "SCHEMA_SQL",
    "create_schema",
]
