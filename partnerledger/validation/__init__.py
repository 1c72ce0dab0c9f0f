"""Import validation package."""

from partnerledger.validation.validator import LedgerImportValidator, ParsedImport

__all__ = ["LedgerImportValidator", "ParsedImport"]
