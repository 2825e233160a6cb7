"""Exception taxonomy for the decrypt pipeline.

Every error carries the exit code the CLI reports for it. Messages are
complete on their own (offending path, key, or cause included) so the
CLI can print them without further wrapping.
"""

from __future__ import annotations

from sealctl.domain.codes import ExitCode


class SealError(Exception):
    """Base class for all sealctl errors."""

    exit_code: ExitCode = ExitCode.ERROR_GENERIC


class LayerError(SealError):
    """Raised when a layer chain cannot be resolved."""


class LoadError(SealError):
    """Raised when an encrypted file cannot be read or parsed."""

    exit_code = ExitCode.COULD_NOT_READ_INPUT_FILE


class MetadataNotFoundError(LoadError):
    """Raised when a document carries no encryption metadata."""


class ConfigError(SealError):
    """Raised for invalid configuration (unknown store format, bad keyring)."""

    exit_code = ExitCode.ERROR_READING_CONFIG


class DecryptionError(SealError):
    """Raised when a tree value cannot be decrypted."""

    exit_code = ExitCode.ERROR_DECRYPTING_TREE


class CipherError(DecryptionError):
    """Raised by the cipher for malformed envelopes or failed authentication."""


class MacMismatchError(DecryptionError):
    """Raised when the computed MAC differs from the stored one."""

    exit_code = ExitCode.MAC_MISMATCH


class MacNotFoundError(MacMismatchError):
    """Raised when MAC verification is requested but the document has none."""

    exit_code = ExitCode.MAC_NOT_FOUND


class DataKeyError(SealError):
    """Raised when no key service could recover the document data key."""

    exit_code = ExitCode.COULD_NOT_RETRIEVE_KEY


class KeyServiceError(DataKeyError):
    """Raised by a single key service for a single master key."""


class ExtractionError(SealError):
    """Raised when an extraction path is malformed or cannot be followed."""

    exit_code = ExitCode.INVALID_TREE_PATH_FORMAT


class TruncateError(ExtractionError):
    """Raised by ``TreeBranch.truncate`` for a missing or non-indexable component."""


class StoreError(Exception):
    """Raised by a store when it cannot serialize the given value."""


class DumpingError(SealError):
    """Raised when the output store fails to emit plaintext."""

    exit_code = ExitCode.ERROR_DUMPING_TREE
