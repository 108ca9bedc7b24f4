class UpdaterError(Exception):
    """Base class for update engine failures."""


class StructuralError(UpdaterError):
    """Missing target root or archive; raised before anything is touched."""


class ExtractionError(UpdaterError):
    """Archive could not be extracted into the workspace."""


class AuthenticationError(ExtractionError):
    """Archive passphrase was rejected by the extractor."""


class PatchToolError(UpdaterError):
    """Every configured patch tool failed for one file."""


class PatchApplicationError(UpdaterError):
    """Patch produced no usable output or failed under the abort policy."""


class RestoreError(UpdaterError):
    """A target could not be restored from its backup."""


class CleanupError(UpdaterError):
    """Post-run cleanup failure. Logged, never fatal."""
