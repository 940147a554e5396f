class DamError(RuntimeError):
    """Base error type."""


class ConfigError(DamError):
    """Config contract violation."""


class BrandNotFoundError(DamError):
    """Brand could not be resolved to a configured working directory."""

    def __init__(self, brand: str, available: str = "", suggestions=None):
        message = f"Brand directory not found: {brand}"
        if suggestions:
            message += f"\n\nDid you mean: {', '.join(suggestions)}?"
        if available:
            message += f"\n\nAvailable brands:\n{available}"
        super().__init__(message)
        self.brand = brand


class ProjectNotFoundError(DamError):
    """Project missing from a brand."""


class TierUnavailableError(DamError):
    """Destination tier (SSD backup) not mounted or unreachable."""


class ManifestError(DamError):
    """Manifest read/write problem."""


class S3OperationError(DamError):
    """Object store operation problem."""
