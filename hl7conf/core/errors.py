"""Domain-specific errors for hl7conf."""


class Hl7confError(Exception):
    """Base error for hl7conf."""


class ConfigurationError(Hl7confError):
    """Raised when the directory store rejects or fails an operation."""


class HL7ApplicationAlreadyExistsError(ConfigurationError):
    """Raised when an HL7 application name is already registered."""


class UnresolvedReferenceError(ConfigurationError):
    """Raised when a connection reference does not match a device connection."""


class DeviceNotFoundError(ConfigurationError):
    """Raised when no device entry exists for a name."""


class ApplicationNotFoundError(ConfigurationError):
    """Raised when no HL7 application entry exists for a name."""


class DirectoryError(Hl7confError):
    """Base directory adapter error."""


class NameAlreadyBoundError(DirectoryError):
    """Raised when creating an entry at a DN that already exists."""


class NameNotFoundError(DirectoryError):
    """Raised when an entry (or its parent) does not exist."""


class DirectoryProtocolError(DirectoryError):
    """Raised on malformed DNs, filters or modification requests."""


class ApplicationStateError(Hl7confError):
    """Raised when an HL7 application invariant would be violated."""


class ApplicationOwnershipError(ApplicationStateError):
    """Raised when an HL7 application is attached to a second owner."""


class DuplicateApplicationError(ApplicationStateError):
    """Raised when a device already holds an HL7 application of that name."""


class ExtensionLoadError(Hl7confError):
    """Raised when reading extension definition sources fails."""


class ExtensionValidationError(Hl7confError):
    """Raised when an extension definition does not conform to schema or semantics."""


class DeviceDescriptionError(Hl7confError):
    """Raised when a YAML device description is invalid."""


class SettingsError(Hl7confError):
    """Raised when the settings file cannot be read or validated."""
