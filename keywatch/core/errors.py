"""Domain-specific errors for keywatch."""


class KeywatchError(Exception):
    """Base error for keywatch."""


class HookAbort(KeywatchError):
    """Raised by a hook to stop its chain without reporting an error."""


class HookError(KeywatchError):
    """Raised when a hook fails with an exception that is not a keywatch error."""

    def __init__(self, hook_name: str, message: str) -> None:
        super().__init__(message)
        self.hook_name = hook_name


class DescriptorError(KeywatchError):
    """Raised when a raw enumeration result carries no usable identity."""


class DeviceInitializationError(KeywatchError):
    """Raised when low-level device initialization fails."""


class ConfigLoadError(KeywatchError):
    """Raised when the configuration file cannot be read."""


class ConfigValidationError(KeywatchError):
    """Raised when the configuration does not conform to schema or semantics."""


class TransportLoadError(KeywatchError):
    """Raised when a transport factory cannot be imported or built."""


class TransportError(KeywatchError):
    """Base transport error."""


class TransportEnumerateError(TransportError):
    """Raised when listing connected devices fails."""


class TransportAcquireError(TransportError):
    """Raised when a session cannot be acquired for a device."""
