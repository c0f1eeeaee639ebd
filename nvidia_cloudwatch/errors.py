"""Exception hierarchy for the exporter.

Every fatal condition is raised as a subclass of ExporterError and propagated
up to the entry point, which logs it and terminates the process.
"""


class ExporterError(Exception):
    """Base class for all exporter errors"""


class ProviderError(ExporterError):
    """Device enumeration or query failed"""


class ConfigError(ExporterError):
    """Illegal configuration value"""


class ValidationError(ExporterError):
    """A record failed self-consistency checks before transmission"""


class TransportError(ExporterError):
    """The remote backend rejected or failed to deliver a batch"""
