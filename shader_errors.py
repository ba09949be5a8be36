"""Errors raised while resolving, scheduling or running shader build steps."""


class ShaderBuildError(Exception):
    def __init__(self, message, path=None):
        super().__init__(message)
        self.path = path


class ConfigurationError(ShaderBuildError):
    """Unknown suffix, missing manifest entry, missing input or a dependency cycle."""


class ToolInvocationError(ShaderBuildError):
    """External tool not found, or it exited non-zero."""

    def __init__(self, message, path=None, returncode=None, stderr=''):
        super().__init__(message, path)
        self.returncode = returncode
        self.stderr = stderr or ''


class OutputError(ShaderBuildError):
    """Could not create a directory or write an output file."""
