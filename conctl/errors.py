"""Error taxonomy for the conctl pipeline.

Every error is terminal for the current run. Errors carry the node, role
and fragment that were being processed so multi-node runs can be
attributed precisely.
"""
from typing import Optional


class ConctlError(Exception):
    """Base error for the patch generation and config assembly pipeline."""

    def __init__(
        self,
        message: str,
        *,
        node: Optional[str] = None,
        role: Optional[str] = None,
        fragment: Optional[str] = None,
    ):
        super().__init__(message)
        self.message = message
        self.node = node
        self.role = role
        self.fragment = fragment

    def attribution(self) -> str:
        parts = []
        if self.role:
            parts.append(f"role={self.role}")
        if self.node:
            parts.append(f"node={self.node}")
        if self.fragment:
            parts.append(f"fragment={self.fragment}")
        return ", ".join(parts)

    def __str__(self) -> str:
        where = self.attribution()
        return f"{self.message} [{where}]" if where else self.message


class InvalidConfig(ConctlError):
    """Raised when the cluster declaration or a committed fragment is invalid."""


class MissingRequiredField(InvalidConfig):
    """Raised when a required cluster declaration field is absent."""

    def __init__(self, field: str, message: Optional[str] = None, **kwargs):
        super().__init__(message or f"Missing required field: {field}", **kwargs)
        self.field = field


class MissingCredentials(ConctlError):
    """Raised when registry credentials are absent from the credential source."""


class ManifestRenderError(ConctlError):
    """Raised when the chart templating step fails."""


class PatchConflict(ConctlError):
    """Raised when two same-priority fragments set one leaf to different values."""

    def __init__(self, message: str, *, path: str, fragments=(), **kwargs):
        super().__init__(message, **kwargs)
        self.path = path
        self.fragments = tuple(fragments)


class CompilerError(ConctlError):
    """Raised when the machine config compiler rejects a merged document."""
