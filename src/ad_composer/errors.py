"""Exception taxonomy shared by the pipeline, the compositor and the API."""

from __future__ import annotations


class AdComposerError(Exception):
    """Base class for every error raised by ad_composer."""


# ---------------------------------------------------------------------------
# Provider errors: scoped to one scene / one stage
# ---------------------------------------------------------------------------


class ProviderError(AdComposerError):
    """A remote collaborator failed (network, non-success status, job error)."""


class MalformedPayloadError(ProviderError):
    """The provider answered but the expected payload was missing or undecodable."""


class JobTimeoutError(ProviderError):
    """A long-running job did not finish within the caller's deadline."""


# ---------------------------------------------------------------------------
# Precondition errors: rejected before any side effect
# ---------------------------------------------------------------------------


class PreconditionError(AdComposerError):
    """The operation was rejected because its inputs are not ready."""


class AssetsIncompleteError(PreconditionError):
    def __init__(self, missing: list[int], message: str = "assets incomplete") -> None:
        self.missing = missing
        scenes = ", ".join(str(i + 1) for i in missing)
        super().__init__(f"{message} (scenes: {scenes})" if missing else message)


class OperationInProgressError(PreconditionError):
    """Another pipeline operation currently owns the campaign."""


class ExportInProgressError(PreconditionError):
    """An export already owns the canvas/encoder pair."""


class IllegalTransitionError(AdComposerError):
    """A status machine was asked for a transition its table does not allow."""


# ---------------------------------------------------------------------------
# Fatal errors: abort the whole operation
# ---------------------------------------------------------------------------


class SetupError(AdComposerError):
    """A generative client could not be initialised."""


class PlanGenerationError(AdComposerError):
    """The storyboard generator failed or returned an unusable plan."""


class ExportSetupError(AdComposerError):
    """Export setup failed (clip missing, audio decode failure); encoder never started."""


class ExportError(AdComposerError):
    """Encoding failed after the encoder started; the export must be restarted."""
