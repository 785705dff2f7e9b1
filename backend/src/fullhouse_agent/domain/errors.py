"""Error taxonomy for the agent pipeline.

Every stage catches these at its own boundary and turns them into an audit
entry; none of them is allowed to reach the webhook.
"""


class AgentPipelineError(Exception):
    """Base class for pipeline failures."""


class ExtractionParseError(AgentPipelineError):
    """Model output could not be parsed into the intelligence bundle."""

    def __init__(self, message: str, raw_text: str = ""):
        super().__init__(message)
        self.raw_text = raw_text


class ProviderCredentialMissing(AgentPipelineError):
    """The organization has no API key for its selected provider."""

    def __init__(self, provider: str):
        super().__init__(f"No API key configured for provider '{provider}'")
        self.provider = provider


class ProviderCallError(AgentPipelineError):
    """The LLM provider call failed or timed out."""


class GatewaySendFailure(AgentPipelineError):
    """The outbound WhatsApp gateway rejected or failed the send."""

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.status_code = status_code


class PersistenceFailure(AgentPipelineError):
    """A database write needed by the reply path failed."""
