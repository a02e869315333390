"""PromptIQ: streaming chat over an OpenAI-compatible completion provider."""

__version__ = "0.1.0"
