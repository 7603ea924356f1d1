"""Token counting for memory budget management."""

from __future__ import annotations

from loguru import logger

from .config import TokenConfig


class TokenCounter:
    """Counts tokens for budget management.

    Two methods are supported:

    - ``approximate``: ``len(text) // chars_per_token`` with a floor of one
      token for any non-empty text. Instant, good enough for limits, and
      stable enough to persist alongside each memory.
    - ``tiktoken``: exact counts for OpenAI-family models. Requires the
      ``tiktoken`` extra.
    """

    def __init__(self, config: TokenConfig | None = None):
        self._config = config or TokenConfig()
        self._encoder = None

        if self._config.method == "tiktoken":
            try:
                import tiktoken
            except ImportError:
                raise ImportError(
                    "tiktoken is required for method='tiktoken'. "
                    "Install with: pip install 'memorix[tiktoken]'"
                )
            self._encoder = tiktoken.encoding_for_model(self._config.model)
            logger.debug(f"TokenCounter using tiktoken for {self._config.model}")
        elif self._config.method != "approximate":
            raise ValueError(f"Unknown token counting method: {self._config.method!r}")

    @property
    def method(self) -> str:
        return self._config.method

    def count(self, text: str | None) -> int:
        """Count tokens in a text string (empty text costs nothing)."""
        if not text:
            return 0
        if self._encoder is not None:
            return len(self._encoder.encode(text))
        return max(1, len(text) // self._config.chars_per_token)
