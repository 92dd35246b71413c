"""
Critterworld Configuration

Loads configuration from environment variables with sensible defaults.
"""

import os
from pathlib import Path
from dotenv import load_dotenv

# Load .env file if it exists
load_dotenv()


class Config:
    """Application configuration loaded from environment variables."""

    # Text generation: openai, anthropic or ollama
    LLM_PROVIDER: str = os.getenv("LLM_PROVIDER", "openai")
    LLM_MODEL: str | None = os.getenv("LLM_MODEL")

    ANTHROPIC_API_KEY: str | None = os.getenv("ANTHROPIC_API_KEY")
    OPENAI_API_KEY: str | None = os.getenv("OPENAI_API_KEY")

    # Ollama server root, e.g. http://localhost:11434
    LOCAL_LLM_BASE_URL: str = os.getenv("LOCAL_LLM_BASE_URL", "http://localhost:11434")

    DIALOGUE_TIMEOUT_SECONDS: float = float(os.getenv("DIALOGUE_TIMEOUT_SECONDS", "8"))
    THOUGHT_TIMEOUT_SECONDS: float = float(os.getenv("THOUGHT_TIMEOUT_SECONDS", "15"))

    MAX_CRITTERS: int = int(os.getenv("MAX_CRITTERS", "8"))
    MAX_MEMORIES: int = int(os.getenv("MAX_MEMORIES", "50"))

    # Persistence
    SAVE_PATH: Path = Path(os.getenv("SAVE_PATH", "critterworld-save.json"))
    DATABASE_URL: str = os.getenv("DATABASE_URL", "postgresql://localhost/critterworld")
    # What to do with a saved world written by a newer version: raise | reset
    FUTURE_SCHEMA_POLICY: str = os.getenv("FUTURE_SCHEMA_POLICY", "raise")


    @classmethod
    def api_key_for(cls, provider: str) -> str | None:
        if provider == "openai":
            return cls.OPENAI_API_KEY
        if provider == "anthropic":
            return cls.ANTHROPIC_API_KEY
        return None

    @classmethod
    def validate(cls) -> None:
        """Validate configuration and raise errors if required values are missing."""
        if cls.LLM_PROVIDER not in ("openai", "anthropic", "ollama"):
            raise ValueError(
                f"Unknown LLM_PROVIDER '{cls.LLM_PROVIDER}'. Use 'openai', 'anthropic' or 'ollama'."
            )

        if cls.LLM_PROVIDER == "anthropic" and not cls.ANTHROPIC_API_KEY:
            raise ValueError(
                "ANTHROPIC_API_KEY is required when using the 'anthropic' provider. "
                "For a local model, set LLM_PROVIDER=ollama instead."
            )

        if cls.LLM_PROVIDER == "openai" and not cls.OPENAI_API_KEY:
            raise ValueError(
                "OPENAI_API_KEY is required when using the 'openai' provider. "
                "For a local model, set LLM_PROVIDER=ollama instead."
            )

        if cls.FUTURE_SCHEMA_POLICY not in ("raise", "reset"):
            raise ValueError("FUTURE_SCHEMA_POLICY must be 'raise' or 'reset'")

    @classmethod
    def display(cls) -> str:
        """Return a formatted string showing current configuration."""
        lines = [
            "Critterworld Configuration:",
            f"  LLM Provider: {cls.LLM_PROVIDER}",
            f"  LLM Model: {cls.LLM_MODEL or '(provider default)'}",
            f"  Dialogue timeout: {cls.DIALOGUE_TIMEOUT_SECONDS}s",
            f"  Thought timeout: {cls.THOUGHT_TIMEOUT_SECONDS}s",
            f"  Max critters: {cls.MAX_CRITTERS}",
            f"  Save path: {cls.SAVE_PATH}",
            f"  Future schema policy: {cls.FUTURE_SCHEMA_POLICY}",
        ]
        return "\n".join(lines)
