"""Run configuration for document renewal.

Values come from, in increasing priority: the defaults below, environment
variables (usually loaded from `~/.doc_renew/.env` by the CLI), and explicit
keyword overrides such as command-line options.
"""

import os
from pathlib import Path
from typing import Dict, List

from pydantic import BaseModel, Field

CONFIG_DIR = Path.home() / ".doc_renew"
ENV_FILE = CONFIG_DIR / ".env"

ENV_PREFIX = "RENEW_"

REPHRASE_SYSTEM_PROMPT = (
    "You are just rephrasing the given input, but make sure the input is human readable text, "
    "like sentences or phrases. Your answers are always less than 100 words."
)


class RenewConfig(BaseModel):
    """Settings for one renewal run.

    Attributes:
        text_limit: Maximum number of text nodes to rephrase per run.
        image_limit: Maximum number of images to regenerate per run. Zero
            disables image processing.
        model: Chat model used to rephrase text.
        image_model: Image model used to create variations.
        image_size: Resolution of generated variations.
        max_words: Upper bound on the length of a rephrased text.
        include: Glob selecting documents inside the workspace.
        exclude: Directory names skipped during discovery and asset lookup.
        image_tags: Tag name to source attribute mapping identifying images.
    """
    text_limit: int = Field(default=30, ge=0)
    image_limit: int = Field(default=0, ge=0)
    model: str = "gpt-4o-mini"
    image_model: str = "dall-e-2"
    image_size: str = "256x256"
    max_words: int = Field(default=100, ge=1)
    include: str = "**/*.html"
    exclude: List[str] = Field(default_factory=lambda: ["node_modules", ".git"])
    image_tags: Dict[str, str] = Field(default_factory=lambda: {"img": "src"})

    @classmethod
    def from_env(cls, **overrides) -> "RenewConfig":
        """Build a config from `RENEW_*` environment variables plus overrides.

        Recognized variables are `RENEW_TEXT_LIMIT`, `RENEW_IMAGE_LIMIT`,
        `RENEW_MODEL`, `RENEW_IMAGE_MODEL`, `RENEW_IMAGE_SIZE` and
        `RENEW_MAX_WORDS`. Overrides whose value is None are ignored.

        Raises:
            pydantic.ValidationError: If a value has the wrong type or a
                limit is negative.
        """
        values = {}
        for name in ("text_limit", "image_limit", "model", "image_model", "image_size", "max_words"):
            env_value = os.environ.get(ENV_PREFIX + name.upper())
            if env_value:
                values[name] = env_value
        values.update({k: v for k, v in overrides.items() if v is not None})
        return cls(**values)
