"""
Prompt library loader.

Prompt templates for the reference workflows live in ``prompts.yaml`` next to
this module, grouped by workflow and then by agent.
"""

import logging
from pathlib import Path
from typing import Dict, Optional

import yaml
from pydantic import BaseModel, Field, ValidationError

from .errors import CompositionError

logger = logging.getLogger(__name__)

DEFAULT_PROMPTS_PATH = Path(__file__).with_name("prompts.yaml")


class PromptSpec(BaseModel):
    """Prompt definition for one agent."""

    description: str = Field(..., description="Capability summary")
    template: str = Field(..., description="str.format template with named placeholders")
    system_message: Optional[str] = None


class PromptLibrary:
    """Prompt definitions keyed by workflow, then by agent."""

    def __init__(self, prompts: Dict[str, Dict[str, PromptSpec]]) -> None:
        self.prompts = prompts

    @classmethod
    def load(cls, path: Optional[Path] = None) -> "PromptLibrary":
        """
        Load a prompt library from YAML.

        Raises:
            CompositionError: If the file is missing or malformed
        """
        path = path or DEFAULT_PROMPTS_PATH
        if not path.exists():
            raise CompositionError(f"Prompt library not found: {path}")

        try:
            with open(path, "r", encoding="utf-8") as f:
                data = yaml.safe_load(f) or {}

            prompts = {
                workflow: {agent: PromptSpec(**spec) for agent, spec in agents.items()}
                for workflow, agents in data.items()
            }
        except yaml.YAMLError as e:
            raise CompositionError(f"Invalid YAML in prompt library: {e}")
        except (ValidationError, AttributeError, TypeError) as e:
            raise CompositionError(f"Invalid prompt library structure: {e}")

        logger.info(f"Loaded prompt library from {path}")
        return cls(prompts)

    def get(self, workflow: str, agent: str) -> PromptSpec:
        try:
            return self.prompts[workflow][agent]
        except KeyError:
            raise CompositionError(f"No prompt defined for {workflow}.{agent}")
