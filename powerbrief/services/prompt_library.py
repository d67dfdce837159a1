"""
Prompt library for the OneSheet run-prompt flow.

Templates are defined in ``powerbrief/prompts/onesheet_prompts.yaml`` and
loaded once per process.
"""

import logging
from functools import lru_cache
from pathlib import Path
from typing import Dict, List, Literal, Optional

import yaml
from pydantic import BaseModel, Field

from ..core.exceptions import NotFoundError, ValidationError

logger = logging.getLogger(__name__)

PROMPTS_PATH = Path(__file__).resolve().parent.parent / "prompts" / "onesheet_prompts.yaml"


class PromptInputField(BaseModel):
    key: str
    label: str
    type: Literal["text", "url", "textarea"] = "text"
    required: bool = True


class PromptTemplate(BaseModel):
    """One library prompt and where its output is stored."""
    id: str
    name: str
    category: Literal["audience", "social", "competitor", "creative"]
    description: str = ""
    prompt: str
    input_fields: List[PromptInputField] = Field(default_factory=list)
    output_target: str

    def missing_inputs(self, inputs: Dict[str, str]) -> List[str]:
        """Keys of required fields absent or blank in `inputs`."""
        return [
            f.key for f in self.input_fields
            if f.required and not str(inputs.get(f.key) or "").strip()
        ]


@lru_cache(maxsize=None)
def load_prompts(path: Optional[str] = None) -> List[PromptTemplate]:
    """Read and validate the prompt library YAML."""
    prompts_file = Path(path) if path else PROMPTS_PATH
    with open(prompts_file, "r", encoding="utf-8") as f:
        raw = yaml.safe_load(f) or {}

    prompts = [PromptTemplate.model_validate(p) for p in raw.get("prompts", [])]
    logger.info(f"Loaded {len(prompts)} OneSheet prompts from {prompts_file.name}")
    return prompts


def get_prompt_by_id(prompt_id: str) -> PromptTemplate:
    """
    Raises:
        NotFoundError: no prompt with this id
    """
    for prompt in load_prompts():
        if prompt.id == prompt_id:
            return prompt
    raise NotFoundError("Prompt template not found")


def get_prompts_by_category(category: Optional[str] = None) -> List[PromptTemplate]:
    """All prompts, or only those in one category."""
    prompts = load_prompts()
    if not category:
        return list(prompts)
    return [p for p in prompts if p.category == category]


def replace_placeholders(template: str, values: Dict[str, str]) -> str:
    """Replace every {{key}} occurrence with its value."""
    result = template
    for key, value in values.items():
        result = result.replace("{{" + key + "}}", str(value))
    return result


def render_library_prompt(prompt: PromptTemplate, inputs: Dict[str, str]) -> str:
    """
    Check required inputs and fill the template.

    Raises:
        ValidationError: naming the missing required inputs
    """
    missing = prompt.missing_inputs(inputs)
    if missing:
        raise ValidationError(f"Missing required inputs: {', '.join(missing)}")

    # Optional fields left empty should not leave raw {{key}} markers behind
    values = {f.key: "" for f in prompt.input_fields}
    values.update({k: v for k, v in inputs.items() if v is not None})
    return replace_placeholders(prompt.prompt, values)
