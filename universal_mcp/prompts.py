"""Prompt catalog — reusable prompt templates served via prompts/list and prompts/get"""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from .protocol import INVALID_PARAMS, ProtocolError


@dataclass(frozen=True)
class PromptArgument:
    name: str
    description: str
    required: bool = True


@dataclass(frozen=True)
class PromptDescriptor:
    name: str
    description: str
    template: str
    arguments: List[PromptArgument] = field(default_factory=list)

    def to_listing(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "description": self.description,
            "arguments": [
                {"name": a.name, "description": a.description, "required": a.required}
                for a in self.arguments
            ],
        }


class PromptCatalog:
    def __init__(self, prompts: Optional[List[PromptDescriptor]] = None):
        self._prompts: Dict[str, PromptDescriptor] = {}
        for prompt in prompts or []:
            self.add(prompt)

    def add(self, prompt: PromptDescriptor):
        self._prompts[prompt.name] = prompt

    def list_all(self) -> List[PromptDescriptor]:
        return list(self._prompts.values())

    def render(self, name: str, arguments: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        prompt = self._prompts.get(name)
        if prompt is None:
            raise ProtocolError(INVALID_PARAMS, f"Unknown prompt: {name}")

        arguments = arguments or {}
        values = {}
        for arg in prompt.arguments:
            if arg.name not in arguments:
                if arg.required:
                    raise ProtocolError(
                        INVALID_PARAMS, f"Missing required argument '{arg.name}' for prompt {name}"
                    )
                values[arg.name] = ""
            else:
                values[arg.name] = str(arguments[arg.name])

        return {
            "description": prompt.description,
            "messages": [
                {"role": "user", "content": {"type": "text", "text": prompt.template.format(**values)}},
            ],
        }


DEFAULT_PROMPTS = [
    PromptDescriptor(
        name="analyze_collection",
        description="Ask a data-analysis question about the documents in a collection",
        template=(
            "You are an expert data analyst. Use the db_find or analyze_data tools to "
            "look at the '{collection}' collection and answer this question with "
            "specific numbers where relevant:\n\n{question}"
        ),
        arguments=[
            PromptArgument("collection", "Collection to analyze"),
            PromptArgument("question", "Question about the data"),
        ],
    ),
    PromptDescriptor(
        name="natural_language_query",
        description="Turn a natural-language request into a MongoDB query for a collection",
        template=(
            "Inspect the schema of the '{collection}' collection with db_get_schema, then "
            "write a MongoDB find, countDocuments or aggregate call that answers:\n\n"
            "{request}\n\nReturn only the query."
        ),
        arguments=[
            PromptArgument("collection", "Target collection"),
            PromptArgument("request", "What you want to find"),
        ],
    ),
]
