import json
from typing import Any, Dict, List, Optional
from zhipuai import ZhipuAI
from tenacity import retry, stop_after_attempt, wait_exponential, retry_if_exception_type
from repoaudit.core.config import settings
from repoaudit.core.errors import ClassifierError
from repoaudit.core.logging import get_logger

logger = get_logger("llm_client")


def clean_json_string(content: str) -> str:
    """
    Clean the content string to extract valid JSON.
    Handles markdown code blocks (```json ... ```) and leading/trailing chatter
    around the first JSON object or list.
    """
    content = content.strip()

    # Remove markdown code blocks
    if content.startswith("```"):
        newline_idx = content.find("\n")
        if newline_idx != -1:
            # Drop the fence line (```json)
            content = content[newline_idx+1:]
        if content.endswith("```"):
            content = content[:-3]

    content = content.strip()

    first_curly = content.find("{")
    first_square = content.find("[")

    start = -1
    end = -1

    # If both exist, take the earlier one
    if first_curly != -1 and (first_square == -1 or first_curly < first_square):
        start = first_curly
        end = content.rfind("}")
    elif first_square != -1:
        start = first_square
        end = content.rfind("]")

    if start != -1 and end > start:
        return content[start:end+1]

    return content


def loads_llm_json(content: str) -> Any:
    """Decode model output as JSON, raising ValueError on anything else."""
    if not isinstance(content, str):
        raise ValueError(f"Expected text response, got {type(content).__name__}")
    return json.loads(clean_json_string(content))


class LLMClient:
    def __init__(self, api_key: Optional[str] = None, model: Optional[str] = None):
        self.api_key = api_key or settings.LLM_API_KEY
        self.model = model or settings.LLM_MODEL
        self.total_tokens = 0
        self._client = None

    @property
    def client(self) -> ZhipuAI:
        if self._client is None:
            self._client = ZhipuAI(api_key=self.api_key, timeout=settings.LLM_TIMEOUT)
        return self._client

    @retry(
        stop=stop_after_attempt(settings.LLM_MAX_RETRIES + 1),
        wait=wait_exponential(multiplier=1, min=2, max=10),
        retry=retry_if_exception_type(Exception),
        reraise=True
    )
    def chat_completion(
        self,
        messages: List[Dict[str, str]],
        temperature: float = settings.LLM_TEMPERATURE,
        max_tokens: int = settings.LLM_MAX_TOKENS,
    ) -> str:
        try:
            response = self.client.chat.completions.create(
                model=self.model,
                messages=messages,
                temperature=temperature,
                max_tokens=max_tokens,
            )

            # Track tokens
            if hasattr(response, 'usage') and response.usage:
                self.total_tokens += response.usage.total_tokens

            content = response.choices[0].message.content
            if content is None:
                raise ClassifierError("Empty completion from model")
            return content

        except Exception as e:
            logger.error(f"LLM Call failed: {e}")
            raise e

    def complete(self, system_role: str, prompt: str, max_tokens: int = settings.LLM_MAX_TOKENS) -> str:
        messages = []
        if system_role:
            messages.append({"role": "system", "content": system_role})
        messages.append({"role": "user", "content": prompt})
        return self.chat_completion(messages, max_tokens=max_tokens)

    # Collaborator shapes used by the pipeline

    def classify(self, system_role: str, prompt: str) -> str:
        return self.complete(system_role, prompt)

    def summarize(self, prompt: str) -> str:
        return self.complete("", prompt, max_tokens=settings.LLM_SUMMARY_MAX_TOKENS)

llm_client = LLMClient()
