"""
OpenRouter Client
=================

Chat-completions client for the OpenRouter API (OpenAI-compatible), used
for every AI feature. Upstream failures surface as AIServiceError carrying
the HTTP status the API layer should answer with.
"""

import re
import json
import time
import logging

import requests

from getmeachai.core.config import setting
from getmeachai.core.logging_service import LoggingService
from getmeachai.core.validation import validate_string, validate_number

logger = logging.getLogger(__name__)

DEFAULT_SYSTEM_PROMPT = "You are a helpful AI assistant for a crowdfunding platform called 'Get Me A Chai'."
MAX_PROMPT_LENGTH = 100000
MAX_SYSTEM_PROMPT_LENGTH = 10000

_JSON_OBJECT = re.compile(r'\{[\s\S]*\}')
_JSON_ARRAY = re.compile(r'\[[\s\S]*\]')


class AIServiceError(Exception):
    def __init__(self, message, status_code=502):
        super().__init__(message)
        self.message = message
        self.status_code = status_code


def extract_json(text, array=False):
    """Pull the outermost JSON object (or array) out of model output; None if unparseable"""
    if not text:
        return None
    match = (_JSON_ARRAY if array else _JSON_OBJECT).search(text)
    if not match:
        return None
    try:
        return json.loads(match.group(0))
    except ValueError:
        return None


class OpenRouterClient:
    def __init__(self, api_key=None, base_url=None, model=None, timeout=None):
        self.api_key = api_key if api_key is not None else setting('OPENROUTER_API_KEY')
        self.base_url = (base_url or setting('OPENROUTER_BASE_URL') or 'https://openrouter.ai/api/v1').rstrip('/')
        self.model = model or setting('OPENROUTER_MODEL') or 'deepseek/deepseek-chat'
        self.timeout = timeout or setting('AI_TIMEOUT', 60)
        self.default_temperature = setting('AI_TEMPERATURE', 0.7)
        self.default_max_tokens = setting('AI_MAX_TOKENS', 2000)

    @property
    def configured(self):
        return bool(self.api_key)

    def _headers(self):
        return {
            'Authorization': f'Bearer {self.api_key}',
            'Content-Type': 'application/json',
            'HTTP-Referer': setting('APP_URL', 'http://localhost:5000'),
            'X-Title': setting('APP_NAME', 'Get Me A Chai'),
        }

    def _options(self, temperature, max_tokens, system_prompt):
        """Validate generation options, filling defaults from config"""
        if temperature is None:
            temperature = self.default_temperature
        if max_tokens is None:
            max_tokens = self.default_max_tokens
        temperature = validate_number(temperature, 'Temperature', min_value=0, max_value=2)
        max_tokens = validate_number(max_tokens, 'maxTokens', min_value=1, max_value=8192, integer=True)
        if system_prompt is not None:
            system_prompt = validate_string(system_prompt, 'systemPrompt', max_length=MAX_SYSTEM_PROMPT_LENGTH)
        return temperature, max_tokens, system_prompt or DEFAULT_SYSTEM_PROMPT

    def _post(self, messages, temperature, max_tokens, stream=False):
        if not self.configured:
            logger.error("OpenRouter API key not configured")
            raise AIServiceError('AI service not configured', 500)

        payload = {
            'model': self.model,
            'messages': messages,
            'temperature': temperature,
            'max_tokens': max_tokens,
            'stream': stream,
        }
        try:
            response = requests.post(f"{self.base_url}/chat/completions", json=payload,
                                     headers=self._headers(), timeout=self.timeout, stream=stream)
        except requests.exceptions.Timeout:
            logger.warning(f"OpenRouter request timed out after {self.timeout}s")
            raise AIServiceError('Request timed out. Please try again.', 504)
        except requests.exceptions.RequestException as e:
            logger.error(f"OpenRouter network error: {e}")
            raise AIServiceError('Network error. Please check your connection.', 502)

        if response.status_code == 401:
            logger.error("OpenRouter rejected the API key")
            raise AIServiceError('Invalid API key', 502)
        if response.status_code == 429:
            logger.warning("OpenRouter rate limit exceeded")
            raise AIServiceError('Rate limit exceeded. Please try again later.', 429)
        if response.status_code >= 500:
            logger.error(f"OpenRouter unavailable ({response.status_code})")
            raise AIServiceError('AI service temporarily unavailable. Please try again later.', 503)
        if response.status_code >= 400:
            logger.error(f"OpenRouter request failed ({response.status_code}): {response.text[:500]}")
            raise AIServiceError(f'Failed to generate AI response (HTTP {response.status_code})', 502)
        return response

    def _complete(self, messages, temperature, max_tokens):
        started = time.time()
        response = self._post(messages, temperature, max_tokens)
        try:
            data = response.json()
            content = data['choices'][0]['message']['content']
        except (ValueError, KeyError, IndexError, TypeError):
            logger.error(f"Invalid response structure from OpenRouter: {response.text[:500]}")
            raise AIServiceError('Invalid response structure from AI service', 502)
        if not content:
            raise AIServiceError('Invalid response structure from AI service', 502)

        duration_ms = int((time.time() - started) * 1000)
        logger.info(f"OpenRouter completion in {duration_ms}ms ({len(content)} chars)")
        LoggingService.log_metric('ai', 'completion_duration', duration_ms, 'ms', {'model': self.model})
        return content

    def generate(self, prompt, temperature=None, max_tokens=None, system_prompt=None):
        """Single-turn completion; returns the full response text"""
        prompt = validate_string(prompt, 'Prompt', min_length=1, max_length=MAX_PROMPT_LENGTH)
        temperature, max_tokens, system_prompt = self._options(temperature, max_tokens, system_prompt)
        messages = [
            {'role': 'system', 'content': system_prompt},
            {'role': 'user', 'content': prompt},
        ]
        return self._complete(messages, temperature, max_tokens)

    def generate_with_history(self, messages, temperature=None, max_tokens=None, system_prompt=None):
        """Multi-turn completion; messages are {role, content} dicts, oldest first"""
        if not isinstance(messages, list) or not messages:
            raise AIServiceError('Messages must be a non-empty list', 400)
        temperature, max_tokens, system_prompt = self._options(temperature, max_tokens, system_prompt)

        conversation = [{'role': 'system', 'content': system_prompt}]
        for message in messages:
            if not isinstance(message, dict) or message.get('role') not in ('user', 'assistant'):
                raise AIServiceError('Each message needs a role of user or assistant', 400)
            content = validate_string(message.get('content'), 'Message', max_length=MAX_PROMPT_LENGTH)
            conversation.append({'role': message['role'], 'content': content})
        return self._complete(conversation, temperature, max_tokens)

    def stream(self, prompt, temperature=None, max_tokens=None, system_prompt=None):
        """
        Start a streamed completion and return a generator of text deltas.

        The HTTP request is made before this returns, so configuration and
        upstream errors raise here rather than mid-stream.
        """
        prompt = validate_string(prompt, 'Prompt', min_length=1, max_length=MAX_PROMPT_LENGTH)
        temperature, max_tokens, system_prompt = self._options(temperature, max_tokens, system_prompt)
        response = self._post([
            {'role': 'system', 'content': system_prompt},
            {'role': 'user', 'content': prompt},
        ], temperature, max_tokens, stream=True)
        return self._iter_deltas(response)

    @staticmethod
    def _iter_deltas(response):
        started = time.time()
        try:
            for line in response.iter_lines(decode_unicode=True):
                line = (line or '').strip()
                if not line or not line.startswith('data:'):
                    continue
                data = line[5:].strip()
                if data == '[DONE]':
                    break
                try:
                    chunk = json.loads(data)
                except ValueError:
                    logger.warning(f"Failed to parse SSE line: {line[:200]}")
                    continue
                delta = ((chunk.get('choices') or [{}])[0].get('delta') or {}).get('content')
                if delta:
                    yield delta
        finally:
            response.close()
            logger.info(f"Streaming completed in {int((time.time() - started) * 1000)}ms")
