import asyncio
import logging
import re

from openai import AsyncOpenAI

_FENCE_RE = re.compile(r"^```[a-zA-Z]*\s*\n?(.*?)\n?```$", re.DOTALL)


class LLMAPI:
    def __init__(self, llm_config) -> None:
        self.llm_config = llm_config
        self.api_type = self.llm_config.get("api")
        self.model = self.llm_config.get("model")
        self.client = None
        self._init_lock = asyncio.Lock()

    async def initialize(self):
        if self.api_type == "openai":
            self.api_key = self.llm_config.get("api_key")
            if not self.api_key:
                raise ValueError("API key is empty. OpenAI client not initialized.")
            self.base_url = self.llm_config.get("base_url")
            self.client = AsyncOpenAI(api_key=self.api_key, base_url=self.base_url) if self.base_url else AsyncOpenAI(
                api_key=self.api_key)
            logging.info(f"AsyncOpenAI client initialized, Model: {self.model}, base URL: {self.base_url}")
        else:
            raise ValueError("Invalid API type or missing credentials. LLM client not initialized.")

        return self

    async def get_llm_response(self, system_prompt, prompt, images=None, temperature=None):
        if self.client is None:
            async with self._init_lock:
                if self.client is None:
                    await self.initialize()

        try:
            messages = self._create_messages(system_prompt, prompt)
            if images:
                self._handle_images_openai(messages, images)
            return await self._call_openai(messages, temperature)
        except Exception as e:
            logging.error(f"LLMAPI.get_llm_response encountered error: {e}")
            raise

    def _create_messages(self, system_prompt, prompt):
        return [
            {"role": "system", "content": system_prompt},
            {"role": "user", "content": [{"type": "text", "text": prompt}]},
        ]

    def _handle_images_openai(self, messages, images):
        """Append base64 screenshots to the user message."""
        if isinstance(images, str):
            images = [images]
        if not isinstance(images, list):
            raise ValueError("Invalid type for 'images'. Expected a base64 string or a list of base64 strings.")
        for image in images:
            url = image if image.startswith("data:image") else f"data:image/png;base64,{image}"
            messages[1]["content"].append({"type": "image_url", "image_url": {"url": url, "detail": "low"}})

    async def _call_openai(self, messages, temperature=None):
        if temperature is None:
            temperature = self.llm_config.get("temperature", 0.1)
        completion = await self.client.chat.completions.create(
            model=self.model,
            messages=messages,
            timeout=60,
            temperature=temperature,
        )
        content = completion.choices[0].message.content
        return self._clean_response(content)

    @staticmethod
    def _clean_response(response):
        """Remove markdown code fences around the response if present."""
        if not response or not isinstance(response, str):
            return response
        stripped = response.strip()
        match = _FENCE_RE.match(stripped)
        if match:
            logging.debug("Cleaning response: removing ``` markers")
            return match.group(1).strip()
        return stripped

    async def close(self):
        if self.client is not None:
            await self.client.close()
            self.client = None
