import logging
from typing import Any, Dict, List, Optional, Sequence

import openai
from openai import OpenAI

from ..errors import TranslationTransportError
from ..models import SUPPORTED_LANGUAGES
from .jsonparse import extract_json

logger = logging.getLogger("video_localizer")


SYSTEM_PROMPT = """You are a professional marketing translator with NATIVE-SPEAKER fluency in {languages}.

CRITICAL RULES:
1. Translate for NATURAL speech, NOT literal word-for-word
2. Use colloquial, everyday language that locals actually speak
3. Match the casual, punchy marketing tone
4. Keep texts SHORT and IMPACTFUL (max 5 words ideally)
5. Adapt idioms/expressions to what natives would say
6. Keep any emojis{brand_rule}"""

USER_PROMPT = """Translate these marketing texts. Make them sound like a NATIVE SPEAKER wrote them:

{numbered}

Return ONLY valid JSON array, one object per text in the same order:
[{{{json_format}}}, ...]"""

SINGLE_LANGUAGE_PROMPT = """Translate these texts to {language} (or keep as-is if already {language}):

{numbered}

Return JSON array of translations in same order:
["translation1", "translation2", ...]"""


def _numbered(texts: Sequence[str]) -> str:
    return '\n'.join(f'{i + 1}. "{t}"' for i, t in enumerate(texts))


def apply_translations(texts: Sequence[str], languages: Sequence[str],
                       parsed: Any) -> List[Dict[str, str]]:
    """
    Build one language -> text mapping per source text.

    Any (text, language) pair the parsed response does not supply as a
    non-empty string falls back to the source text verbatim.
    """
    items = parsed if isinstance(parsed, list) else []
    result = []
    missing = 0
    for i, source in enumerate(texts):
        entry = items[i] if i < len(items) and isinstance(items[i], dict) else {}
        mapping = {}
        for lang in languages:
            value = entry.get(lang)
            if isinstance(value, str) and value.strip():
                mapping[lang] = value.strip()
            else:
                mapping[lang] = source
                missing += 1
        result.append(mapping)

    if missing:
        logger.warning(f"{missing} translation(s) missing, using source text for those")
    return result


class Translator:
    """Batched multi-language translation of segment texts"""

    def __init__(self, model: str = "gpt-4o", max_tokens: int = 2000, brand_name: str = "",
                 client: Optional[OpenAI] = None):
        self.model = model
        self.max_tokens = max_tokens
        self.brand_name = brand_name
        self._client = client

    @property
    def client(self) -> OpenAI:
        if self._client is None:
            self._client = OpenAI()
        return self._client

    def _complete(self, system: str, user: str, max_tokens: int) -> str:
        response = self.client.chat.completions.create(
            model=self.model,
            messages=[
                {"role": "system", "content": system},
                {"role": "user", "content": user},
            ],
            max_tokens=max_tokens,
        )
        return response.choices[0].message.content or ""

    def translate(self, texts: Sequence[str], languages: Sequence[str],
                  job_id: str = "") -> List[Dict[str, str]]:
        """
        Translate all texts into all languages with one request.

        Raises:
            TranslationTransportError: the request itself failed

        Returns:
            One mapping per text, index-aligned with `texts`, holding every language
        """
        if not texts:
            return []

        names = ', '.join(SUPPORTED_LANGUAGES.get(l, l) for l in languages)
        brand_rule = f'\n7. Brand name "{self.brand_name}" stays unchanged' if self.brand_name else ''
        system = SYSTEM_PROMPT.format(languages=names, brand_rule=brand_rule)
        user = USER_PROMPT.format(
            numbered=_numbered(texts),
            json_format=','.join(f'"{l}":"..."' for l in languages),
        )

        logger.info(f"[{job_id}] Translating {len(texts)} texts to {len(languages)} languages: {', '.join(languages)}")
        try:
            content = self._complete(system, user, self.max_tokens)
        except openai.OpenAIError as e:
            raise TranslationTransportError(f"Translation request failed: {e}")

        logger.debug(f"[{job_id}] Raw translation response: {content[:500]}")
        parsed = extract_json(content, expect=list)
        if not parsed.ok:
            logger.error(f"[{job_id}] Failed to parse translations ({parsed.error}), using source texts")
            return apply_translations(texts, languages, [])

        logger.info(f"[{job_id}] Parsed {len(parsed.value)} translation objects")
        return apply_translations(texts, languages, parsed.value)

    def translate_to_language(self, texts: Sequence[str], language: str = "English",
                              job_id: str = "") -> List[str]:
        """Translate texts into one language; the source texts are returned on any failure"""
        texts = list(texts)
        if not texts:
            return []

        system = f"Translate marketing texts to {language}. Keep brand names unchanged. Keep translations short and punchy."
        user = SINGLE_LANGUAGE_PROMPT.format(language=language, numbered=_numbered(texts))
        try:
            content = self._complete(system, user, 1500)
        except openai.OpenAIError as e:
            logger.error(f"[{job_id}] {language} translation failed: {e}")
            return texts

        parsed = extract_json(content, expect=list)
        if not parsed.ok:
            logger.warning(f"[{job_id}] Could not parse {language} translation: {parsed.error}")
            return texts

        result = []
        for i, source in enumerate(texts):
            value = parsed.value[i] if i < len(parsed.value) else None
            result.append(value.strip() if isinstance(value, str) and value.strip() else source)
        return result
