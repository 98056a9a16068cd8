import logging
from typing import Optional, Sequence

from openai import OpenAI

from ..models import QualityCheck
from .jsonparse import extract_json

logger = logging.getLogger("video_localizer")

VERDICT_GOOD = "GOOD"

SYSTEM_PROMPT = """You are a NATIVE {language} speaker reviewing marketing translations.
Your job is to check if texts sound NATURAL to a native speaker.

Rate each text:
- GOOD = sounds natural, a native would say it this way
- AWKWARD = understandable but sounds foreign/robotic
- BAD = confusing, wrong grammar, or doesn't make sense

Be STRICT - if a native speaker would find it odd, mark it as AWKWARD or BAD."""

USER_PROMPT = """Review these {language} marketing texts:

{numbered}

Return JSON array with verdicts:
[
  {{"text": "...", "verdict": "GOOD|AWKWARD|BAD", "suggestion": "better version if not GOOD", "reason": "brief explanation"}}
]"""


class QualityChecker:
    """Asks the model to rate translated texts the way a native speaker would"""

    def __init__(self, model: str = "gpt-4o", sample_size: int = 3, max_tokens: int = 1000,
                 client: Optional[OpenAI] = None):
        self.model = model
        self.sample_size = sample_size
        self.max_tokens = max_tokens
        self._client = client

    @property
    def client(self) -> OpenAI:
        if self._client is None:
            self._client = OpenAI()
        return self._client

    def check(self, language: str, language_name: str, texts: Sequence[str],
              job_id: str = "") -> QualityCheck:
        """
        Rate the first `sample_size` texts of one language.

        Never raises: a failed request is reported as an issue of type `error`.
        """
        result = QualityCheck(language=language, language_name=language_name)
        sample = list(texts)[:self.sample_size]
        if not sample:
            return result

        try:
            response = self.client.chat.completions.create(
                model=self.model,
                messages=[
                    {"role": "system", "content": SYSTEM_PROMPT.format(language=language_name)},
                    {"role": "user", "content": USER_PROMPT.format(
                        language=language_name,
                        numbered='\n'.join(f'{i + 1}. "{t}"' for i, t in enumerate(sample)),
                    )},
                ],
                max_tokens=self.max_tokens,
            )
            content = response.choices[0].message.content
        except Exception as e:
            logger.error(f"[{job_id}] QC error for {language}: {e}")
            result.issues.append({"type": "error", "message": str(e)})
            return result

        parsed = extract_json(content, expect=list)
        if not parsed.ok:
            logger.warning(f"[{job_id}] QC response for {language} not parseable: {parsed.error}")
            return result

        for text, verdict in zip(sample, parsed.value):
            if not isinstance(verdict, dict):
                continue
            label = str(verdict.get("verdict", "")).strip().upper()
            check = {
                "text": text,
                "verdict": label,
                "suggestion": verdict.get("suggestion"),
                "reason": verdict.get("reason"),
            }
            result.checks.append(check)
            if label != VERDICT_GOOD:
                result.issues.append({"type": "translation", **check})

        logger.info(
            f"[{job_id}] QC {language}: {len(result.checks)} checked, {len(result.issues)} issues"
        )
        return result
