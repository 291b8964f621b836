# openai_service.py
# OpenAI API integration for the MILA clinical assistant chat

import logging
import time

from openai import OpenAI

from core import config
from core.assistant import PLAN_MARKER
from core.errors import AssistantConfigError, AssistantError

logger = logging.getLogger("mila.assistant")

SUPPORTED_LANGUAGES = ("en", "es")

NO_RESPONSE_TEXT = "No response generated."


def build_system_prompt(language: str, patient_context: str) -> str:
    """Fixed assistant instructions with the current patient snapshot appended"""
    if language == "es":
        proceed = '"¿Desea proceder con este plan? Si es así, puedo crear un plan de tratamiento formal."'
        accepted = f'"Excelente. He creado el plan de tratamiento. {PLAN_MARKER}"'
        alternative = '"Entendido. ¿Cuál es su plan?"'
        respond_in = "Spanish"
    else:
        proceed = '"Would you like to proceed with this plan? If so, I can create a formal treatment plan."'
        accepted = f'"Excellent. I have created the treatment plan. {PLAN_MARKER}"'
        alternative = '"Understood. What is your plan?"'
        respond_in = "English"

    return f"""You are MILA (Medical Infant Longitudinal Analytics), an AI clinical assistant specialized in neonatal care in the NICU.

You are speaking DIRECTLY to the attending neonatologist. They make the decisions. Do not suggest they consult a neonatologist; give direct clinical guidance as a knowledgeable colleague.

YOUR ROLE:
- Provide evidence-based treatment recommendations following international guidelines
- Give specific dosages, thresholds, and protocols
- Present the clinical reasoning behind recommendations
- Flag concerning trends and suggest interventions
- This is a decision support tool; the physician makes the final call

INTERACTIVE TREATMENT PLANNING:
After giving a clinical recommendation, ALWAYS end by asking: {proceed}

If the doctor says YES:
- Respond with: {accepted}
- Follow it with the plan as a numbered list of actions, with dosages and timing

If the doctor disagrees or proposes an alternative:
- Ask: {alternative}
- Support their plan unless it could harm the patient, contradicts strong evidence (cite it), or misses a critical intervention

TRANSFUSION THRESHOLDS (ETTNO, TOP, PlaNeT-2):
- Hgb thresholds are age-banded and higher on respiratory support
- Platelets <25K: transfuse. 25-50K: do NOT transfuse unless active bleeding
- Plasma only with active bleeding and coagulopathy; never prophylactically
- If transfusion counts are above expected, investigate root cause (phlebotomy losses, hemolysis, occult bleeding) before transfusing again

LANGUAGE: Respond in {respond_in}. Use professional medical language; do not use emojis.

CURRENT PATIENT DATA:
{patient_context}"""


class ClinicalAssistant:
    """Chat with the MILA clinical assistant using OpenAI GPT-4o"""

    def __init__(self, api_key: str = None, model: str = None, temperature: float = None,
                 max_retries: int = None):
        """Initialize the OpenAI client"""
        api_key = api_key or config.OPENAI_API_KEY
        if not api_key or api_key == "your-openai-api-key-here":
            raise AssistantConfigError("OPENAI_API_KEY is not configured")
        self.client = OpenAI(api_key=api_key)
        self.model = model or config.ASSISTANT_MODEL
        self.temperature = config.ASSISTANT_TEMPERATURE if temperature is None else temperature
        self.max_retries = config.ASSISTANT_MAX_RETRIES if max_retries is None else max_retries

    def ask(self, message: str, patient_context: str, language: str = "en") -> str:
        """
        Send one physician message with the patient context.

        Returns the assistant's reply text. A reply accepting a plan contains
        PLAN_MARKER verbatim.
        """
        if not message or not message.strip():
            raise ValueError("message must not be empty")
        if language not in SUPPORTED_LANGUAGES:
            raise ValueError(f"language must be one of {SUPPORTED_LANGUAGES}, got {language!r}")

        system_prompt = build_system_prompt(language, patient_context)
        return self._call_openai_with_retry(system_prompt, message.strip())

    def _call_openai_with_retry(self, system_prompt: str, message: str) -> str:
        """Call OpenAI API with automatic retry on failure"""
        for attempt in range(self.max_retries + 1):
            try:
                response = self.client.chat.completions.create(
                    model=self.model,
                    messages=[
                        {"role": "system", "content": system_prompt},
                        {"role": "user", "content": message},
                    ],
                    temperature=self.temperature,
                    max_tokens=2000
                )
                return response.choices[0].message.content or NO_RESPONSE_TEXT

            except Exception as e:
                if attempt < self.max_retries:
                    # Exponential backoff
                    wait_time = (2 ** attempt) * 2  # 2s, 4s, 8s
                    logger.warning(
                        "Assistant call failed (attempt %d/%d), retrying in %ds: %s",
                        attempt + 1, self.max_retries + 1, wait_time, e,
                    )
                    time.sleep(wait_time)
                else:
                    logger.error("Assistant call failed after %d attempts: %s", self.max_retries + 1, e)
                    raise AssistantError(
                        f"OpenAI API call failed after {self.max_retries + 1} attempts: {e}"
                    ) from e
