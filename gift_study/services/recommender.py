"""
Gift recommendation generators.

`OpenAIRecommender` asks the OpenAI API for a product, then generates the
three condition explanations and the product image in parallel.
`StaticRecommender` returns fixed content and needs no network access.
"""

import html
import json
import logging
import re
import time
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

from openai import OpenAI

from ..errors import GenerationError
from .conditions import CONDITIONS, Condition
from .models import Persona
from .prompts import EXPLANATION_PROMPTS, IMAGE_PROMPT, PRODUCT_PROMPT, TRANSLATE_PROMPT


logger = logging.getLogger(__name__)

# The only markup explanations may carry
_STRONG_TAG = re.compile(r"&lt;(/?)strong&gt;", re.IGNORECASE)


def sanitize_explanation(text: str) -> str:
    """Escape generated HTML, re-allowing bare <strong> and </strong> tags."""
    return _STRONG_TAG.sub(r"<\1strong>", html.escape(str(text), quote=False))


@dataclass
class Recommendation:
    product: Dict[str, Any]
    explanations: Dict[str, str]


def _response_text(resp: Any) -> str:
    """Pull the text out of a Responses API or Chat Completions result."""
    text = getattr(resp, 'output_text', None)
    if text:
        return text.strip()
    choices = getattr(resp, 'choices', None)
    if choices:
        return (choices[0].message.content or "").strip()
    return ""


def _parse_json(text: str) -> Dict[str, Any]:
    cleaned = text.strip()
    if cleaned.startswith("```"):
        cleaned = cleaned.strip("`")
        if cleaned.lower().startswith("json"):
            cleaned = cleaned[4:]
    data = json.loads(cleaned)
    if not isinstance(data, dict):
        raise ValueError("expected a JSON object")
    return data


class OpenAIRecommender:
    """Product and explanation generation through the OpenAI API."""

    def __init__(self, api_key: str, model: str = "gpt-5-mini",
                 fallback_models: Optional[List[str]] = None,
                 image_model: str = "dall-e-3", image_generation: bool = True,
                 timeout: float = 60.0, client: Any = None) -> None:
        self.api_key = api_key
        self.model = model
        self.fallback_models = fallback_models or []
        self.image_model = image_model
        self.image_generation = image_generation
        self.timeout = timeout
        self._client = client

    def _get_llm(self):
        if self._client is None:
            if not self.api_key:
                raise GenerationError("OPENAI_API_KEY is not configured")
            self._client = OpenAI(api_key=self.api_key, timeout=self.timeout)
        return self._client

    def _generate_text(self, prompt: str) -> str:
        """Run a prompt through the model chain, falling back on errors or empty output."""
        client = self._get_llm()
        tried = []
        last_err = None
        for m in [self.model] + self.fallback_models:
            if not m or m in tried:
                continue
            tried.append(m)
            try:
                t0 = time.time()
                if m.startswith("gpt-5"):
                    resp = client.responses.create(
                        model=m,
                        input=prompt,
                        reasoning={"effort": "minimal"},
                    )
                else:
                    resp = client.chat.completions.create(
                        model=m,
                        messages=[{"role": "user", "content": prompt}],
                        temperature=0.7,
                    )
                content = _response_text(resp)
                logger.debug("model=%s took %.0f ms", m, (time.time() - t0) * 1000)
                if content:
                    return content
                logger.warning("model=%s returned empty output", m)
            except Exception as e:
                last_err = e
                logger.warning("model=%s failed: %s: %s", m, type(e).__name__, e)
        raise GenerationError(f"Text generation failed (tried: {tried}, last error: {last_err})")

    def _generate_json(self, prompt: str) -> Dict[str, Any]:
        text = self._generate_text(prompt)
        try:
            return _parse_json(text)
        except ValueError as e:
            logger.error("Model output is not JSON: %r", text[:200])
            raise GenerationError("Model output could not be parsed") from e

    def recommend_product(self, persona: Persona) -> Dict[str, Any]:
        result = self._generate_json(PRODUCT_PROMPT.format(
            age=persona.age,
            gender=persona.gender,
            price_range=persona.price_range,
            emotional_state=persona.emotional_state or '-',
        ))
        features = result.get('features') or []
        if not result.get('name') or not isinstance(features, list):
            raise GenerationError("Product recommendation is missing fields")
        try:
            price = int(result.get('price') or 0)
        except (TypeError, ValueError):
            price = 0
        return {
            'name': str(result['name']),
            'price': price,
            'description': str(result.get('description', '')),
            'features': [str(f) for f in features],
            'imageUrl': '',
        }

    def generate_explanation(self, condition: Condition, persona: Persona,
                             product: Dict[str, Any]) -> str:
        prompt = EXPLANATION_PROMPTS[condition.value].format(
            product_name=product['name'],
            top_features=", ".join(product['features'][:3]),
            features=", ".join(product['features']),
            gender=persona.gender,
            age=persona.age,
            name=persona.name,
            emotional_state=persona.emotional_state or '-',
        )
        explanation = self._generate_json(prompt).get('explanation')
        if not explanation:
            raise GenerationError(f"Empty explanation for {condition.value}")
        return explanation

    def generate_explanations(self, persona: Persona, product: Dict[str, Any]) -> Dict[str, str]:
        """Generate all three explanations concurrently."""
        with ThreadPoolExecutor(max_workers=len(CONDITIONS)) as pool:
            futures = {c: pool.submit(self.generate_explanation, c, persona, product)
                       for c in CONDITIONS}
            return {c.value: f.result() for c, f in futures.items()}

    def generate_image(self, product: Dict[str, Any]) -> str:
        """Product image URL, or '' when disabled or generation fails."""
        if not self.image_generation:
            return ''
        try:
            english_name = self._generate_text(
                TRANSLATE_PROMPT.format(product_name=product['name'])) or product['name']
            resp = self._get_llm().images.generate(
                model=self.image_model,
                prompt=IMAGE_PROMPT.format(product_name=english_name),
                n=1,
                size="1024x1024",
            )
            return resp.data[0].url or ''
        except Exception as e:
            logger.warning("Image generation failed for %s: %s", product.get('name'), e)
            return ''

    def recommend(self, persona: Persona) -> Recommendation:
        t0 = time.time()
        product = self.recommend_product(persona)
        with ThreadPoolExecutor(max_workers=2) as pool:
            explanations_future = pool.submit(self.generate_explanations, persona, product)
            image_future = pool.submit(self.generate_image, product)
            explanations = explanations_future.result()
            product['imageUrl'] = image_future.result()
        logger.info("Generated recommendation '%s' in %.1f s", product['name'], time.time() - t0)
        return Recommendation(product=product, explanations=explanations)


class StaticRecommender:
    """Fixed recommendation for offline runs and tests."""

    def recommend(self, persona: Persona) -> Recommendation:
        product = {
            'name': 'Aroma Diffuser Gift Set',
            'price': 34000,
            'description': 'Ultrasonic diffuser with three essential oils.',
            'features': ['Quiet ultrasonic mist', 'Mood lighting', 'Auto shut-off'],
            'imageUrl': '',
        }
        explanations = {
            Condition.FEATURE_FOCUSED.value: (
                'This diffuser offers a <strong>quiet ultrasonic mist</strong>, '
                '<strong>mood lighting</strong> and an <strong>auto shut-off</strong>.'),
            Condition.PROFILE_BASED.value: (
                f'<strong>{persona.age}</strong>-year-old <strong>{persona.gender}</strong> '
                'recipients rate this set highly; 72% of buyers in that group reordered it.'),
            Condition.CONTEXT_BASED.value: (
                f'For {persona.name}, this gift says <strong>rest</strong> and '
                '<strong>care</strong>. It turns a <strong>busy day</strong> into a '
                '<strong>calm evening</strong>.'),
        }
        return Recommendation(product=product, explanations=explanations)


def build_recommender(config: Dict[str, Any]):
    """Recommender selected by RECOMMENDER_BACKEND."""
    backend = config.get('RECOMMENDER_BACKEND', 'openai')
    if backend == 'static':
        return StaticRecommender()
    if backend == 'openai':
        return OpenAIRecommender(
            api_key=config.get('OPENAI_API_KEY', ''),
            model=config.get('OPENAI_MODEL', 'gpt-5-mini'),
            fallback_models=config.get('OPENAI_FALLBACK_MODELS', []),
            image_model=config.get('OPENAI_IMAGE_MODEL', 'dall-e-3'),
            image_generation=config.get('IMAGE_GENERATION', True),
            timeout=config.get('GENERATION_TIMEOUT', 60.0),
        )
    raise ValueError(f"Unknown RECOMMENDER_BACKEND: {backend}")
