"""
Prompt templates for product and explanation generation.
"""

PRODUCT_PROMPT = """Recommend one gift for a {age}-year-old {gender} recipient.
Budget: {price_range}.
Reason for the gift: {emotional_state}

Answer with JSON only:
{{"name": "product name", "price": 30000, "description": "short description", "features": ["feature 1", "feature 2", "feature 3"]}}"""

# One template per condition. Each must answer {"explanation": "..."}.
EXPLANATION_PROMPTS = {
    'featureFocused': """Write a recommendation explanation following these rules:
1. Output JSON only with a single key "explanation".
2. 180 to 200 characters.
3. Objective and neutral tone.
4. Wrap words describing product features in <strong> tags.

Input:
- Product: {product_name}
- Top features: {top_features}""",

    'profileBased': """Write a recommendation explanation following these rules:
1. Output JSON only with a single key "explanation".
2. 200 to 250 characters.
3. Wrap age, gender and behavioural indicators in <strong> tags.
4. Refer only to buyers of the same gender and age group as the recipient and
   include one purchase statistic (%) for that group.

Input:
- Product: {product_name}
- Top features: {top_features}
- Recipient gender: {gender}
- Recipient age: {age}
- Recipient name: {name}""",

    'contextBased': """Write a recommendation explanation following these rules:
1. Output JSON only with a single key "explanation".
2. 200 to 250 characters, exactly three sentences.
3. Wrap exactly four keywords about the gift intent in <strong> tags.

Input:
- Reason for the gift: {emotional_state}
- Product: {product_name}
- Features: {features}""",
}

TRANSLATE_PROMPT = """Translate this product name to English for image generation: "{product_name}"

Return only the English product name, nothing else."""

IMAGE_PROMPT = (
    "Professional product photography of {product_name}. High-quality commercial "
    "product shot with clean white background, studio lighting, centered composition, "
    "no text or labels visible. Modern product photography style."
)
