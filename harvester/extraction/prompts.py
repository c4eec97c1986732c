"""Prompt template for per-chunk structured extraction."""

from __future__ import annotations

from harvester.scraper.models import FieldSpec

# The instruction block is the main guard against invented records: keep
# "only literal values", "only a JSON array" and "empty array if nothing".
_EXTRACTION_TEMPLATE = """\
You are a web scraping assistant. Extract the requested information from the web content.

User Request: "{request}"
Target: {target}
Fields to extract: {fields}

Web Content:
{chunk}

CRITICAL INSTRUCTIONS:
- Return ONLY a valid JSON array, no additional text, explanations, or markdown
- Do not include any text before or after the JSON array
- Each element must be a JSON object whose keys are the requested field names
- Extract ONLY values that appear literally in the web content above - NEVER use example, placeholder, or generic data
- DO NOT invent names like "Product Name" or "Another Product"
- Copy prices in their original format (e.g. $29.99, €25.50, £19.99) ONLY if they appear in the content
- Use null for a requested field that is not present for an entity
- If no qualifying {target} are found in the content, return an empty array []
- If the content is insufficient (like "Just a moment..." or very short text), return an empty array []
- Return as many distinct items as are present (up to 50). Do not omit items.

Return only the JSON array with real data extracted from the content above:"""


def build_extraction_prompt(chunk: str, field_spec: FieldSpec, original_prompt: str) -> str:
    """Return the completion prompt for a single *chunk*."""
    return _EXTRACTION_TEMPLATE.format(
        request=original_prompt,
        target=field_spec.target,
        fields=", ".join(field_spec.fields),
        chunk=chunk,
    )
