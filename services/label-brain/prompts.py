"""Prompt for interpreting wine label OCR text.

The OCR transcript is embedded verbatim. Output must be a single JSON object
so the interpretation step can validate it against the field schema.
"""

_JSON_SUFFIX = """

CRITICAL OUTPUT RULES:
- Return ONLY a single valid JSON object. No other text before or after.
- Do NOT include any thinking, preamble, explanation, or markdown formatting.
- Do NOT wrap in code fences. Just raw JSON.
- If a field is not clearly present on the label, omit it entirely from the JSON."""

LABEL_PROMPT = """You are an expert sommelier. Analyze the OCR text of a wine label and extract structured information.

OCR TEXT:
{ocr_text}

Extract the following fields if present. For every field you include, return an object with:
- "value": the extracted value, as a string
- "confidence": a number from 0 to 1 saying how sure you are of the extraction

Use EXACTLY these keys:
- "name": wine name (e.g. "Barolo Monfortino", "Chianti Classico Riserva")
- "producer": producer or winery (e.g. "Giacomo Conterno", "Antinori")
- "vintage": harvest year (e.g. "2018")
- "type": one of red, white, rosé, sparkling, dessert, fortified
- "region": region or appellation (e.g. "Piemonte", "Toscana", "Bordeaux")
- "country": country (e.g. "Italia", "France")
- "alcoholContent": alcohol by volume without the % sign (e.g. "14.5")
- "grapes": grape variety or varieties, comma-separated (e.g. "Sangiovese, Cabernet Sauvignon")

Rules:
1. If a piece of information is not clearly present, leave the field out
2. Infer the type from the grape or the appellation when it is not printed
3. Normalize names (proper capitalization, no odd abbreviations)
4. Confidence should be high (>0.8) only when the text is clearly legible; use lower values otherwise

Example output:
{
  "name": {"value": "Barolo Monfortino", "confidence": 0.95},
  "producer": {"value": "Giacomo Conterno", "confidence": 0.90},
  "vintage": {"value": "2016", "confidence": 0.98},
  "type": {"value": "red", "confidence": 0.95},
  "region": {"value": "Piemonte", "confidence": 0.85},
  "country": {"value": "Italia", "confidence": 0.90}
}""" + _JSON_SUFFIX


def build_label_prompt(ocr_text: str) -> str:
    """Embed the OCR transcript in the label prompt."""
    return LABEL_PROMPT.replace("{ocr_text}", ocr_text, 1)
