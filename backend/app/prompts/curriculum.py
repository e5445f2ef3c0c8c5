"""Prompt templates for curriculum linking, link validation and content review."""

LINKING_SYSTEM_PROMPT = "You are a precise curriculum mapper. Output only valid JSON."

LINKING_PROMPT = """You are a curriculum expert. I have educational content items for the app "{app_id}".
I need to link each item to exactly ONE relevant "Kompetenzstufe" from the provided list.

AVAILABLE CURRICULUM NODES:
{node_summaries}

CONTENT ITEMS TO CLASSIFY:
{content_summaries}

TASK:
Return a JSON object where keys are Content IDs (strings) and values are the Node ID (number) that best fits.
If multiple fit, pick the most specific one. If none fit well, set value to null.

Example response format:
{{
  "123": 456,
  "124": 789,
  "125": null
}}

Return ONLY JSON."""

VALIDATION_SYSTEM_PROMPT = "You judge whether an educational app can practise a curriculum goal. Output only valid JSON."

VALIDATION_PROMPT = """Resource: Educational App "{app_id}"
Description: {capability_spec}

Curriculum Goal: {code} - {title}
Description: {description}

Task: Is this app a VALID way to practice this specific curriculum goal?
- If the goal requires visual comparison of objects, and the app is abstract arithmetic -> NO.
- If the goal requires geometry, and the app is arithmetic -> NO.
- If the goal requires prime factorization, and the app is simple +-*/ -> NO.
- If the app covers the core skill (e.g. "solve addition problems") -> YES.

Answer strictly with JSON: {{ "valid": boolean, "reason": "short explanation" }}"""

# Keys are matched as written in the stored JSON; the ASCII transliterations
# are how several apps spell their keys.
REVIEW_LANGUAGE_RULE = (
    "IMPORTANT: Verify that the content uses Standard German spelling conventions "
    "(e.g., use 'ß' where appropriate). However, do NOT flag spelling errors in JSON "
    "property names (keys). Specifically, treat 'ae' vs 'ä', 'ue' vs 'ü', and 'oe' vs 'ö' "
    "as valid variations in keys (e.g., 'praeteritum' is acceptable)."
)

REVIEW_SYSTEM_PROMPT = "You are a strict educational content reviewer. " + REVIEW_LANGUAGE_RULE

REVIEW_PROMPT = """You are a Data Quality Auditor.
Review the following learning task for correctness.

App ID: {app_id}
Task Content JSON: {content_json}

Verify the question statement and the answer key.
If the question contains errors (spelling, factual, mathematical) or the answer key is wrong, mark it as FAILED.
Otherwise mark it PASS.

Return JSON:
{{
    "status": "PASS" | "FAILED",
    "reason": "string (if failed)",
    "correction": "object (the fully corrected content JSON object, exactly as it should be in the database)"
}}"""
