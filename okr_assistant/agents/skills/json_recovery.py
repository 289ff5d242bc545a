"""
JSON Repair Skill

Recovers JSON objects from model output: trims surrounding prose, repairs the
formatting slips models commonly make (json_repair), and extracts fenced
```json blocks.

Reusability: intent analysis, function-calling post-processing
"""

from dataclasses import dataclass
from typing import Any, Dict, Optional
import json
import logging
import re

from json_repair import repair_json

logger = logging.getLogger(__name__)

_FENCED_JSON = re.compile(r"```json\s*(.*?)\s*```", re.DOTALL | re.IGNORECASE)


def trim_to_object(text: str) -> str:
    """Drop anything before the first '{' and after the last '}'"""
    start = text.find('{')
    end = text.rfind('}')
    if start == -1 or end == -1 or end < start:
        return text.strip()
    return text[start:end + 1]


def parse_json_object(text: str) -> Optional[Dict[str, Any]]:
    """
    Parse the JSON object embedded in model output.

    Valid JSON is parsed as-is; the trimmed text is repaired only when it
    does not parse, so well-formed string values are never rewritten.

    Returns:
        The parsed object, or None when no object can be recovered
    """
    candidate = trim_to_object(text)
    try:
        parsed = json.loads(candidate)
    except json.JSONDecodeError:
        logger.debug("Model output is not valid JSON, attempting repair")
        try:
            parsed = json.loads(repair_json(candidate))
        except json.JSONDecodeError:
            return None
    return parsed if isinstance(parsed, dict) else None


@dataclass
class FencedJson:
    """Result of looking for a ```json block in a response"""
    found: bool
    payload: Any = None
    error: Optional[str] = None


def extract_fenced_json(text: str) -> FencedJson:
    """
    Find and parse the first ```json fenced block.

    Args:
        text: Raw model response

    Returns:
        FencedJson; `found` is False when no block is present, `error` is set
        when a block is present but does not parse
    """
    if "```json" not in text.lower():
        return FencedJson(found=False)

    match = _FENCED_JSON.search(text)
    if match:
        body = match.group(1)
    else:
        # Unterminated fence: take everything after the opening marker
        body = text[text.lower().index("```json") + len("```json"):].replace("```", "")

    try:
        return FencedJson(found=True, payload=json.loads(body.strip()))
    except json.JSONDecodeError as e:
        logger.warning(f"Fenced JSON block could not be parsed: {str(e)}")
        return FencedJson(found=True, error=str(e))
