"""
Extraction of the structured action from the assistant's raw reply.

The model is asked to answer with a bare JSON object
``{"response": str, "actions": {...}}`` but routinely wraps it in Markdown
fences, prefixes it with ``json`` or surrounds it with prose. ``parse`` strips
that noise and never raises: anything it cannot decode is returned as a plain
text reply without an action.
"""
import json, logging, re
from typing import Any, Optional

from pydantic import ValidationError

from .schema import ModelPayload, ParsedAction, ParsedResponse

logger = logging.getLogger(__name__)

LEADING_FENCE = re.compile(r"^\s*```(?:json)?\s*", re.IGNORECASE)
TRAILING_FENCE = re.compile(r"\s*```\s*$")
LEADING_JSON_TOKEN = re.compile(r'^"?json(?=[\s{])\s*', re.IGNORECASE)


def clean_payload(raw: str) -> str:
    text = (raw or "").strip()
    text = LEADING_FENCE.sub("", text, count=1)
    text = TRAILING_FENCE.sub("", text, count=1)
    text = LEADING_JSON_TOKEN.sub("", text, count=1)
    # first "{" to last "}", keeps nested objects intact
    start = text.find("{")
    end = text.rfind("}")
    if start != -1 and end != -1 and start < end:
        text = text[start : end + 1]
    return text


def _fallback(raw: str) -> ParsedResponse:
    return ParsedResponse(reply_text=raw, action=None)


def _parse_action(actions: Any) -> Optional[ParsedAction]:
    if actions is None:
        return None
    if not isinstance(actions, dict):
        logger.warning("Actions ignorées (objet attendu): %r", actions)
        return None
    try:
        action = ParsedAction.model_validate(actions)
    except ValidationError as exc:
        logger.warning("Actions invalides ignorées: %s", exc)
        return None
    if action.reasoning:
        logger.info("Raisonnement de l'assistant: %s", action.reasoning)
    if action.is_empty():
        return None
    return action


def parse(raw_text: str) -> ParsedResponse:
    cleaned = clean_payload(raw_text)
    logger.debug("Réponse nettoyée pour parsing: %s", cleaned)
    try:
        data = json.loads(cleaned)
    except json.JSONDecodeError as exc:
        logger.warning("Réponse non JSON, traitée comme texte (%s): %r", exc, raw_text)
        return _fallback(raw_text)
    if not isinstance(data, dict):
        logger.warning("Réponse JSON sans objet racine, traitée comme texte: %r", raw_text)
        return _fallback(raw_text)
    try:
        payload = ModelPayload.model_validate(data)
    except ValidationError:
        logger.warning("Champ 'response' absent ou invalide, traitée comme texte: %r", raw_text)
        return _fallback(raw_text)
    return ParsedResponse(reply_text=payload.response, action=_parse_action(payload.actions))
