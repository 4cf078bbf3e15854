import json
import logging
import os
from typing import Any, Dict, List, Optional, Sequence

import httpx

from .schema import Catalog, Turn

logger = logging.getLogger(__name__)


class LLMError(RuntimeError):
    """LLM interaction failure."""


class LLMTimeout(LLMError):
    """LLM did not answer within LLM_TIMEOUT."""


DEFAULT_MODEL = os.getenv("LLM_MODEL", "gpt-4-turbo-preview")
DEFAULT_TIMEOUT_SEC = float(os.getenv("LLM_TIMEOUT", "15"))
DEFAULT_TEMPERATURE = float(os.getenv("LLM_TEMPERATURE", "0.7"))
DEFAULT_MAX_TOKENS = int(os.getenv("LLM_MAX_TOKENS", "500"))

BASE_URLS = {
    "openai": "https://api.openai.com/v1",
    "groq": "https://api.groq.com/openai/v1",
}


def _provider() -> str:
    provider = (os.getenv("LLM_PROVIDER") or "").strip().lower()
    if provider:
        return provider
    if os.getenv("OPENAI_API_KEY") or os.getenv("LLM_API_KEY"):
        return "openai"
    return ""


def llm_enabled() -> bool:
    provider = _provider()
    if not provider or provider in {"none", "off"}:
        return False
    if provider == "stub":
        return True
    return bool(_api_key(provider))


def _api_key(provider: str) -> Optional[str]:
    if provider == "groq":
        return os.getenv("GROQ_API_KEY") or os.getenv("LLM_API_KEY")
    return os.getenv("OPENAI_API_KEY") or os.getenv("LLM_API_KEY")


def _http_client(timeout: float) -> httpx.Client:
    return httpx.Client(timeout=timeout)


def system_prompt(catalog: Optional[Catalog]) -> str:
    menu = (
        json.dumps(catalog.model_dump(by_alias=True), ensure_ascii=False, indent=2)
        if catalog is not None
        else "Menu non disponible"
    )
    categories = "|".join(list(catalog.menu.keys()) + ["all"]) if catalog is not None else "all"
    return (
        "Tu es Fred, un serveur digital dans un restaurant. "
        "Tu comprends les demandes des clients et tu adaptes l'affichage du menu pour leur montrer ce qu'ils veulent voir.\n\n"
        f"MENU DISPONIBLE :\n{menu}\n\n"
        "Tu peux changer la catégorie affichée, appliquer des filtres (végétarien, vegan, halal, sans fromage, "
        "populaire, sans allergènes), signaler des filtres personnalisés et recommander des plats.\n"
        "Quand tu envoies des filtres, ils remplacent entièrement les filtres actuels.\n\n"
        "Réponds UNIQUEMENT avec un objet JSON brut, sans balises markdown ni préfixe, au format :\n"
        "{\n"
        '  "response": "ta réponse naturelle et chaleureuse",\n'
        '  "actions": {\n'
        f'    "category": "{categories}",\n'
        '    "filters": {"vegetarian": bool, "vegan": bool, "halal": bool, "noCheese": bool, "popular": bool, "noAllergens": bool},\n'
        '    "customFilters": {"withCheese": bool, "withMeat": bool, "spicy": bool},\n'
        '    "recommendedItems": [id, ...],\n'
        '    "showItems": [id, ...],\n'
        '    "reasoning": "pourquoi tu as pris ces décisions"\n'
        "  }\n"
        "}\n"
        "Omets les champs d'action dont tu n'as pas besoin. "
        'Exemple : "Je suis végétarien" -> {"response": "...", "actions": {"filters": {"vegetarian": true}}}'
    )


def _build_messages(utterance: str, catalog: Optional[Catalog], history: Sequence[Turn]) -> List[Dict[str, str]]:
    messages = [{"role": "system", "content": system_prompt(catalog)}]
    messages.extend({"role": turn.role, "content": turn.text} for turn in history)
    messages.append({"role": "user", "content": utterance})
    return messages


def _stub_response() -> str:
    stub = os.getenv("LLM_STUB_RESPONSE")
    if stub:
        return stub
    return json.dumps(
        {
            "response": "Le mode démonstration est actif. Configurez OPENAI_API_KEY pour parler avec Fred.",
            "actions": {"reasoning": "Réponse générée localement sans LLM."},
        },
        ensure_ascii=False,
    )


def _chat_request(messages: List[Dict[str, str]], model: str, provider: str) -> str:
    api_key = _api_key(provider)
    if not api_key:
        raise LLMError(f"Clé API manquante pour le fournisseur {provider}.")
    base_url = (os.getenv("LLM_BASE_URL") or BASE_URLS.get(provider) or "").rstrip("/")
    if not base_url:
        raise LLMError("Pour les fournisseurs génériques, LLM_BASE_URL est requis.")
    url = f"{base_url}/chat/completions"
    payload: Dict[str, Any] = {
        "model": model,
        "messages": messages,
        "max_tokens": DEFAULT_MAX_TOKENS,
        "temperature": DEFAULT_TEMPERATURE,
        "presence_penalty": 0.1,
        "frequency_penalty": 0.1,
    }
    headers = {
        "Authorization": f"Bearer {api_key}",
        "Content-Type": "application/json",
    }
    try:
        with _http_client(DEFAULT_TIMEOUT_SEC) as client:
            response = client.post(url, json=payload, headers=headers)
            try:
                response.raise_for_status()
            except httpx.HTTPStatusError as exc:
                raise LLMError(
                    f"Erreur HTTP {exc.response.status_code} du service IA: {exc.response.text}"
                ) from exc
            data = response.json()
    except httpx.TimeoutException as exc:
        raise LLMTimeout(f"Le service IA n'a pas répondu en {DEFAULT_TIMEOUT_SEC:g}s.") from exc
    except httpx.HTTPError as exc:
        raise LLMError(f"Impossible de contacter le service IA: {exc}") from exc
    except json.JSONDecodeError as exc:
        raise LLMError("Réponse du service IA illisible.") from exc
    try:
        content = data["choices"][0]["message"]["content"]
    except (KeyError, IndexError, TypeError) as exc:
        raise LLMError("Réponse du service IA sans contenu.") from exc
    if not content:
        raise LLMError("Réponse IA vide.")
    return content


def request_reply(utterance: str, catalog: Optional[Catalog], history: Sequence[Turn]) -> str:
    """Return the assistant's raw text; callers must not assume it is valid JSON."""
    provider = _provider()
    if provider == "stub":
        return _stub_response()
    if not llm_enabled():
        raise LLMError("Assistant IA non configuré (LLM_PROVIDER / OPENAI_API_KEY).")
    messages = _build_messages(utterance, catalog, history)
    logger.debug("Appel %s (%s messages)", provider, len(messages))
    return _chat_request(messages, DEFAULT_MODEL, provider)
