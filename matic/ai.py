import json
import logging
import re
import time
from datetime import date
from typing import Callable, Sequence, TypeVar

import openai
from flask import current_app, has_app_context
from openai import OpenAI

from matic.nutrition import ValidationThresholds, reconcile_foods, sum_estimates

logger = logging.getLogger(__name__)

T = TypeVar("T")

_DATA_URL_PREFIX_RE = re.compile(r"^data:(image/[a-z0-9.+-]+);base64,", re.IGNORECASE)
_BASE64_RE = re.compile(r"^[A-Za-z0-9+/]*={0,2}$")
DEFAULT_IMAGE_MIME_TYPE = "image/jpeg"
_OVERLOAD_MARKERS = ("overloaded", "sobrecargado")

FOOD_IMAGE_PROMPT = """Analiza esta imagen de comida e identifica unicamente los alimentos y sus porciones estimadas en formato JSON:

{
  "foods": [
    {
      "name": "nombre del alimento en español (simple y comun)",
      "estimated_portion": "peso estimado en gramos (ej: 150g, 200g, 50g)",
      "confidence": nivel_de_confianza_del_0_al_1
    }
  ],
  "suggestions": ["consejos nutricionales breves en español"]
}

Instrucciones importantes:
- Identifica TODOS los alimentos visibles en la imagen
- Usa nombres SIMPLES y COMUNES (ej: "aguacate", "miel", "pan", "pollo")
- Estima el PESO EN GRAMOS de cada porcion de manera realista
- NO incluyas informacion nutricional (calorias, proteinas, etc.)
- Si hay multiples elementos del mismo alimento, agregalos como elementos separados
- Incluye 2-3 consejos nutricionales relevantes
- Responde SOLO con el JSON, sin texto adicional"""

RECEIPT_PROMPT = """Analiza este recibo/ticket de compra y extrae la siguiente información en formato JSON exacto:

{
  "store_name": "nombre del establecimiento",
  "date": "fecha en formato YYYY-MM-DD",
  "total_amount": monto_total_numérico,
  "items": [
    {
      "product_name": "nombre del producto",
      "quantity": "cantidad (ej: 1x, 2 unidades, 500g)",
      "unit_price": precio_unitario_numérico,
      "total_price": precio_total_numérico
    }
  ],
  "payment_method": "método de pago (efectivo, tarjeta, etc.)",
  "confidence": nivel_de_confianza_del_0_al_1
}

Instrucciones importantes:
- Extrae TODOS los productos visibles en el recibo
- Para la fecha: busca la fecha EXACTA del ticket (no la de vencimiento)
- Si encuentras una fecha como "27/7/2025", conviértela a "2025-07-27"
- Convierte todos los precios a números sin símbolos de moneda
- Si no puedes determinar algún campo, usa null
- Responde SOLO con el JSON, sin texto adicional"""

CHAT_SYSTEM_PROMPT = """Eres NutriAI, un asistente nutricional amigable. Tu trabajo es:
1. Ayudar a los usuarios con sus objetivos nutricionales
2. Analizar sus habitos alimenticios y dar consejos practicos
3. Proponer comidas balanceadas que se ajusten a sus objetivos diarios
Responde en español, de forma concisa y motivadora."""


class AIServiceError(RuntimeError):
    pass


def is_overloaded_message(message: str) -> bool:
    text = (message or "").lower()
    return any(marker in text for marker in _OVERLOAD_MARKERS)


def call_with_overload_retry(
    func: Callable[[], T],
    *,
    delay: float = 5.0,
    sleep: Callable[[float], None] = time.sleep,
) -> T:
    """Run ``func``; if it fails with an "overloaded" message, wait once and retry once."""
    try:
        return func()
    except RuntimeError as exc:
        if not is_overloaded_message(str(exc)):
            raise
        logger.warning("AI service overloaded, retrying once in %.1fs", delay)
    sleep(delay)
    return func()


def _setting(name: str, default=None):
    if has_app_context():
        return current_app.config.get(name, default)
    return default


def _client() -> OpenAI:
    api_key = _setting("OPENAI_API_KEY")
    if not api_key:
        raise AIServiceError("OPENAI_API_KEY is not configured.")
    return OpenAI(api_key=api_key)


def _status_message(status_code: int | None, detail: str = "") -> str:
    if status_code == 429:
        return "OpenAI request limit exceeded. Check the plan and billing settings."
    if status_code == 401:
        return "OpenAI API key is invalid. Check the configuration."
    if status_code == 403:
        return "Access denied by OpenAI. Check that the account has credits available."
    if status_code in (503, 529) or is_overloaded_message(detail):
        return "The AI service is overloaded right now. Please try again shortly."
    return f"OpenAI service error: {status_code}"


def _create_response(client, **kwargs) -> str:
    try:
        response = client.responses.create(**kwargs)
    except openai.APIStatusError as exc:
        logger.warning("OpenAI returned %s: %s", exc.status_code, exc.message)
        raise AIServiceError(_status_message(exc.status_code, exc.message)) from exc
    except openai.APIConnectionError as exc:
        raise AIServiceError("Could not reach the AI service.") from exc
    except openai.OpenAIError as exc:
        raise AIServiceError(f"AI service error: {exc}") from exc
    return response.output_text or ""


def _extract_json_object(raw_text: str) -> dict:
    text = (raw_text or "").strip()
    if not text:
        return {}

    if text.startswith("```"):
        text = re.sub(r"^```[a-zA-Z0-9]*\s*", "", text)
        text = re.sub(r"\s*```$", "", text)

    try:
        parsed = json.loads(text)
        if isinstance(parsed, dict):
            return parsed
    except json.JSONDecodeError:
        pass

    match = re.search(r"\{[\s\S]*\}", text)
    if not match:
        return {}
    try:
        parsed = json.loads(match.group(0))
        return parsed if isinstance(parsed, dict) else {}
    except json.JSONDecodeError:
        return {}


def _as_float(value) -> float | None:
    if value in (None, "") or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return float(value)
    match = re.search(r"-?\d+(?:[.,]\d+)?", str(value))
    if not match:
        return None
    try:
        return float(match.group(0).replace(",", "."))
    except ValueError:
        return None


def clean_base64_image(image_b64: str) -> str:
    if not image_b64:
        raise ValueError("No image data provided.")
    cleaned = _DATA_URL_PREFIX_RE.sub("", image_b64.strip())
    cleaned = re.sub(r"\s+", "", cleaned)
    if not cleaned or not _BASE64_RE.match(cleaned):
        raise ValueError("Invalid base64 image format.")
    return cleaned


def image_mime_type(image_b64: str) -> str:
    match = _DATA_URL_PREFIX_RE.match(str(image_b64 or "").strip())
    return match.group(1).lower() if match else DEFAULT_IMAGE_MIME_TYPE


def _vision_input(prompt: str, image_b64: str, mime_type: str = DEFAULT_IMAGE_MIME_TYPE) -> list[dict]:
    return [
        {
            "role": "user",
            "content": [
                {"type": "input_text", "text": prompt},
                {"type": "input_image", "image_url": f"data:{mime_type};base64,{image_b64}"},
            ],
        }
    ]


def analyze_food_image(
    image_b64: str,
    lookup=None,
    thresholds: ValidationThresholds | None = None,
    client=None,
) -> dict:
    cleaned = clean_base64_image(image_b64)
    client = client or _client()
    model = _setting("OPENAI_VISION_MODEL", "gpt-4.1-mini")

    vision_input = _vision_input(FOOD_IMAGE_PROMPT, cleaned, image_mime_type(image_b64))
    raw = _create_response(client, model=model, input=vision_input)
    parsed = _extract_json_object(raw)
    foods = parsed.get("foods")
    if not isinstance(foods, list):
        logger.warning("Food analysis without a foods list: %.200s", raw)
        raise AIServiceError("The analysis did not return a valid list of foods.")

    estimates = reconcile_foods(foods, lookup, thresholds)
    suggestions = [str(item).strip() for item in (parsed.get("suggestions") or []) if str(item).strip()]

    result = {"foods": [estimate.to_dict() for estimate in estimates]}
    result.update(sum_estimates(estimates))
    result["suggestions"] = suggestions
    return result


def receipt_fallback(today: date | None = None) -> dict:
    return {
        "store_name": "Análisis manual requerido",
        "date": (today or date.today()).isoformat(),
        "total_amount": 0.0,
        "items": [
            {
                "product_name": "Producto no identificado",
                "quantity": "1x",
                "unit_price": 0.0,
                "total_price": 0.0,
            }
        ],
        "payment_method": "No especificado",
        "confidence": 0.1,
        "note": "The receipt could not be read automatically. Please review and complete the details.",
    }


def _normalize_receipt_date(value, today: date) -> str:
    text = str(value or "").strip()
    try:
        return date.fromisoformat(text[:10]).isoformat()
    except ValueError:
        pass

    match = re.match(r"^(\d{1,2})[/.-](\d{1,2})[/.-](\d{4})$", text)
    if match:
        day_part, month_part, year_part = (int(part) for part in match.groups())
        try:
            return date(year_part, month_part, day_part).isoformat()
        except ValueError:
            pass
    return today.isoformat()


def normalize_receipt(parsed: dict, today: date | None = None) -> dict:
    today = today or date.today()

    items = []
    for row in parsed.get("items") or []:
        if not isinstance(row, dict):
            continue
        product_name = str(row.get("product_name") or "").strip()[:255]
        if not product_name:
            continue
        items.append(
            {
                "product_name": product_name,
                "quantity": str(row.get("quantity") or "").strip()[:60] or None,
                "unit_price": _as_float(row.get("unit_price")),
                "total_price": _as_float(row.get("total_price")),
            }
        )

    total = _as_float(parsed.get("total_amount"))
    if total is None:
        total = round(sum(item["total_price"] or 0 for item in items), 2)

    confidence = _as_float(parsed.get("confidence"))
    confidence = 0.5 if confidence is None else max(0.0, min(1.0, confidence))

    return {
        "store_name": str(parsed.get("store_name") or "").strip()[:255] or None,
        "date": _normalize_receipt_date(parsed.get("date"), today),
        "total_amount": max(0.0, total),
        "items": items,
        "payment_method": str(parsed.get("payment_method") or "").strip()[:60] or None,
        "confidence": confidence,
    }


def analyze_receipt_image(image_b64: str, client=None, today: date | None = None) -> dict:
    cleaned = clean_base64_image(image_b64)
    client = client or _client()
    model = _setting("OPENAI_RECEIPT_MODEL", "gpt-4o")

    vision_input = _vision_input(RECEIPT_PROMPT, cleaned, image_mime_type(image_b64))
    raw = _create_response(client, model=model, input=vision_input)
    parsed = _extract_json_object(raw)
    if not parsed:
        logger.info("Receipt analysis returned no JSON, using manual-review fallback")
        return receipt_fallback(today)
    return normalize_receipt(parsed, today)


def build_chat_instructions(context: dict | None) -> str:
    context = context or {}
    lines = [CHAT_SYSTEM_PROMPT]

    user_name = context.get("user_name")
    if user_name:
        lines.append(f"\nUsuario: {user_name}")

    goals = context.get("goals")
    if goals:
        lines.append("Objetivos diarios:")
        lines.append(f"- Calorías: {goals.get('daily_calories')} kcal")
        lines.append(f"- Proteína: {goals.get('daily_protein')} g")
        lines.append(f"- Carbohidratos: {goals.get('daily_carbs')} g")
        lines.append(f"- Grasas: {goals.get('daily_fat')} g")

    today = context.get("today")
    if today:
        lines.append("Consumido hoy:")
        lines.append(
            f"- {today.get('calories', 0)} kcal, {today.get('protein', 0)} g proteína, "
            f"{today.get('carbs', 0)} g carbohidratos, {today.get('fat', 0)} g grasas"
        )
    return "\n".join(lines)


def nutrition_chat(text: str, history: Sequence[dict] | None = None, context: dict | None = None, client=None) -> str:
    text = (text or "").strip()
    if not text:
        raise ValueError("Message text is required.")

    client = client or _client()
    model = _setting("OPENAI_CHAT_MODEL", "gpt-4.1-mini")

    messages = []
    for turn in (history or [])[-20:]:
        role = turn.get("role")
        content = str(turn.get("content") or "").strip()
        if role in {"user", "assistant"} and content:
            messages.append({"role": role, "content": content})
    messages.append({"role": "user", "content": text})

    reply = _create_response(
        client,
        model=model,
        instructions=build_chat_instructions(context),
        input=messages,
    ).strip()
    return reply or "No pude generar una respuesta. Intenta de nuevo."
