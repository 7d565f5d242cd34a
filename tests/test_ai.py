import json
import unittest
from datetime import date
from types import SimpleNamespace

import httpx
import openai

from matic.ai import (
    AIServiceError,
    analyze_food_image,
    analyze_receipt_image,
    build_chat_instructions,
    call_with_overload_retry,
    clean_base64_image,
    image_mime_type,
    normalize_receipt,
    nutrition_chat,
)

IMAGE_B64 = "aGVsbG8gd29ybGQ="


class StubResponses:
    def __init__(self, *outputs):
        self.outputs = list(outputs)
        self.calls = []

    def create(self, **kwargs):
        self.calls.append(kwargs)
        output = self.outputs.pop(0)
        if isinstance(output, Exception):
            raise output
        return SimpleNamespace(output_text=output)


def stub_client(*outputs):
    return SimpleNamespace(responses=StubResponses(*outputs))


def _status_error(status_code, message="error"):
    request = httpx.Request("POST", "https://api.openai.com/v1/responses")
    response = httpx.Response(status_code, request=request)
    return openai.APIStatusError(message, response=response, body=None)


def _no_match(term):
    return None


class FoodImageTestCase(unittest.TestCase):
    def test_fenced_json_is_reconciled(self):
        payload = {
            "foods": [
                {"name": "miel", "estimated_portion": "21g", "confidence": 0.9},
                {"name": "zorblax", "estimated_portion": "100g", "confidence": 0.4},
            ],
            "suggestions": ["Agrega proteína", "  "],
        }
        client = stub_client("```json\n" + json.dumps(payload) + "\n```")

        result = analyze_food_image("data:image/png;base64," + IMAGE_B64, lookup=_no_match, client=client)

        self.assertEqual([food["source"] for food in result["foods"]], ["known_values", "fallback"])
        self.assertEqual(result["foods"][0]["estimated_calories"], 64)
        self.assertEqual(result["foods"][1]["confidence"], 0.2)
        self.assertEqual(result["total_estimated_calories"], 114)
        self.assertEqual(result["suggestions"], ["Agrega proteína"])

        content = client.responses.calls[0]["input"][0]["content"]
        self.assertEqual(content[0]["type"], "input_text")
        self.assertEqual(content[1]["image_url"], f"data:image/png;base64,{IMAGE_B64}")

    def test_response_without_foods_is_an_error(self):
        client = stub_client("Lo siento, no puedo ver la imagen.")
        with self.assertRaises(AIServiceError):
            analyze_food_image(IMAGE_B64, lookup=_no_match, client=client)

    def test_bad_image_data_is_rejected_before_calling_provider(self):
        client = stub_client()
        for bad in ("", "data:image/jpeg;base64,", "not base64!!"):
            with self.assertRaises(ValueError):
                analyze_food_image(bad, client=client)
        self.assertEqual(client.responses.calls, [])

    def test_raw_base64_is_sent_as_jpeg(self):
        client = stub_client(json.dumps({"foods": []}))
        analyze_food_image(IMAGE_B64, lookup=_no_match, client=client)
        content = client.responses.calls[0]["input"][0]["content"]
        self.assertEqual(content[1]["image_url"], f"data:image/jpeg;base64,{IMAGE_B64}")

    def test_mime_type_comes_from_data_url(self):
        self.assertEqual(image_mime_type("data:image/webp;base64," + IMAGE_B64), "image/webp")
        self.assertEqual(image_mime_type("data:image/HEIC;base64," + IMAGE_B64), "image/heic")
        self.assertEqual(image_mime_type(IMAGE_B64), "image/jpeg")

    def test_clean_strips_prefix_and_whitespace(self):
        self.assertEqual(clean_base64_image("data:image/jpeg;base64,aGVs\nbG8="), "aGVsbG8=")

    def test_missing_api_key(self):
        with self.assertRaises(AIServiceError):
            analyze_food_image(IMAGE_B64, lookup=_no_match)

    def test_provider_status_errors_are_mapped(self):
        client = stub_client(_status_error(529, "Overloaded"))
        with self.assertRaises(AIServiceError) as ctx:
            analyze_food_image(IMAGE_B64, lookup=_no_match, client=client)
        self.assertIn("overloaded", str(ctx.exception))

        client = stub_client(_status_error(429))
        with self.assertRaises(AIServiceError) as ctx:
            analyze_food_image(IMAGE_B64, lookup=_no_match, client=client)
        self.assertIn("limit", str(ctx.exception))


class ReceiptTestCase(unittest.TestCase):
    def test_receipt_image_keeps_its_type(self):
        client = stub_client("{}")
        analyze_receipt_image("data:image/webp;base64," + IMAGE_B64, client=client, today=date(2026, 3, 11))
        content = client.responses.calls[0]["input"][0]["content"]
        self.assertEqual(content[1]["image_url"], f"data:image/webp;base64,{IMAGE_B64}")

    def test_unreadable_receipt_uses_manual_review_fallback(self):
        client = stub_client("No se pudo leer el ticket")
        result = analyze_receipt_image(IMAGE_B64, client=client, today=date(2026, 3, 11))
        self.assertEqual(result["confidence"], 0.1)
        self.assertEqual(result["date"], "2026-03-11")
        self.assertEqual(result["total_amount"], 0.0)
        self.assertIn("note", result)

    def test_receipt_values_are_normalised(self):
        parsed = {
            "store_name": " Super Fresh ",
            "date": "27/7/2025",
            "total_amount": "$12,50",
            "items": [
                {"product_name": "Leche", "quantity": "2x", "unit_price": "1.25", "total_price": 2.5},
                {"product_name": "", "total_price": 9},
                "junk",
            ],
            "payment_method": "tarjeta",
            "confidence": 1.7,
        }
        result = normalize_receipt(parsed, today=date(2026, 3, 11))
        self.assertEqual(result["store_name"], "Super Fresh")
        self.assertEqual(result["date"], "2025-07-27")
        self.assertEqual(result["total_amount"], 12.5)
        self.assertEqual(len(result["items"]), 1)
        self.assertEqual(result["items"][0]["unit_price"], 1.25)
        self.assertEqual(result["confidence"], 1.0)

    def test_total_falls_back_to_item_sum(self):
        parsed = {
            "items": [
                {"product_name": "Pan", "total_price": 1.2},
                {"product_name": "Queso", "total_price": 3.35},
            ],
            "date": "no date",
        }
        result = normalize_receipt(parsed, today=date(2026, 3, 11))
        self.assertEqual(result["total_amount"], 4.55)
        self.assertEqual(result["date"], "2026-03-11")
        self.assertEqual(result["confidence"], 0.5)


class OverloadRetryTestCase(unittest.TestCase):
    def test_retries_once_after_overload(self):
        attempts = []
        sleeps = []

        def flaky():
            attempts.append(1)
            if len(attempts) == 1:
                raise AIServiceError("The AI service is overloaded right now.")
            return "ok"

        self.assertEqual(call_with_overload_retry(flaky, delay=5.0, sleep=sleeps.append), "ok")
        self.assertEqual(len(attempts), 2)
        self.assertEqual(sleeps, [5.0])

    def test_other_errors_are_not_retried(self):
        attempts = []

        def broken():
            attempts.append(1)
            raise AIServiceError("OpenAI API key is invalid.")

        with self.assertRaises(AIServiceError):
            call_with_overload_retry(broken, sleep=lambda seconds: None)
        self.assertEqual(len(attempts), 1)

    def test_second_overload_propagates(self):
        attempts = []

        def always_busy():
            attempts.append(1)
            raise AIServiceError("Servicio sobrecargado")

        with self.assertRaises(AIServiceError):
            call_with_overload_retry(always_busy, sleep=lambda seconds: None)
        self.assertEqual(len(attempts), 2)


class ChatTestCase(unittest.TestCase):
    def test_history_is_trimmed_and_context_included(self):
        history = [{"role": "user" if i % 2 == 0 else "assistant", "content": f"turn {i}"} for i in range(25)]
        history.append({"role": "system", "content": "ignored"})
        client = stub_client("  Prueba una ensalada con pollo.  ")
        context = {
            "user_name": "Ana",
            "goals": {"daily_calories": 1800, "daily_protein": 120, "daily_carbs": 200, "daily_fat": 60},
            "today": {"calories": 900, "protein": 60, "carbs": 100, "fat": 30},
        }

        reply = nutrition_chat("¿Qué ceno?", history=history, context=context, client=client)

        self.assertEqual(reply, "Prueba una ensalada con pollo.")
        call = client.responses.calls[0]
        self.assertEqual(len(call["input"]), 20)
        self.assertEqual(call["input"][-1], {"role": "user", "content": "¿Qué ceno?"})
        self.assertIn("1800 kcal", call["instructions"])
        self.assertIn("900 kcal", call["instructions"])

    def test_empty_message_is_rejected(self):
        with self.assertRaises(ValueError):
            nutrition_chat("   ", client=stub_client())

    def test_empty_reply_gets_placeholder(self):
        self.assertTrue(nutrition_chat("hola", client=stub_client("")))

    def test_instructions_without_context(self):
        self.assertNotIn("Objetivos", build_chat_instructions(None))


if __name__ == "__main__":
    unittest.main()
