import unittest

from mindfulspace.backend.app.crisis_detector import (
    CRISIS_FALLBACK_MESSAGE,
    CRISIS_KEYWORDS,
    GENERIC_FALLBACK_MESSAGE,
    build_user_prompt,
    fallback_message,
    screen,
)


class CrisisDetectorTests(unittest.TestCase):
    def test_explicit_intent_is_crisis(self):
        result = screen("I want to end my life")
        self.assertTrue(result.is_crisis)
        self.assertIn("end my life", result.matched_keywords)

    def test_multiple_phrases_reported_in_list_order(self):
        result = screen("I feel HOPELESS and want to die, I'm just a burden")
        self.assertEqual(result.matched_keywords, ["want to die", "hopeless", "burden"])

    def test_neutral_text_is_not_crisis(self):
        result = screen("I had a great day")
        self.assertFalse(result.is_crisis)
        self.assertEqual(result.matched_keywords, [])

    def test_substring_match_favours_over_detection(self):
        result = screen("Never give up on your dreams!")
        self.assertTrue(result.is_crisis)
        self.assertEqual(result.matched_keywords, ["give up"])

    def test_empty_message(self):
        self.assertFalse(screen("").is_crisis)

    def test_keyword_list(self):
        self.assertEqual(len(CRISIS_KEYWORDS), 18)
        self.assertIn("can't go on", CRISIS_KEYWORDS)

    def test_crisis_prompt_is_prefixed(self):
        message = "I can't go on anymore"
        prompt = build_user_prompt(message, screen(message))
        self.assertTrue(prompt.startswith("CRISIS ALERT"))
        self.assertIn(f'"{message}"', prompt)

    def test_normal_prompt_is_unchanged(self):
        message = "Tell me about breathing exercises"
        self.assertEqual(build_user_prompt(message, screen(message)), message)

    def test_fallback_text_by_path(self):
        crisis = fallback_message(screen("thinking about suicide"))
        self.assertEqual(crisis, CRISIS_FALLBACK_MESSAGE)
        for hotline in ("988", "741741", "911"):
            self.assertIn(hotline, crisis)
        self.assertEqual(fallback_message(screen("hello")), GENERIC_FALLBACK_MESSAGE)


if __name__ == "__main__":
    unittest.main()
