import pytest

from backend.app.services.keywords import build_keywords, caption_snippet


@pytest.mark.unit
class Describe_build_keywords:
    def test_should_drop_stop_words_urls_and_hashtags(self):
        caption = "Mini liquidificador portátil para sucos https://shope.ee/abc #achadinhos #shopee com garrafa"
        assert build_keywords(caption) == ["mini", "liquidificador", "portátil", "sucos", "garrafa"]

    def test_should_keep_first_occurrence_only(self):
        assert build_keywords("Fone fone FONE bluetooth") == ["fone", "bluetooth"]

    def test_should_cap_keyword_count(self):
        words = " ".join(f"palavra{i}" for i in range(20))
        assert len(build_keywords(words)) == 8
        assert build_keywords(words, max_keywords=3) == ["palavra0", "palavra1", "palavra2"]

    def test_should_ignore_short_tokens_and_punctuation(self):
        assert build_keywords("TV 4K!!! ok, led-strip") == ["led", "strip"]

    @pytest.mark.parametrize("value", ["", None])
    def test_given_no_text_should_return_empty(self, value):
        assert build_keywords(value) == []


@pytest.mark.unit
class Describe_caption_snippet:
    def test_should_trim_and_cap(self):
        assert caption_snippet("  " + "a" * 400) == "a" * 320
        assert caption_snippet(None) == ""
