from api.composer.language import detect_language, keyword_scores


def test_empty_text_defaults_to_spanish():
    assert detect_language("") == "es"
    assert detect_language(None) == "es"
    assert detect_language("   ") == "es"


def test_exclusive_accents_decide():
    assert detect_language("¿Qué es una tutela?") == "es"
    assert detect_language("Você pode revisar a ação?") == "pt"


def test_keywords_decide_plain_ascii():
    assert detect_language("Please summarize the case") == "en"
    assert detect_language("hola, necesito ayuda con un derecho") == "es"


def test_keyword_tie_keeps_earlier_language():
    # ç is Portuguese, í is Spanish; one keyword each.
    assert keyword_scores("Sentença sobre el artículo")["es"] == 1
    assert detect_language("Sentença sobre el artículo") == "es"


def test_mixed_accents_without_keywords():
    assert detect_language("ção é") == "pt"


def test_ascii_without_keywords_is_english():
    assert detect_language("12345 ok") == "en"


def test_other_scripts_fall_back_to_spanish():
    assert detect_language("日本語") == "es"
