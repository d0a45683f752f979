from datetime import datetime

from api.composer.context import (
    EXTRACTED_TEXTS_HEADER,
    RULING_SEPARATOR,
    build_documents_context,
    build_extracted_texts_context,
    build_rulings_context,
    format_ruling,
    format_ruling_date,
)
from libs.models.firestore import CaseDocument, ExtractedText, Ruling


def test_format_ruling_card():
    ruling = Ruling(
        providencia="T-123-45",
        fecha_sentencia=datetime(2020, 5, 1, 10, 30),
        magistrado="Ana Pérez",
        tema="Salud",
        derechos=["salud", "vida"],
        conflicto_juridico={"frase": "Negación de servicio", "tipo": "EPS"},
        texto="x" * 700,
    )

    card = format_ruling(ruling)

    assert "📘 Providencia: T-123-45" in card
    assert "📅 Fecha: 2020-05-01" in card
    assert "👨‍⚖️ Magistrado: Ana Pérez" in card
    assert "⚖️ Derechos discutidos: salud, vida" in card
    assert "⚔️ Conflicto jurídico: Negación de servicio — EPS" in card
    assert card.endswith("x" * 600 + "…")
    assert "📂 Expediente" not in card


def test_empty_ruling_uses_placeholders():
    assert format_ruling(Ruling()) == "📅 Fecha: s/f\n👨‍⚖️ Magistrado: Sin magistrado\n🧭 Tema: Sin tema"


def test_ruling_date_formats():
    assert format_ruling_date("2019-08-14T00:00:00Z") == "2019-08-14"
    assert format_ruling_date(None) == "s/f"


def test_rulings_context_joins_cards():
    context = build_rulings_context([Ruling(providencia="T-1-20"), Ruling(providencia="C-2-21")])
    assert context.count(RULING_SEPARATOR) == 1


def test_documents_context_dumps_fields():
    document = CaseDocument(
        id="d1",
        file_name="demanda.pdf",
        content="Texto de la demanda",
        metadata={"title": "Demanda", "user_email": "ana@example.com", "resultados": "Procedente"},
    )

    context = build_documents_context([document])

    assert "DOCUMENTO 1: Demanda" in context
    assert "[content]\nTexto de la demanda" in context
    assert "[resultados]\nProcedente" in context
    assert "[file_name]\ndemanda.pdf" in context
    assert "[user_email]" not in context
    assert "[id]" not in context
    assert build_documents_context([]) == ""


def test_extracted_texts_context():
    texts = [
        ExtractedText(text_id="e1", user_id="u", source="voice", extracted_text="hola"),
        ExtractedText(text_id="e2", user_id="u", source="file", extracted_text="pdf", metadata={"file_name": "a.pdf"}),
    ]

    context = build_extracted_texts_context(texts)

    assert context.startswith(f"\n\n{EXTRACTED_TEXTS_HEADER}\n")
    assert "🎙️ Transcripción de voz: Grabación 1" in context
    assert "📄 Archivo: a.pdf" in context
    assert build_extracted_texts_context([]) == ""
