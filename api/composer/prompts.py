"""
Scenario prompt table for the Pepper legal assistant.

Every conversation runs under a scenario (jurisprudence, text analysis,
legal writing, dashboard agent or the generic persona) and one of the
supported languages. This module holds:
- The static system prompt table, indexed by scenario then language
- Localized UI strings emitted directly to the client
- Per-scenario user prompt builders
- The language instruction prefix and memory augmentation applied to prompts
- Sampling parameters per scenario and default thread titles
"""

import re
from datetime import datetime
from typing import Dict, Optional

from pydantic import BaseModel, Field

SUPPORTED_LANGUAGES = ("es", "en", "pt")
DEFAULT_LANGUAGE = "es"

JURISPRUDENCE = "jurisprudence"
TEXT_ANALYSIS = "text-analysis"
LEGAL_WRITING = "legal-writing"
DASHBOARD_AGENT = "dashboard-agent"
DEFAULT_SCENARIO = "default"


# ==============================================================================
# SYSTEM PROMPTS
# ==============================================================================

DASHBOARD_AGENT_SYSTEM_PROMPT = """Eres Pepper, el agente de tablero de casos de un despacho jurídico colombiano.
Tu tarea es ayudar al abogado a registrar y mantener actualizado un caso en su tablero.
• Pide los datos del caso de uno en uno: número de radicado (solo dígitos), despacho o juzgado, partes (demandante y demandado), tipo de proceso, estado y próximos términos o audiencias con su fecha (AAAA-MM-DD).
• Confirma cada dato antes de pasar al siguiente y nunca inventes información que el usuario no haya dado.
• Cuando tengas los datos esenciales, presenta un resumen estructurado en Markdown para que el usuario lo valide.
• Si el usuario pregunta algo fuera de la gestión del caso, responde brevemente y retoma el registro.
👉 Usa saltos de línea reales (`\\n`)."""

DASHBOARD_AGENT_START_MESSAGE = (
    "👋 ¡Hola! Soy tu agente de tablero. Vamos a registrar tu caso paso a paso.\n\n"
    "Para empezar, indícame el **número de radicado** del proceso (solo dígitos)."
)

SCENARIO_PROMPTS: Dict[str, Dict[str, str]] = {
    TEXT_ANALYSIS: {
        "es": (
            "Eres un asistente experto en análisis textual. Extraes ideas clave, clasificas temas y resumes información de forma clara.\n"
            "👉 No emites opiniones personales ni interpretaciones jurídicas salvo que el perfil activo sea jurídico.\n"
            "👉 Importante: Usa saltos de línea reales (`\\n`) entre párrafos, secciones y listas, para mejorar la legibilidad del contenido jurídico."
        ),
        "en": (
            "You are an expert assistant for textual and evidence analysis. You extract key insights, classify issues, and summarize legal information clearly.\n"
            "👉 Do not include personal opinions or legal interpretations unless the active scenario explicitly allows it.\n"
            "👉 Important: Use real line breaks (`\\n`) between paragraphs, sections, and lists to keep responses readable."
        ),
        "pt": (
            "Você é um assistente especializado em análise textual e de evidências. Você extrai ideias centrais, classifica temas e resume informações jurídicas com clareza.\n"
            "👉 Não apresente opiniões pessoais nem interpretações jurídicas além do permitido pelo cenário ativo.\n"
            "👉 Importante: Use quebras de linha reais (`\\n`) entre parágrafos, seções e listas para manter a leitura confortável."
        ),
    },
    JURISPRUDENCE: {
        "es": (
            "Eres un asistente jurídico especializado en interpretación de jurisprudencia y argumentación legal.\n"
            "Hablas con lenguaje técnico-formal, redactas como un profesional del derecho colombiano.\n"
            "📚 Siempre que sea posible, citas sentencias, artículos constitucionales o normas relevantes.\n"
            "⚖️ No das consejos fuera del ámbito jurídico. Si el tema no es legal, responde educadamente que estás limitado a asuntos jurídicos.\n"
            "👉 Importante: Usa saltos de línea reales (`\\n`)."
        ),
        "en": (
            "You are a constitutional attorney specialized in Colombian case law and legal argumentation.\n"
            "Speak in a formal, technical tone and write like a Colombian legal professional.\n"
            "📚 Cite rulings, constitutional articles, or relevant statutes whenever possible.\n"
            "⚖️ Do not provide advice outside the legal domain. If the topic is not legal, politely explain that you are limited to Colombian legal matters.\n"
            "👉 Important: Use real line breaks (`\\n`)."
        ),
        "pt": (
            "Você é um advogado constitucionalista especializado em jurisprudência colombiana e argumentação jurídica.\n"
            "Utilize um tom técnico e formal, redigindo como um profissional do direito colombiano.\n"
            "📚 Sempre que possível, cite sentenças, artigos constitucionais ou normas relevantes.\n"
            "⚖️ Não ofereça conselhos fora do âmbito jurídico. Se o tema não for legal, explique educadamente que sua atuação se limita ao direito colombiano.\n"
            "👉 Importante: Use quebras de linha reais (`\\n`)."
        ),
    },
    LEGAL_WRITING: {
        "es": (
            "Eres un abogado redactor jurídico colombiano. Adaptas tu salida a la intención del usuario, siguiendo estas reglas:\n"
            "• Responde de forma concisa cuando la pregunta sea breve/factual.\n"
            "• Solo redactas documentos jurídicos estructurados cuando el usuario lo solicite explícitamente.\n"
            "• Si falta contexto esencial, formula UNA pregunta de aclaración.\n"
            "• No inventes datos cambiantes; indica que pueden variar.\n"
            "• Mantén precisión legal, lenguaje técnico y tono profesional.\n"
            "• Si el tema no es jurídico, indica que solo puedes ayudar con derecho colombiano.\n"
            "• Tablas siempre en formato Markdown con columnas ÍTEM, DESCRIPCIÓN, UNIDAD, CANTIDAD, V/UNITARIO, V/TOTAL.\n"
            "👉 Usa saltos de línea reales (`\\n`)."
        ),
        "en": (
            "You are a Colombian legal writer. Adapt your response to the user intent, following these rules:\n"
            "• Keep answers concise when the question is short or factual.\n"
            "• Draft structured legal documents only when the user explicitly asks for them.\n"
            "• If essential context is missing, ask ONE clarifying question.\n"
            "• Never invent mutable data; state when figures may vary.\n"
            "• Maintain legal accuracy, technical language, and a professional tone.\n"
            "• If the topic is not legal, state that you can only help with Colombian law.\n"
            "• Any tables must use Markdown with the columns ITEM, DESCRIPTION, UNIT, QUANTITY, UNIT_VALUE, TOTAL_VALUE.\n"
            "👉 Use real line breaks (`\\n`)."
        ),
        "pt": (
            "Você é um redator jurídico colombiano. Adapte sua resposta à intenção do usuário, seguindo estas regras:\n"
            "• Responda de forma concisa quando a pergunta for breve ou factual.\n"
            "• Só elabore documentos jurídicos estruturados quando o usuário solicitar explicitamente.\n"
            "• Se faltar contexto essencial, faça UMA pergunta de esclarecimento.\n"
            "• Não invente dados variáveis; indique quando os valores podem mudar.\n"
            "• Mantenha precisão legal, linguagem técnica e tom profissional.\n"
            "• Se o tema não for jurídico, informe que você só pode ajudar com direito colombiano.\n"
            "• Qualquer tabela deve usar Markdown com as colunas ITEM, DESCRIÇÃO, UNIDADE, QUANTIDADE, V/UNITÁRIO, V/TOTAL.\n"
            "👉 Use quebras de linha reais (`\\n`)."
        ),
    },
    DASHBOARD_AGENT: {lang: DASHBOARD_AGENT_SYSTEM_PROMPT for lang in SUPPORTED_LANGUAGES},
    DEFAULT_SCENARIO: {
        "es": "Eres un asistente jurídico que responde con claridad y precisión.",
        "en": "You are a legal assistant that answers with clarity and precision.",
        "pt": "Você é um assistente jurídico que responde com clareza e precisão.",
    },
}

# ==============================================================================
# LOCALIZED UI STRINGS
# ==============================================================================

LOCALE_STRINGS: Dict[str, Dict[str, str]] = {
    "juris_searching": {
        "es": "🔎 Consultando base de datos de sentencias…",
        "en": "🔎 Searching the constitutional rulings database…",
        "pt": "🔎 Consultando o banco de sentenças constitucionais…",
    },
    "juris_no_matches": {
        "es": "No encontré **sentencias** que coincidan con tu consulta en la base de datos.\n\n➡️ Este escenario está limitado a la búsqueda de sentencias curadas.",
        "en": "I could not find any **rulings** that match your query in the database.\n\n➡️ This scenario is limited to curated rulings searches.",
        "pt": "Não encontrei **sentenças** que correspondam à sua consulta no banco de dados.\n\n➡️ Este cenário é limitado à busca de sentenças selecionadas.",
    },
    "text_no_docs": {
        "es": "No encontré análisis previos para tu usuario en **current_state**.\n\n➡️ Sube un documento o ejecuta un análisis para poder responder con esa información.",
        "en": "I could not find prior analyses for your user in **current_state**.\n\n➡️ Upload a document or run an analysis so I can reference that information.",
        "pt": "Não encontrei análises anteriores para seu usuário em **current_state**.\n\n➡️ Envie um documento ou execute uma análise para que eu possa usar essas informações.",
    },
    "generic_error": {
        "es": "Lo siento, ocurrió un error al procesar tu solicitud.",
        "en": "Sorry, something went wrong while processing your request.",
        "pt": "Desculpe, ocorreu um erro ao processar sua solicitação.",
    },
}

LANGUAGE_INSTRUCTIONS = {
    "es": "Responde SIEMPRE en español latino (tono profesional, jurídico, claro y respetuoso).",
    "en": "Answer ONLY in clear professional English unless the user explicitly requests another language.",
    "pt": "Responda SEMPRE em português brasileiro (tom jurídico, profissional e respeitoso).",
}

MEMORY_HEADER = "🧠 CONTEXTO PERSISTENTE:"

DEFAULT_THREAD_TITLES = {
    JURISPRUDENCE: "Jurisprudencia",
    LEGAL_WRITING: "Redacción legal",
}
FALLBACK_THREAD_TITLE = "Análisis de texto"


# ==============================================================================
# RESOLUTION
# ==============================================================================

def normalize_scenario_key(scenario: Optional[str]) -> Optional[str]:
    """
    Map a client scenario value onto a canonical scenario key.

    Substring checks run in a fixed order, so "dashboard legal" resolves to
    the dashboard agent. Unknown values come back lowercased and trimmed.
    """
    if not scenario:
        return None
    key = str(scenario).strip().lower()
    if "dashboard" in key or "agent" in key:
        return DASHBOARD_AGENT
    if "legal" in key or "writing" in key or "escritura" in key:
        return LEGAL_WRITING
    if "juris" in key:
        return JURISPRUDENCE
    if "text" in key or "analysis" in key or "analisis" in key or "análisis" in key:
        return TEXT_ANALYSIS
    return key


def language_key(language: Optional[str]) -> str:
    return language if language in SUPPORTED_LANGUAGES else DEFAULT_LANGUAGE


def prompt_for(scenario: Optional[str], language: Optional[str]) -> str:
    """System prompt for a scenario/language pair with Spanish and generic fallbacks."""
    profile = SCENARIO_PROMPTS.get(normalize_scenario_key(scenario) or "", SCENARIO_PROMPTS[DEFAULT_SCENARIO])
    return profile.get(language_key(language)) or profile.get(DEFAULT_LANGUAGE) or SCENARIO_PROMPTS[DEFAULT_SCENARIO]["es"]


def locale_string(key: str, language: Optional[str]) -> str:
    entry = LOCALE_STRINGS.get(key)
    if not entry:
        return ""
    return entry.get(language_key(language)) or entry.get(DEFAULT_LANGUAGE, "")


def build_system_prompt(base_prompt: str, language: Optional[str]) -> str:
    """Prefix the language instruction and collapse blank-line runs in the base prompt."""
    cleaned = re.sub(r"\n+", "\n", base_prompt or "")
    return f"{LANGUAGE_INSTRUCTIONS[language_key(language)]}\n{cleaned}"


def augment_prompt_with_memory(prompt: str, memory_block: str) -> str:
    if not memory_block or not memory_block.strip():
        return prompt
    return f"{MEMORY_HEADER}\n{memory_block}\n\n{prompt}"


# ==============================================================================
# USER PROMPT BUILDERS
# ==============================================================================

def build_juris_user_prompt(language: Optional[str], question: str, context_block: str) -> str:
    lang = language_key(language)
    if lang == "en":
        return (
            f"📨 USER QUESTION:\n{question}\n\n"
            f"📂 CONTEXT (Relevant rulings found in the database):\n{context_block}\n\n"
            "📜 INSTRUCTIONS:\n1️⃣ Answer ONLY with the context above.\n"
            "2️⃣ Do not make up names, articles, statutes, or rulings.\n"
            "3️⃣ Use Colombian legal language and structure.\n"
            "4️⃣ If the request is not legal, state that limitation.\n"
            "5️⃣ Use real line breaks (\\n)."
        )
    if lang == "pt":
        return (
            f"📨 PERGUNTA DO USUÁRIO:\n{question}\n\n"
            f"📂 CONTEXTO (Sentenças relevantes encontradas no banco de dados):\n{context_block}\n\n"
            "📜 INSTRUÇÕES:\n1️⃣ Responda SOMENTE com base nesse contexto.\n"
            "2️⃣ Não invente nomes, artigos, normas ou sentenças.\n"
            "3️⃣ Utilize linguagem jurídica colombiana.\n"
            "4️⃣ Se o tema não for jurídico, explique essa limitação.\n"
            "5️⃣ Use quebras de linha reais (\\n)."
        )
    return (
        f"📨 PREGUNTA DEL USUARIO:\n{question}\n\n"
        f"📂 CONTEXTO (Sentencias relevantes encontradas en la base de datos):\n{context_block}\n\n"
        "📜 INSTRUCCIONES:\n1️⃣ Responde con base EXCLUSIVA en el contexto anterior.\n"
        "2️⃣ No inventes nombres, artículos, normas ni sentencias.\n"
        "3️⃣ Usa lenguaje jurídico colombiano.\n"
        "4️⃣ Si el contenido no es jurídico, responde que no puedes abordar ese tema.\n"
        "5️⃣ Usa saltos de línea reales (\\n)."
    )


def build_text_analysis_user_prompt(
    language: Optional[str],
    question: str,
    context_block: str,
    email: Optional[str],
) -> str:
    lang = language_key(language)
    who = email or "usuario"
    if lang == "en":
        return (
            f"📨 USER QUESTION:\n{question}\n\n"
            f"📂 CONTEXT (All current_state fields for user {who}):\n{context_block}\n\n"
            "📜 INSTRUCTIONS:\n1️⃣ Answer ONLY with the context above.\n"
            "2️⃣ ❌ Do NOT copy or summarize that context unless explicitly asked.\n"
            "3️⃣ ✅ Respond directly to the request with legal rigor.\n"
            "4️⃣ Do not add external sources.\n"
            "5️⃣ Use Colombian legal terminology, a professional tone, and real line breaks (\\n)."
        )
    if lang == "pt":
        return (
            f"📨 PERGUNTA DO USUÁRIO:\n{question}\n\n"
            f"📂 CONTEXTO (Todos os campos de current_state do usuário {who}):\n{context_block}\n\n"
            "📜 INSTRUÇÕES:\n1️⃣ Responda APENAS com base nesse contexto.\n"
            "2️⃣ ❌ Não copie nem resuma o contexto, salvo se solicitado.\n"
            "3️⃣ ✅ Responda diretamente ao pedido com rigor jurídico.\n"
            "4️⃣ Não adicione fontes externas.\n"
            "5️⃣ Use terminologia jurídica colombiana, tom profissional e quebras de linha reais (\\n)."
        )
    return (
        f"📨 PREGUNTA DEL USUARIO:\n{question}\n\n"
        f"📂 CONTEXTO (Todos los campos de current_state del usuario {who}):\n{context_block}\n\n"
        "📜 INSTRUCCIONES:\n1️⃣ Responde únicamente con base en ese contexto.\n"
        "2️⃣ ❌ No copies ni resumas el contexto salvo petición expresa.\n"
        "3️⃣ ✅ Responde directamente a la solicitud con rigor jurídico.\n"
        "4️⃣ No agregues fuentes externas.\n"
        "5️⃣ Usa lenguaje técnico jurídico colombiano y saltos de línea reales (\\n)."
    )


def build_default_user_prompt(language: Optional[str], question: str) -> str:
    lang = language_key(language)
    if lang == "en":
        return f'User question: "{question}".'
    if lang == "pt":
        return f'Pergunta do usuário: "{question}".'
    return f'Pregunta del usuario: "{question}".'


# ==============================================================================
# SAMPLING AND TITLES
# ==============================================================================

class SamplingConfig(BaseModel):
    """Sampling parameters sent to the completion endpoint."""
    temperature: float = Field(0.7, ge=0.0, le=2.0)
    max_tokens: int = Field(2000, gt=0)


GROUNDED_SAMPLING = SamplingConfig(temperature=0.2, max_tokens=1800)
CONVERSATIONAL_SAMPLING = SamplingConfig(temperature=0.7, max_tokens=2000)


def sampling_for_scenario(scenario: Optional[str]) -> SamplingConfig:
    """Grounded scenarios answer from retrieved context and sample conservatively."""
    if normalize_scenario_key(scenario) in (JURISPRUDENCE, TEXT_ANALYSIS):
        return GROUNDED_SAMPLING
    return CONVERSATIONAL_SAMPLING


def default_thread_title(scenario: Optional[str], last_message_at: Optional[datetime] = None) -> str:
    label = DEFAULT_THREAD_TITLES.get(scenario or "", FALLBACK_THREAD_TITLE)
    if last_message_at is None:
        return label
    return f"{label} • {last_message_at.strftime('%d/%m/%Y, %H:%M')}"
