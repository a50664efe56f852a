"""Survey page language and message catalog.

The language is resolved once when a survey session opens and handed to
everything that renders text.  Nothing reads the browser locale later.
"""

SUPPORTED_LANGUAGES = ("en", "pt-BR")

MESSAGES: dict[str, dict[str, str]] = {
    "en": {
        "survey.notFound": "Survey Not Found",
        "survey.notFoundDesc": "This survey may have been removed or is no longer active.",
        "survey.thankYou": "Thank You!",
        "survey.submitted": "Your feedback has been submitted successfully. We appreciate your input!",
        "survey.notLikely": "Not likely at all",
        "survey.extremelyLikely": "Extremely likely",
        "survey.submitFeedback": "Submit Feedback",
        "survey.respondAgain": "Respond Again",
        "survey.close": "Close",
        "survey.returning": "Returning to the form in {seconds} seconds",
        "survey.redirecting": "Redirecting in {seconds} seconds",
        "survey.saveError": "We could not save your response. Please try submitting again.",
        "survey.scoreRequired": "Please select a score from 0 to 10.",
        "survey.fieldRequired": "Please answer all required questions.",
        "webhook.saved": "Your response was saved.",
        "webhook.retry": "Try again",
        "webhook.error.timeout": "The integration did not answer in time.",
        "webhook.error.http_status": "The integration rejected the request ({detail}).",
        "webhook.error.cors": (
            "The integration server could not be reached. It must allow "
            "requests from this site's origin (CORS)."
        ),
        "webhook.error.network": "The integration server could not be reached.",
        "webhook.error.invalid_url": "The integration is misconfigured: invalid webhook URL.",
        "webhook.error.invalid_payload": (
            "The integration is misconfigured: the custom payload is not valid JSON."
        ),
    },
    "pt-BR": {
        "survey.notFound": "Pesquisa Não Encontrada",
        "survey.notFoundDesc": "Esta pesquisa pode ter sido removida ou não está mais ativa.",
        "survey.thankYou": "Obrigado!",
        "survey.submitted": "Seu feedback foi enviado com sucesso. Agradecemos sua contribuição!",
        "survey.notLikely": "Nada provável",
        "survey.extremelyLikely": "Extremamente provável",
        "survey.submitFeedback": "Enviar Feedback",
        "survey.respondAgain": "Responder Novamente",
        "survey.close": "Fechar",
        "survey.returning": "Voltando ao formulário em {seconds} segundos",
        "survey.redirecting": "Redirecionando em {seconds} segundos",
        "survey.saveError": "Não foi possível salvar sua resposta. Tente enviar novamente.",
        "survey.scoreRequired": "Selecione uma nota de 0 a 10.",
        "survey.fieldRequired": "Responda todas as perguntas obrigatórias.",
        "webhook.saved": "Sua resposta foi salva.",
        "webhook.retry": "Tentar novamente",
        "webhook.error.timeout": "A integração não respondeu a tempo.",
        "webhook.error.http_status": "A integração recusou a requisição ({detail}).",
        "webhook.error.cors": (
            "Não foi possível contatar o servidor da integração. Ele precisa "
            "permitir requisições da origem deste site (CORS)."
        ),
        "webhook.error.network": "Não foi possível contatar o servidor da integração.",
        "webhook.error.invalid_url": "A integração está mal configurada: URL do webhook inválida.",
        "webhook.error.invalid_payload": (
            "A integração está mal configurada: o payload personalizado não é um JSON válido."
        ),
    },
}


def resolve_language(accept_language: str | None, default: str = "en") -> str:
    """Pick a supported language from an ``Accept-Language`` value.

    Any Portuguese variant maps to ``pt-BR``; quality weights are honoured.
    """
    fallback = default if default in SUPPORTED_LANGUAGES else "en"
    if not accept_language:
        return fallback

    ranked: list[tuple[float, int, str]] = []
    for position, part in enumerate(accept_language.split(",")):
        tag, _, params = part.strip().partition(";")
        quality = 1.0
        if params.strip().startswith("q="):
            try:
                quality = float(params.strip()[2:])
            except ValueError:
                quality = 0.0
        if tag and quality > 0:
            ranked.append((-quality, position, tag.strip().lower()))

    for _neg_q, _pos, tag in sorted(ranked):
        if tag.startswith("pt"):
            return "pt-BR"
        if tag.startswith("en"):
            return "en"
    return fallback


def messages_for(language: str) -> dict[str, str]:
    return MESSAGES.get(language, MESSAGES["en"])


def translate(language: str, key: str, **kwargs: object) -> str:
    """Look up *key*, falling back to English and then to the key itself."""
    text = messages_for(language).get(key) or MESSAGES["en"].get(key, key)
    return text.format(**kwargs) if kwargs else text
