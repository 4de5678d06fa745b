# app/patterns.py
# Compiled patterns and vocabularies for both dispatch apps (pt-BR and en UI strings).

import re

_I = re.IGNORECASE
_AMOUNT = r"\d{1,4}(?:[,\.]\d{1,2})?"

# R$ 15,50 / $15.50 / R$ 15, but not surge multipliers like "$1,2x" or "$1,2~1,8x"
PRICE = re.compile(
    r"(?:R\$|\$)\s*(" + _AMOUNT + r")(?!\s*(?:[~\-–]\s*" + _AMOUNT + r")\s*x)(?!\s*x)",
    _I,
)
FALLBACK_PRICE = re.compile(r"\b(\d{1,4}[,\.]\d{2})\b")
AVG_PRICE_PER_KM_SUFFIX = re.compile(
    r"^\s*(?:↑|↗|↖|⇧|⤴|🡅|🔺|🟡|\+)?\s*(?:/\s*km|por\s*km\b|km\b)", _I
)
PLUS_PRICE = re.compile(r"\+\s*R\$\s*\d", _I)

DISTANCE = re.compile(r"(\d{1,3}(?:[,\.]\d+)?)\s*km\b", _I)
TIME = re.compile(r"(\d{1,3})\s*(?:n?\s*min(?:utos?)?)\b", _I)
DURATION = re.compile(r"(?:(\d{1,2})\s*h(?:oras?)?\s*(?:e\s*)?)?(\d{1,3})\s*min(?:utos?)?\b", _I)
USER_RATING = re.compile(
    r"(?:nota|avalia(?:ç|c)ão|rating|estrelas?)\s*:?\s*(\d(?:[\.,]\d{1,2})?)"
    r"|\b(\d(?:[\.,]\d{1,2}))\s*[★⭐]"
    r"|[★⭐]\s*(\d(?:[\.,]\d{1,2})?)",
    _I,
)

_PICKUP_PREFIX = (
    r"(?:buscar|embarque|pickup|retirada|chegar|chegada|até\s+(?:o\s+)?passageiro|ir\s+até)[^\d]{0,20}"
)
PICKUP_DISTANCE = re.compile(_PICKUP_PREFIX + r"(\d{1,3}(?:[,\.]\d+)?)\s*km", _I)
PICKUP_TIME = re.compile(_PICKUP_PREFIX + r"(\d{1,3})\s*min(?:utos?)?\b", _I)
# Inline "X min (Y km)" legs
PICKUP_INLINE = re.compile(
    r"(\d{1,2})\s*min(?:utos?)?\s*(?:de\s*dist[aâ]ncia)?\s*\(?\s*(\d{1,3}(?:[,\.]\d+)?)\s*km\s*\)?", _I
)

# "7 minutos (3.0 km) de distância" / "3min (1,1km)" / "Viagem de 1 h e 43 min (93.7 km)"
ROUTE_PAIR = re.compile(
    r"(?:(\d{1,2})\s*h(?:oras?)?\s*(?:e\s*)?)?(\d{1,3})\s*min(?:utos?)?(?:\s*de\s*dist[aâ]ncia)?"
    r"\s*(?:\(\s*)?(\d{1,3}(?:[,\.]\d+)?)\s*km(?:\s*\))?",
    _I,
)
# Short pickup legs in meters: "3min (843m)"
ROUTE_PAIR_METERS = re.compile(r"(\d{1,3})\s*min(?:utos?)?\s*\(\s*(\d{2,4})\s*m\s*\)", _I)
KM_IN_PAREN = re.compile(r"\(\s*(\d{1,3}(?:[,\.]\d+)?)\s*km\s*\)", _I)
# Long trips: "Viagem de 1 h 30 (50 km)"
HOUR_ROUTE = re.compile(r"(\d{1,2})\s*h\s*(\d{1,2})?\s*\(\s*(\d{1,3}(?:[,\.]\d+)?)\s*km\s*\)", _I)
TRIP_MINUTES = re.compile(r"viagem\s+de\s+(\d{1,3})\s*min", _I)

MIN_RANGE = re.compile(r"\b(\d{1,2})\s*[-–]\s*(\d{1,2})\s*(?:n?\s*min(?:utos?)?)\b", _I)
MIN_VALUE = re.compile(r"\b\d{1,3}\s*(?:n?\s*min(?:utos?)?)\b", _I)
KM_VALUE = re.compile(r"\b\d{1,3}(?:[\.,]\d+)?\s*km\b", _I)
METERS_VALUE = re.compile(r"\b(\d{1,4})\s*m\b", _I)

# App card headers
UBER_CARD = re.compile(
    r"UberX\s*(?:[.\-·]\s*(?:Exclusivo|Adolescentes)\s*)?[.\-·]\s*R\$\s*(" + _AMOUNT + r")", _I
)
NINETY_NINE_LONG_RIDE = re.compile(
    r"Corrida\s+Longa\s*(?:-\s*Negocia\s*)?-\s*R\$\s*(" + _AMOUNT + r")(?:\s*-\s*R\$\s*(" + _AMOUNT + r"))?", _I
)
NINETY_NINE_NEGOTIATE = re.compile(r"Negocia\s*[-\s]+R\$\s*(" + _AMOUNT + r")", _I)
NINETY_NINE_PRIORITY = re.compile(
    r"Priorit[áa]rio\s*-\s*Pop\s+Expresso\s*[-\s]+R\$\s*(" + _AMOUNT + r")(?:\s*-\s*R\$\s*(" + _AMOUNT + r"))?", _I
)
NINETY_NINE_ACCEPT = re.compile(r"Aceitar\s+por\s+R\$\s*(" + _AMOUNT + r")", _I)
NINETY_NINE_PRIORITY_SIMPLE = re.compile(r"Priorit[áa]rio[\s\S]{0,80}?R\$\s*(" + _AMOUNT + r")", _I)

UBER_HEADER_RATING = re.compile(r"(\d[,\.]\d{1,2})\s*\(\s*\d+\s*\)", _I)
NINETY_NINE_HEADER_RATING = re.compile(r"(\d[,\.]\d{1,2})\s*[.·]\s*\d+\s*corridas?", _I)

# Content signatures per app
UBER_CONTENT_MARKERS = [
    re.compile(r"\buberx\b", _I),
    re.compile(r"\buber\s*(?:comfort|black|flash|connect|moto|green)\b", _I),
]
NINETY_NINE_CONTENT_MARKERS = [
    re.compile(r"corrida\s+longa", _I),
    re.compile(r"\bnegocia\b", _I),
    re.compile(r"priorit[áa]rio", _I),
    re.compile(r"aceitar\s+por\s+r\$", _I),
    re.compile(r"taxa\s+de\s+deslocamento", _I),
    re.compile(r"pre[cç]o\s*x\s*\d", _I),
    re.compile(r"r\$\s*\d{1,3}(?:[.,]\d{1,2})?\s*/\s*km", _I),
    re.compile(r"n[aã]o\s+afeta\s+a\s*ta", _I),
    re.compile(r"perfil\s+premium", _I),
    re.compile(r"\+?\d+\s*corridas\b", _I),
]

ROAD_PREFIX = re.compile(r"^(?:R(?:ua)?\.?|Av(?:enida)?\.?|M(?:arginal)?\.?)\s+", _I)
ROAD_LIKE = re.compile(r"\b(?:r(?:ua)?\.?|av(?:enida)?\.?|m(?:arginal)?\.?)\s+[^\W_]", _I)

DIRECTION_ICONS = re.compile(r"[↑↗↖⇧⤴🡅🔺🟡↓↘↙⤵]")

# Result-card markers rendered by this system (two or more means we are reading ourselves)
OWN_CARD_MARKERS = [
    "COMPENSA", "NÃO COMPENSA", "NEUTRO",
    "R$/km", "Ganho/h", "RideWatch",
    "Score:",
    "ANÁLISE", "ANALISE",
    "Média valor/Km", "Media valor/Km",
    "Média valor/Hora", "Media valor/Hora",
    "Valor da Corrida",
]
OWN_CARD_NOISE_TOKENS = [
    "r$/km", "r$km", "r$/min", "r$/h", "km total",
    "valor corrida", "valor da corrida",
    "media valor/km", "média valor/km",
    "media valor/hora", "média valor/hora",
    "analise", "análise",
    "dentro dos seus parâmetros", "dentro dos seus parametros",
    "não compensa", "nao compensa",
    "endereço não disponível", "endereco não disponível",
    "destino não disponível", "destino nao disponivel",
    "ridewatch", "compensa", "evitar", "neutro", "score",
]

ACTION_KEYWORDS = [
    "aceitar", "accept", "recusar", "decline", "ignorar",
    "novo pedido", "nova viagem", "solicitação", "request",
]
CONTEXT_KEYWORDS = ["embarque", "destino", "passageiro", "pickup", "dropoff", "origem", "entrega"]
NOTIFICATION_RIDE_KEYWORDS = ["viagem", "corrida", "pedido", "trip", "request", "ride", "delivery", "entrega"]
KEYWORD_QUERIES = ["R$", "km", "min", "aceitar", "accept", "corrida", "viagem"]

ADDRESS_NOISE_TOKENS = [
    "perfil premium", "perfil essencial", "corridas", "corrida longa",
    "taxa de deslocamento", "aceitar", "recusar", "ignorar", "soluções",
]

ACCEPTANCE_SIGNALS = [
    "a caminho", "indo buscar", "navegando", "em andamento",
    "corrida aceita", "viagem aceita", "aceita com sucesso",
    "ir até o passageiro", "buscar passageiro", "iniciar viagem", "iniciar corrida",
    "chegar ao passageiro", "chegando", "rota iniciada", "navegação iniciada",
    "iniciar navegação", "navegar", "dirigir até", "ir ao embarque",
    "heading to", "navigating to", "navigate to", "trip accepted", "ride accepted",
    "start trip", "start navigation", "picking up", "on the way", "arriving",
    "drive to pickup",
]
REJECTION_SIGNALS = [
    "corrida perdida", "oferta expirou", "tempo esgotado", "trip missed",
    "offer expired", "timed out", "próxima corrida", "next trip",
    "você está online", "procurando viagens", "procurando corridas",
    "corrida cancelada", "viagem cancelada", "trip cancelled", "ride cancelled",
]
TRIP_END_SIGNALS = ["corrida finalizada", "viagem finalizada", "finalizar corrida"]
NAVIGATION_SIGNALS = [
    "a caminho", "navegando", "navegação", "rota", "rota iniciada", "iniciar navegação",
    "dirija", "vire", "continue", "chegar ao passageiro", "chegando", "viagem em andamento",
    "corrida em andamento", "tempo estimado", "trânsito",
]

CLICK_ACCEPT_PATTERNS = {
    "UBER": [r"\baceitar\b", r"\baccept\b", r"confirmar\s+viagem", r"confirm\s+trip"],
    "99": [r"\baceitar\b", r"\baccept\b", r"aceitar\s+por", r"\bconfirmar\b"],
}

UBER_PACKAGES = [
    "com.ubercab.driver", "com.ubercab", "com.ubercab.eats", "com.uber.driver", "com.uber",
]
NINETY_NINE_PACKAGES = [
    "cc.nineninetaxi.driver", "com.nineninetaxi.driver", "com.driver.go99",
    "cc.nineninetaxi", "com.nineninetaxi", "br.com.driver99", "com.go99.driver",
    "com.go99", "br.com.99", "app.99", "com.app99.driver", "com.app99",
]
UBER_ID_PREFIXES = ["com.ubercab.driver:id", "com.ubercab:id", "com.uber.driver:id"]
NINETY_NINE_ID_PREFIXES = ["com.app99.driver:id", "cc.nineninetaxi.driver:id", "com.nineninetaxi.driver:id"]
