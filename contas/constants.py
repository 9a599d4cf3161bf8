from zoneinfo import ZoneInfo

SP_TZ = ZoneInfo("America/Sao_Paulo")

DUE_SOON_DAYS = 3
UPCOMING_WINDOW_DAYS = 30
TIMELINE_MONTHS = 12

MONTHS_PT = {
    "01": "Janeiro",
    "02": "Fevereiro",
    "03": "Março",
    "04": "Abril",
    "05": "Maio",
    "06": "Junho",
    "07": "Julho",
    "08": "Agosto",
    "09": "Setembro",
    "10": "Outubro",
    "11": "Novembro",
    "12": "Dezembro",
}

CATEGORY_LABELS = {
    "internet": "Internet",
    "telefone": "Telefone",
    "software": "Software",
    "hardware": "Hardware",
    "outros": "Outros",
}

STATUS_LABELS = {
    "pending": "Pendentes",
    "due-soon": "Vence em breve",
    "overdue": "Vencidas",
    "protocoled": "Protocoladas",
}

# Legacy day-count labels stored in RECORRENCIA.FREQUENCIA
FREQUENCY_BY_MONTHS = {1: "30", 2: "60", 3: "90", 6: "180", 12: "365"}


def format_month(ref: str) -> str:
    if not ref or "-" not in ref:
        return ref or ""
    year, month = ref.split("-")[:2]
    return f"{MONTHS_PT.get(month, month)}/{year}"


def format_month_short(ref: str) -> str:
    """'2025-03' -> 'mar/25'"""
    if not ref or "-" not in ref:
        return ref or ""
    year, month = ref.split("-")[:2]
    name = MONTHS_PT.get(month)
    if name is None:
        return ref
    return f"{name[:3].lower()}/{year[-2:]}"


def frequency_for_months(interval_months: int) -> str:
    return FREQUENCY_BY_MONTHS.get(interval_months, str(interval_months * 30))
