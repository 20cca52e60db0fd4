import re

COARSE_TYPES = {
    "numeric": "number",
    "category": "string",
    "text": "string",
    "date": "date",
    "boolean": "boolean",
    "mixed": "mixed",
}

SEVERITY_ORDER = {"high": 3, "medium": 2, "low": 1}

# Value recognition

NUMERIC_PATTERN = re.compile(
    r"^(?=[^\d]*\d)[-+]?[$€£¥]?\s?(?:\d{1,3}(?:,\d{3})+|\d+)?(?:\.\d+)?(?:[eE][-+]?\d+)?%?$"
)
CURRENCY_PATTERN = re.compile(r"^[-+]?[$€£¥]\s?\d[\d,]*(?:\.\d{1,2})?$")

DATE_PATTERNS = [
    re.compile(r"^\d{4}-\d{1,2}-\d{1,2}$"),
    re.compile(r"^\d{1,2}/\d{1,2}/\d{4}$"),
    re.compile(r"^\d{1,2}-\d{1,2}-\d{4}$"),
    re.compile(r"^\d{4}/\d{1,2}/\d{1,2}$"),
    re.compile(r"^\d{4}-\d{2}-\d{2}[T ]\d{2}:\d{2}(?::\d{2}(?:\.\d+)?)?(?:Z|[+-]\d{2}:?\d{2})?$"),
    re.compile(r"^\d{4}-\d{2}$"),
    re.compile(
        r"^\d{1,2}\s+(?:jan|feb|mar|apr|may|jun|jul|aug|sep|sept|oct|nov|dec)[a-z]*\.?,?\s+\d{4}$",
        re.IGNORECASE,
    ),
    re.compile(
        r"^(?:jan|feb|mar|apr|may|jun|jul|aug|sep|sept|oct|nov|dec)[a-z]*\.?\s+\d{1,2},?\s+\d{4}$",
        re.IGNORECASE,
    ),
]

# Word tokens pair up; a column is boolean when its distinct values fall inside one pair.
BOOLEAN_TOKEN_PAIRS = [
    frozenset({"true", "false"}),
    frozenset({"yes", "no"}),
    frozenset({"y", "n"}),
    frozenset({"t", "f"}),
]
NUMERIC_BOOLEAN_PAIR = frozenset({"0", "1"})
BOOLEAN_TRUE_TOKENS = {"true", "yes", "y", "t", "1"}

NULL_TOKENS = {"", "null", "none", "nan", "n/a", "na", "nat"}

# Headers

GENERIC_HEADER_PATTERN = re.compile(
    r"^(?:column|col|field|var|variable|unnamed|untitled|header|attr)[\s_:.\-]*\d*$",
    re.IGNORECASE,
)
IDENTIFIER_TOKENS = {"id", "uuid", "guid", "key", "pk"}
IDENTIFIER_SUFFIX_PATTERN = re.compile(r"[a-z](?:Id|ID|Key|Uuid)$")
HEADER_ARTIFACT_PATTERN = re.compile(r"[\x00-\x1f\x7f\ufffd\ufeff]|^\s|\s$")

# Dataset classifier vocabulary. Each domain lists header keywords; matching is
# case-insensitive against header tokens and tolerant of plural/suffixed forms.

DOMAIN_KEYWORDS = {
    "finance": [
        "revenue",
        "profit",
        "loss",
        "expense",
        "income",
        "balance",
        "cash",
        "payment",
        "invoice",
        "transaction",
        "account",
        "financial",
        "cost",
        "price",
        "amount",
        "currency",
        "dollar",
        "usd",
        "eur",
        "budget",
        "tax",
        "debit",
        "credit",
    ],
    "sales": [
        "sale",
        "customer",
        "client",
        "order",
        "purchase",
        "deal",
        "opportunity",
        "lead",
        "prospect",
        "quota",
        "commission",
        "revenue",
        "region",
        "rep",
        "won",
        "discount",
    ],
    "inventory": [
        "stock",
        "inventory",
        "quantity",
        "qty",
        "warehouse",
        "supply",
        "supplier",
        "product",
        "item",
        "sku",
        "barcode",
        "reorder",
        "units",
        "bin",
    ],
    "marketing": [
        "campaign",
        "advert",
        "impression",
        "click",
        "conversion",
        "ctr",
        "cpc",
        "cpm",
        "audience",
        "segment",
        "channel",
        "referral",
        "utm",
        "social",
        "bounce",
    ],
    "operations": [
        "task",
        "project",
        "employee",
        "staff",
        "shift",
        "hours",
        "duration",
        "efficiency",
        "productivity",
        "resource",
        "capacity",
        "utilization",
        "kpi",
        "downtime",
    ],
    "survey": [
        "respondent",
        "response",
        "survey",
        "question",
        "rating",
        "satisfaction",
        "score",
        "feedback",
        "agree",
        "nps",
        "likert",
        "comment",
        "answer",
    ],
    "log_data": [
        "timestamp",
        "level",
        "severity",
        "message",
        "log",
        "event",
        "host",
        "ip",
        "status",
        "request",
        "latency",
        "thread",
        "trace",
        "logger",
    ],
}

LOG_LEVEL_VALUES = {"debug", "info", "warn", "warning", "error", "critical", "fatal", "trace"}
LIKERT_VALUES = {
    "strongly disagree",
    "disagree",
    "neutral",
    "agree",
    "strongly agree",
    "very dissatisfied",
    "dissatisfied",
    "satisfied",
    "very satisfied",
}

DEFAULT_DOMAIN = "general"

# Charts

CATEGORICAL_COLORS = [
    "#1f77b4",
    "#ff7f0e",
    "#2ca02c",
    "#d62728",
    "#9467bd",
    "#8c564b",
    "#e377c2",
    "#7f7f7f",
    "#bcbd22",
    "#17becf",
    "#aec7e8",
    "#ffbb78",
]

CHART_COLORS = {
    "line": ["#1f77b4", "#9467bd", "#e377c2"],
    "area": ["#1f77b4", "#ff7f0e", "#2ca02c", "#d62728", "#9467bd"],
    "bar": CATEGORICAL_COLORS,
    "pie": CATEGORICAL_COLORS,
    "scatter": ["#1f77b4"],
    "histogram": ["#1f77b4"],
    "heatmap": ["#b2182b", "#f7f7f7", "#2166ac"],
    "radar": ["#1f77b4", "#ff7f0e"],
}

OTHER_CATEGORY_LABEL = "Other"

# Business metrics. A lookup takes the first header containing a keyword,
# trying keywords in the order listed.

BUSINESS_COLUMN_KEYWORDS = {
    "revenue": ["revenue", "sales", "amount", "total", "price"],
    "product": ["product", "item", "sku", "name"],
    "expense": ["expense", "cost", "spend", "amount"],
    "income": ["income", "revenue", "earnings", "profit", "sales"],
    "stock": ["stock", "quantity", "qty", "inventory"],
    "spend": ["spend", "cost", "budget", "investment"],
    "conversion": ["conversion", "clicks", "impressions", "leads"],
    "time": ["time", "duration", "hours", "minutes"],
    "efficiency": ["efficiency", "utilization", "rate", "performance"],
}
CURRENCY_HEADER_KEYWORDS = [
    "revenue",
    "sales",
    "price",
    "cost",
    "expense",
    "amount",
    "total",
    "profit",
    "income",
    "spend",
    "budget",
]

# A, B, C and D cut-offs; anything past D grades F.
EXPENSE_RATIO_GRADES = (0.50, 0.60, 0.75, 0.85)
PROFIT_MARGIN_GRADES = (0.20, 0.15, 0.08, 0.03)
GRADE_SCORES = {"A": 95, "B": 85, "C": 75, "D": 65, "F": 40}
GRADE_FLOORS = [("A", 90), ("B", 80), ("C", 70), ("D", 60)]
DEFAULT_GRADE_SCORE = 70
