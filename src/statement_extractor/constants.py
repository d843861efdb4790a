"""Shared constants: statement concepts, metric vocabulary and aliases."""

from enum import Enum


class StatementConcept(Enum):
    """Logical statement a fragment is extracted for."""

    INCOME_STATEMENT = "income_statement"
    BALANCE_SHEET = "balance_sheet"
    CASH_FLOW = "cash_flow"
    SEGMENT_REVENUE = "segment_revenue"
    SEGMENT_PROFIT = "segment_profit"
    INVESTMENTS = "investments"


STATEMENT_CONCEPT_ALIASES = {
    "INCOME STATEMENT": StatementConcept.INCOME_STATEMENT,
    "INCOME STATEMENTS": StatementConcept.INCOME_STATEMENT,
    "STATEMENT OF OPERATIONS": StatementConcept.INCOME_STATEMENT,
    "STATEMENTS OF OPERATIONS": StatementConcept.INCOME_STATEMENT,
    "STATEMENTS OF INCOME": StatementConcept.INCOME_STATEMENT,
    "BALANCE SHEET": StatementConcept.BALANCE_SHEET,
    "BALANCE SHEETS": StatementConcept.BALANCE_SHEET,
    "STATEMENT OF FINANCIAL POSITION": StatementConcept.BALANCE_SHEET,
    "CASH FLOW": StatementConcept.CASH_FLOW,
    "CASH FLOWS": StatementConcept.CASH_FLOW,
    "STATEMENTS OF CASH FLOWS": StatementConcept.CASH_FLOW,
    "SEGMENT REVENUE": StatementConcept.SEGMENT_REVENUE,
    "SEGMENTS": StatementConcept.SEGMENT_REVENUE,
    "SEGMENT PROFIT": StatementConcept.SEGMENT_PROFIT,
    "SEGMENT OPERATING INCOME": StatementConcept.SEGMENT_PROFIT,
    "INVESTMENTS": StatementConcept.INVESTMENTS,
    "EQUITY INVESTMENTS": StatementConcept.INVESTMENTS,
}

DOCUMENT_KIND_ALIASES = {
    "table_html": "table_html",
    "html": "table_html",
    "htm": "table_html",
    "press_release": "table_html",
    "layout_text": "layout_text",
    "txt": "layout_text",
    "text": "layout_text",
    "pdf_text": "layout_text",
    "shadow_text_deck": "shadow_text_deck",
    "deck": "shadow_text_deck",
    "presentation": "shadow_text_deck",
}

# Canonical metric keys per concept. Segment and investment concepts take
# whatever keys the company profile declares.
METRIC_VOCABULARY = {
    StatementConcept.INCOME_STATEMENT: (
        "revenue",
        "costOfRevenue",
        "grossProfit",
        "researchAndDevelopment",
        "salesAndMarketing",
        "generalAndAdministrative",
        "sga",
        "restructuringCharges",
        "totalOperatingExpenses",
        "operatingIncome",
        "interestIncome",
        "interestExpense",
        "otherIncomeExpense",
        "otherIncomeNet",
        "equityInvestmentGains",
        "interestAndOther",
        "nonOperatingIncome",
        "incomeBeforeTax",
        "incomeTaxExpense",
        "netIncome",
        "epsBasic",
        "epsDiluted",
        "sharesBasic",
        "sharesDiluted",
    ),
    StatementConcept.BALANCE_SHEET: (
        "cashAndEquivalents",
        "shortTermInvestments",
        "accountsReceivable",
        "inventories",
        "totalCurrentAssets",
        "propertyPlantEquipment",
        "goodwill",
        "totalAssets",
        "accountsPayable",
        "shortTermDebt",
        "totalCurrentLiabilities",
        "longTermDebt",
        "totalLiabilities",
        "totalEquity",
        "totalLiabilitiesAndEquity",
    ),
    StatementConcept.CASH_FLOW: (
        "netIncomeCashFlow",
        "depreciationAndAmortization",
        "stockBasedCompensation",
        "operatingCashFlow",
        "capitalExpenditure",
        "investingCashFlow",
        "shareRepurchases",
        "dividendsPaid",
        "financingCashFlow",
        "freeCashFlow",
    ),
    StatementConcept.SEGMENT_REVENUE: (),
    StatementConcept.SEGMENT_PROFIT: (),
    StatementConcept.INVESTMENTS: (),
}

OPEN_VOCABULARY_CONCEPTS = frozenset(
    {
        StatementConcept.SEGMENT_REVENUE,
        StatementConcept.SEGMENT_PROFIT,
        StatementConcept.INVESTMENTS,
    }
)

# Balances as of a date; Q4 comes from the annual document, never by subtraction.
POINT_IN_TIME_CONCEPTS = frozenset(
    {StatementConcept.BALANCE_SHEET, StatementConcept.INVESTMENTS}
)

# Share counts and per-share amounts: never rescaled, never summed.
UNSCALED_METRICS = frozenset({"epsBasic", "epsDiluted", "sharesBasic", "sharesDiluted"})

SCALE_FACTORS = {
    "units": 1,
    "thousands": 1_000,
    "millions": 1_000_000,
    "billions": 1_000_000_000,
}

MAGNITUDE_WORDS = {
    "billion": "billions",
    "billions": "billions",
    "bn": "billions",
    "b": "billions",
    "million": "millions",
    "millions": "millions",
    "mn": "millions",
    "m": "millions",
}

DEFAULT_DOCUMENT_PRIORITY = ("table_html", "layout_text", "shadow_text_deck")

QUARTERS = ("Q1", "Q2", "Q3", "Q4")
ANNUAL_PERIOD = "FY"
