"""Table and summary building shared by the Streamlit app and the CLI."""

from typing import List, Optional

import pandas as pd

from margin_watch.models import PositionValuation


QUESTION_LIMIT = 70
ANSWER_LIMIT = 50
VERY_LOW_RETURN = 0.05

TABLE_COLUMNS = [
    "#",
    "Market",
    "Answer",
    "Position",
    "Sale Value",
    "Payout",
    "Days",
    "Return",
    "URL",
]

CSV_COLUMNS = [
    "market_id",
    "answer_id",
    "question",
    "answer",
    "url",
    "outcome",
    "shares",
    "sale_value",
    "fair_value",
    "slippage",
    "probability",
    "days_until_close",
    "return_if_correct",
]


def format_mana(value: float, decimals: int = 2) -> str:
    """Format an amount of mana, e.g. M$1,234.50."""
    return f"M${value:,.{decimals}f}"


def format_percentage(value: Optional[float], decimals: int = 3) -> str:
    """Format a fraction as a percentage, or N/A when unavailable."""
    if value is None:
        return "N/A"
    return f"{value * 100:.{decimals}f}%"


def truncate(text: Optional[str], limit: int) -> str:
    if not text:
        return ""
    if len(text) > limit:
        return text[:limit] + "..."
    return text


def return_tier(return_if_correct: Optional[float]) -> str:
    """Bucket a return for styling: 'very-low' under 5%, otherwise 'low'."""
    if return_if_correct is not None and return_if_correct < VERY_LOW_RETURN:
        return "very-low"
    return "low"


def summarize(valuations: List[PositionValuation]) -> dict:
    """Totals for the positions being displayed."""
    return {
        "positions": len(valuations),
        "recoverable": sum(v.sale_value for v in valuations),
        "payout": sum(v.shares for v in valuations),
    }


def valuation_row(index: int, valuation: PositionValuation) -> dict:
    days = valuation.days_until_close
    return {
        "#": index,
        "Market": truncate(valuation.question, QUESTION_LIMIT),
        "Answer": truncate(valuation.answer_text, ANSWER_LIMIT),
        "Position": f"{valuation.shares:.1f} {valuation.outcome.value}",
        "Sale Value": format_mana(valuation.sale_value),
        "Payout": format_mana(valuation.shares),
        "Days": round(days) if days is not None else None,
        "Return": format_percentage(valuation.return_if_correct),
        "URL": valuation.url,
    }


def valuations_to_frame(valuations: List[PositionValuation]) -> pd.DataFrame:
    """Build the display table, numbering rows from 1 in the given order."""
    rows = [valuation_row(i, v) for i, v in enumerate(valuations, start=1)]
    return pd.DataFrame(rows, columns=TABLE_COLUMNS)


def valuations_to_csv(valuations: List[PositionValuation]) -> str:
    """Full-precision export of the given positions."""
    df = pd.DataFrame([
        {
            "market_id": v.market_id,
            "answer_id": v.answer_id,
            "question": v.question,
            "answer": v.answer_text,
            "url": v.url,
            "outcome": v.outcome.value,
            "shares": v.shares,
            "sale_value": v.sale_value,
            "fair_value": v.fair_value,
            "slippage": v.slippage,
            "probability": v.probability,
            "days_until_close": v.days_until_close,
            "return_if_correct": v.return_if_correct,
        }
        for v in valuations
    ], columns=CSV_COLUMNS)
    return df.to_csv(index=False)


def position_key(valuation: PositionValuation) -> str:
    """Stable identifier for a position, independent of its row number."""
    return f"{valuation.market_id}:{valuation.answer_id or ''}"


def position_label(valuation: PositionValuation) -> str:
    label = truncate(valuation.question, QUESTION_LIMIT)
    if valuation.answer_text:
        label = f"{label} / {truncate(valuation.answer_text, ANSWER_LIMIT)}"
    return f"{label} ({valuation.outcome.value})"


def without_hidden(valuations: List[PositionValuation], hidden_keys) -> List[PositionValuation]:
    """Drop positions whose key the user has hidden, keeping the order."""
    hidden = set(hidden_keys)
    return [v for v in valuations if position_key(v) not in hidden]


def return_styles(valuations: List[PositionValuation]) -> List[str]:
    """CSS for each row's Return cell, from the raw return values."""
    styles = []
    for v in valuations:
        if v.return_if_correct is None:
            styles.append("")
        elif return_tier(v.return_if_correct) == "very-low":
            styles.append("background-color: #f8d7da; color: #721c24")
        else:
            styles.append("background-color: #fff3cd; color: #856404")
    return styles
