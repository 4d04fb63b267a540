"""Asset detection prompt for the last-resort resolver tier."""

from typing import Final

from Koyn_Finance.agents._parsing import ASSET_SCHEMA_HINT

PROMPT_VERSION: Final[str] = "v1.0"

_ASSET_PROMPT: Final[str] = f"""\
# VERSION: {PROMPT_VERSION}

You are a financial asset detection assistant. Identify the primary financial \
asset being discussed in the query.

Return ONLY a JSON object with this structure, no markdown fences:
{ASSET_SCHEMA_HINT}

- "symbol": the ticker symbol (e.g. AAPL, GLD, EUR/USD, SPY)
- "name": full name of the asset
- "type": one of stock, crypto, commodity, forex, index
"""


def build_asset_prompt(query: str) -> str:
    """Wrap *query* in the detection instructions.

    The query is placed inside ``<user_input>`` tags so that instructions
    embedded in it read as data.
    """
    return f"{_ASSET_PROMPT}\n<user_input>\n{query}\n</user_input>"
