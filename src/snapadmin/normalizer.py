"""
Holdings Response Normalizer

SnapTrade position payloads vary by connector and API version. The
helpers here pull accounts, positions and per-position display fields out
of whatever shape arrives, and never raise.

Candidate lists are ordered most specific / most reliable first; the
order reflects shapes observed in real responses and must not be
shuffled.
"""

from typing import Any, Callable, Iterable

from snapadmin.models import NormalizedHoldingsResult, PositionRecord

Accessor = Callable[[Any], Any]

# Keys tried when a candidate resolves to an object instead of a string
NESTED_IDENTIFIER_KEYS = ("symbol", "ticker", "code", "name", "id")


def _present(value: Any) -> bool:
    """
    True for values that count as "there": not None, not False, not an
    empty string and not numeric zero. Empty lists and dicts are present.
    """
    if value is None or value is False or value == "":
        return False
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return value != 0 and value == value  # NaN is not present
    return True


def get_path(obj: Any, *keys: str) -> Any:
    """Safe nested dict lookup; None as soon as a step is missing."""
    current = obj
    for key in keys:
        if not isinstance(current, dict):
            return None
        current = current.get(key)
    return current


def path(*keys: str) -> Accessor:
    """Accessor for a nested key path."""
    return lambda record: get_path(record, *keys)


def first_present(obj: Any, *keys: str) -> Any:
    """First present value among top-level ``keys`` of ``obj``."""
    for key in keys:
        value = get_path(obj, key)
        if _present(value):
            return value
    return None


def first_not_none(record: Any, accessors: Iterable[Accessor]) -> Any:
    for accessor in accessors:
        value = accessor(record)
        if value is not None:
            return value
    return None


def _usable_string(candidate: Any) -> str:
    if isinstance(candidate, str) and candidate.strip():
        return candidate.strip()

    # Ticker-like values are sometimes nested one object deeper
    if isinstance(candidate, dict):
        nested = first_present(candidate, *NESTED_IDENTIFIER_KEYS)
        if isinstance(nested, str) and nested.strip():
            return nested.strip()

    return ""


def first_string(*candidates: Any) -> str:
    """Return the first candidate that yields a non-blank string, else ""."""
    for candidate in candidates:
        value = _usable_string(candidate)
        if value:
            return value
    return ""


def first_match(record: Any, accessors: Iterable[Accessor]) -> str:
    """
    First-match resolver: evaluate ``accessors`` left to right against
    ``record`` and return the first usable string, else "".
    """
    for accessor in accessors:
        value = _usable_string(accessor(record))
        if value:
            return value
    return ""


def _string_symbol(position: Any) -> Any:
    symbol = get_path(position, "symbol")
    return symbol if isinstance(symbol, str) else ""


TICKER_ACCESSORS: tuple[Accessor, ...] = (
    path("ticker"),
    path("symbol", "symbol"),
    path("symbol", "ticker"),
    # Some connectors nest the universal symbol one more level down
    path("symbol", "symbol", "symbol"),
    path("symbol", "symbol", "ticker"),
    path("universalSymbol", "symbol"),
    path("universalSymbol", "ticker"),
    path("universal_symbol", "symbol"),
    path("universal_symbol", "ticker"),
    path("instrument", "symbol"),
    path("instrument", "ticker"),
    path("security", "symbol"),
    path("security", "ticker"),
    path("instrument", "universalSymbol", "symbol"),
    path("instrument", "universal_symbol", "symbol"),
    # Last resort: a bare string symbol
    _string_symbol,
)

SECURITY_NAME_ACCESSORS: tuple[Accessor, ...] = (
    path("name"),
    path("description"),
    path("securityName"),
    path("symbol", "description"),
    path("symbol", "name"),
    path("symbol", "companyName"),
    path("symbol", "symbol", "description"),
    path("symbol", "symbol", "name"),
    path("symbol", "symbol", "companyName"),
    path("universalSymbol", "description"),
    path("universalSymbol", "name"),
    path("universalSymbol", "companyName"),
    path("universal_symbol", "description"),
    path("universal_symbol", "name"),
    path("instrument", "name"),
    path("instrument", "description"),
    path("instrument", "securityName"),
    path("instrument", "symbol", "description"),
    path("instrument", "universalSymbol", "description"),
    path("instrument", "universal_symbol", "description"),
    path("security", "name"),
    path("security", "description"),
    path("security", "securityName"),
    path("security", "companyName"),
)

QUANTITY_ACCESSORS: tuple[Accessor, ...] = (
    path("quantity"),
    path("units"),
    path("shares"),
    path("position", "quantity"),
)

PRICE_ACCESSORS: tuple[Accessor, ...] = (
    path("price"),
    path("pricePerShare"),
    path("quote", "last"),
    path("lastPrice"),
)

ACCOUNT_KEYS = ("accounts", "brokerageAccounts")

POSITION_ACCESSORS: tuple[Accessor, ...] = (
    path("data", "positions"),
    path("data", "holdings"),
    path("data", "results"),
    path("data"),
    path("holdings"),
    path("positions"),
    path("accountHoldings"),
    path("results"),
    # getUserAccountPositions usually returns the list itself
    lambda data: data,
)


def format_ticker(position: Any) -> str:
    """Ticker symbol of ``position`` (e.g. "AAPL"), never an internal id."""
    return first_match(position, TICKER_ACCESSORS)


def format_security_name(position: Any) -> str:
    """Human-readable security name of ``position``."""
    return first_match(position, SECURITY_NAME_ACCESSORS)


def extract_quantity(position: Any) -> Any:
    return first_not_none(position, QUANTITY_ACCESSORS)


def extract_price(position: Any) -> Any:
    return first_not_none(position, PRICE_ACCESSORS)


def account_id(account: Any) -> Any:
    """Concrete account id needed for holdings-by-account requests."""
    return first_present(account, "id", "accountId", "brokerageAccountId")


def account_name(account: Any) -> str:
    return first_string(first_present(account, "name", "accountName"))


def normalize(raw: Any) -> NormalizedHoldingsResult:
    """
    Reduce a holdings payload to ``positions``, ``accounts`` and ``raw``.

    Handles the common shapes:
    - ``[...]`` (list of positions)
    - ``{"accounts": [...], "holdings": [...]}``
    - ``{"data": {"positions": [...]}}`` and other ``data`` wrappers

    Anything unrecognised degrades to empty lists; ``raw`` always holds
    the untouched input.
    """
    if not _present(raw):
        return NormalizedHoldingsResult(positions=[], accounts=[], raw=raw)

    accounts = first_present(raw, *ACCOUNT_KEYS)

    positions = None
    for accessor in POSITION_ACCESSORS:
        candidate = accessor(raw)
        if _present(candidate):
            positions = candidate
            break

    return NormalizedHoldingsResult(
        positions=positions if isinstance(positions, list) else [],
        accounts=accounts if isinstance(accounts, list) else [],
        raw=raw,
    )


def describe_position(position: Any) -> PositionRecord:
    """Resolve the display fields of one position."""
    return PositionRecord(
        ticker=format_ticker(position),
        security_name=format_security_name(position),
        quantity=extract_quantity(position),
        price=extract_price(position),
    )


def describe_positions(result: NormalizedHoldingsResult) -> list[PositionRecord]:
    return [describe_position(p) for p in result.positions]
