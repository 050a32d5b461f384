"""
Position sizing

Converts an account risk budget and a stop-loss distance into a lot size:

    risk_amount = balance * risk_percent / 100
    stop_pips   = |entry - stop| * pip_multiplier
    volume      = risk_amount / (stop_pips * pip_value)

rounded to the 0.01 lot step and clamped to [min_volume, max_volume].
"""

from autotrader.config import settings
from autotrader.constants import DEFAULT_PIP_MULTIPLIER, DEFAULT_PIP_VALUE, get_pair_config

LOT_STEP_DECIMALS = 2


def calculate_position_size(
    balance: float,
    risk_percent: float,
    entry_price: float,
    stop_loss: float,
    pip_value: float = DEFAULT_PIP_VALUE,
    pip_multiplier: float = DEFAULT_PIP_MULTIPLIER,
    min_volume: float = None,
    max_volume: float = None,
) -> float:
    """
    Calculate trade volume (lots) for a risk budget.

    A zero stop distance returns the minimum volume instead of dividing by zero.
    """
    min_volume = settings.min_volume if min_volume is None else min_volume
    max_volume = settings.max_volume if max_volume is None else max_volume

    risk_amount = balance * (risk_percent / 100)
    stop_distance_pips = abs(entry_price - stop_loss) * pip_multiplier

    if stop_distance_pips == 0 or pip_value <= 0:
        return min_volume

    volume = round(risk_amount / (stop_distance_pips * pip_value), LOT_STEP_DECIMALS)
    return max(min_volume, min(volume, max_volume))


def size_for_instrument(
    instrument: str,
    balance: float,
    risk_percent: float,
    entry_price: float,
    stop_loss: float,
) -> float:
    """Position size using the instrument's own pip value and pip multiplier"""
    config = get_pair_config(instrument)
    return calculate_position_size(
        balance,
        risk_percent,
        entry_price,
        stop_loss,
        pip_value=config["pip_value"],
        pip_multiplier=config["pip_multiplier"],
    )
